"""Achievement bonus grants and the modifiers they apply to earnings and penalties.

Grants are created at most once per (user, achievement). Temporary bonuses
expire after their configured duration, one-time bonuses carry a use counter,
permanent bonuses have neither, and immediate bonus points are credited to the
ledger at grant time and never become active.

Stacking rules:
- Point multipliers multiply together, doubled while a double-point day is
  held, capped at ``MAX_POINT_MULTIPLIER``.
- Penalty reductions add up, capped at ``MAX_PENALTY_REDUCTION``.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from choreledger.core import db_client
from choreledger.core.clock import DateProvider, system_clock
from choreledger.core.config import constants
from choreledger.core.locks import entity_lock
from choreledger.core.logging import log_with_context, span
from choreledger.core.money import ZERO, format_money, round_money, sum_money
from choreledger.domain.achievement import (
    ONE_TIME_BONUS_TYPES,
    TEMPORARY_BONUS_TYPES,
    Achievement,
    BonusGrant,
    BonusType,
    EarlyCashOutConfig,
    ImmediateBonusPointsConfig,
    OneTimeBonusConfig,
    PenaltyReductionConfig,
    PointMultiplierConfig,
    ProfileBadgeConfig,
    TemporaryBonusConfig,
    TrustIncreaseConfig,
    dump_bonus_config,
)
from choreledger.domain.ledger import TransactionType
from choreledger.models.service_models import ActiveBonusDetail, BonusApplication, BonusSummary
from choreledger.services import profile_service


logger = logging.getLogger(__name__)

ONE = Decimal("1")


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def is_grant_active(grant: BonusGrant, now: datetime) -> bool:
    """Whether a grant currently contributes to the user's bonuses."""
    if not grant.is_active:
        return False
    if grant.expires_at is not None and _parse_timestamp(grant.expires_at) <= now:
        return False
    return grant.remaining_uses is None or grant.remaining_uses > 0


async def get_achievement(achievement_id: str) -> Achievement:
    """Get an achievement by ID.

    Raises:
        KeyError: If the achievement does not exist
    """
    record = await db_client.get_record(collection="achievements", record_id=achievement_id)
    return Achievement(**record)


async def get_achievement_by_code(code: str) -> Achievement | None:
    record = await db_client.get_first_record(
        collection="achievements",
        filter_query=f'code = "{db_client.sanitize_param(code)}"',
    )
    return Achievement(**record) if record else None


async def get_grant(user_id: str, achievement_id: str) -> BonusGrant | None:
    record = await db_client.get_first_record(
        collection="bonus_grants",
        filter_query=(
            f'user_id = "{db_client.sanitize_param(user_id)}"'
            f' && achievement_id = "{db_client.sanitize_param(achievement_id)}"'
        ),
    )
    return BonusGrant(**record) if record else None


async def list_active_grants(user_id: str, *, now: datetime) -> list[BonusGrant]:
    """List a user's grants that are active at ``now``, oldest first."""
    records = await db_client.list_all_records(
        collection="bonus_grants",
        filter_query=f'user_id = "{db_client.sanitize_param(user_id)}" && is_active = "1"',
    )
    grants = [BonusGrant(**r) for r in records]
    active = [g for g in grants if is_grant_active(g, now)]
    return sorted(active, key=lambda g: (_parse_timestamp(g.granted_at), int(g.id)))


async def grant(
    user_id: str,
    achievement: Achievement,
    *,
    clock: DateProvider = system_clock,
) -> BonusGrant | None:
    """Grant the bonus an achievement unlocks.

    Immediate bonus points are credited to the default account straight away
    and the grant is stored inactive.

    Args:
        user_id: User receiving the bonus
        achievement: Achievement whose bonus is granted
        clock: Source of the grant timestamp and the credit date

    Returns:
        The new grant, the existing grant when the user already holds one for
        this achievement, or None when the achievement carries no bonus
    """
    with span("bonus_service.grant"):
        config = achievement.parsed_config()
        if achievement.bonus_type is None or config is None:
            return None

        bonus_type = achievement.bonus_type
        async with entity_lock("bonus_grant", f"{user_id}:{achievement.id}"), db_client.transaction():
            existing = await get_grant(user_id, achievement.id)
            if existing is not None:
                logger.info(
                    "Bonus already granted",
                    extra={"user_id": user_id, "achievement_code": achievement.code},
                )
                return existing

            now = clock.utc_now()
            data = {
                "user_id": user_id,
                "achievement_id": achievement.id,
                "bonus_type": bonus_type,
                "bonus_config": dump_bonus_config(config),
                "is_active": True,
                "expires_at": None,
                "remaining_uses": None,
                "granted_at": now,
            }

            if bonus_type in TEMPORARY_BONUS_TYPES and isinstance(config, TemporaryBonusConfig):
                data["expires_at"] = now + timedelta(days=config.duration_days)
            elif bonus_type in ONE_TIME_BONUS_TYPES and isinstance(config, OneTimeBonusConfig):
                data["remaining_uses"] = config.count
            elif isinstance(config, ImmediateBonusPointsConfig):
                await _credit_immediate_bonus(user_id, achievement, config, clock=clock)
                data["is_active"] = False

            record = await db_client.create_record(collection="bonus_grants", data=data)

        log_with_context(
            logger,
            "info",
            "Granted bonus",
            user_id=user_id,
            achievement_code=achievement.code,
            bonus_type=bonus_type,
        )
        return BonusGrant(**record)


async def grant_by_code(
    user_id: str,
    code: str,
    *,
    clock: DateProvider = system_clock,
) -> BonusGrant | None:
    """Grant the bonus of the achievement with ``code``.

    Args:
        user_id: User receiving the bonus
        code: Achievement code (e.g. "perfect_week")
        clock: Source of the grant timestamp

    Returns:
        Same as ``grant``

    Raises:
        KeyError: If no achievement has that code
    """
    achievement = await get_achievement_by_code(code)
    if achievement is None:
        msg = f"Achievement not found: {code}"
        raise KeyError(msg)
    return await grant(user_id, achievement, clock=clock)


async def _credit_immediate_bonus(
    user_id: str,
    achievement: Achievement,
    config: ImmediateBonusPointsConfig,
    *,
    clock: DateProvider,
) -> None:
    amount = round_money(config.amount)
    if amount <= ZERO:
        return

    account = await profile_service.get_default_account(user_id)
    if account is None:
        logger.warning(
            "No ledger account for immediate bonus points",
            extra={"user_id": user_id, "achievement_code": achievement.code},
        )
        return

    await db_client.create_record(
        collection="ledger_transactions",
        data={
            "account_id": account.id,
            "user_id": user_id,
            "amount": amount,
            "type": TransactionType.BONUS,
            "description": f"Achievement Bonus: {achievement.name}",
            "transaction_date": clock.today(),
        },
    )
    logger.info(
        "Credited immediate bonus points",
        extra={"user_id": user_id, "amount": str(amount), "achievement_code": achievement.code},
    )


def calculate_point_multiplier(grants: list[BonusGrant]) -> Decimal:
    """Combined point multiplier of active grants.

    Args:
        grants: Grants active at the time of calculation

    Returns:
        Product of the multipliers, doubled while a double-point day is held,
        capped at MAX_POINT_MULTIPLIER
    """
    multiplier = ONE
    for g in grants:
        if isinstance(g.config, PointMultiplierConfig):
            multiplier *= g.config.multiplier

    if any(g.bonus_type == BonusType.DOUBLE_POINT_DAY for g in grants):
        multiplier *= 2

    return min(multiplier, constants.MAX_POINT_MULTIPLIER)


def calculate_penalty_reduction(grants: list[BonusGrant]) -> Decimal:
    """Combined penalty reduction of active grants.

    Args:
        grants: Grants active at the time of calculation

    Returns:
        Sum of the reduction fractions, capped at MAX_PENALTY_REDUCTION
    """
    total = sum(
        (g.config.reduction_percent for g in grants if isinstance(g.config, PenaltyReductionConfig)),
        Decimal("0"),
    )
    return min(total, constants.MAX_PENALTY_REDUCTION)


def _count_uses(grants: list[BonusGrant], bonus_type: BonusType) -> int:
    return sum(g.remaining_uses or 0 for g in grants if g.bonus_type == bonus_type)


def _plural(count: int | None, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def default_bonus_description(g: BonusGrant) -> str:
    """Display text for a grant whose achievement has none."""
    config = g.config
    match g.bonus_type:
        case BonusType.POINT_MULTIPLIER if isinstance(config, PointMultiplierConfig):
            return f"{config.multiplier:.0%} point multiplier"
        case BonusType.ONE_TIME_FORGIVENESS:
            return f"Forgiveness ({_plural(g.remaining_uses, 'use')} left)"
        case BonusType.REMINDER_SUPPRESSION:
            return "Reminders paused"
        case BonusType.DOUBLE_POINT_DAY:
            return f"Double points ({_plural(g.remaining_uses, 'day')} left)"
        case BonusType.PENALTY_REDUCTION if isinstance(config, PenaltyReductionConfig):
            return f"{config.reduction_percent:.0%} penalty reduction"
        case BonusType.STREAK_PROTECTION:
            return f"Streak protection ({_plural(g.remaining_uses, 'use')} left)"
        case BonusType.EARLY_CASH_OUT if isinstance(config, EarlyCashOutConfig):
            return f"{format_money(config.threshold_reduction)} lower cash-out"
        case BonusType.TRUST_INCREASE:
            return "Increased autonomy"
        case BonusType.PROFILE_BADGE:
            return "Profile badge"
        case _:
            return "Active bonus"


async def get_active_summary(user_id: str, *, clock: DateProvider = system_clock) -> BonusSummary:
    """Summarize the combined effect of a user's active bonuses.

    Args:
        user_id: User whose grants are summarized
        clock: Determines which grants have expired

    Returns:
        BonusSummary with capped modifiers, use counts and one display entry per grant
    """
    with span("bonus_service.get_active_summary"):
        grants = await list_active_grants(user_id, now=clock.utc_now())

        achievements: dict[str, Achievement] = {}
        for g in grants:
            if g.achievement_id not in achievements:
                achievements[g.achievement_id] = await get_achievement(g.achievement_id)

        details = []
        for g in grants:
            achievement = achievements[g.achievement_id]
            details.append(
                ActiveBonusDetail(
                    grant_id=g.id,
                    achievement_name=achievement.name,
                    description=achievement.bonus_description or default_bonus_description(g),
                    bonus_type=g.bonus_type,
                    expires_at=g.expires_at,
                    remaining_uses=g.remaining_uses,
                )
            )

        return BonusSummary(
            point_multiplier=calculate_point_multiplier(grants),
            penalty_reduction=calculate_penalty_reduction(grants),
            forgiveness_uses_available=_count_uses(grants, BonusType.ONE_TIME_FORGIVENESS),
            double_point_days_available=_count_uses(grants, BonusType.DOUBLE_POINT_DAY),
            streak_protection_available=_count_uses(grants, BonusType.STREAK_PROTECTION),
            reminders_suppressed=any(g.bonus_type == BonusType.REMINDER_SUPPRESSION for g in grants),
            cash_out_threshold_reduction=sum_money(
                [g.config.threshold_reduction for g in grants if isinstance(g.config, EarlyCashOutConfig)]
            ),
            trust_level_increase=sum(
                g.config.level_increase for g in grants if isinstance(g.config, TrustIncreaseConfig)
            ),
            profile_badges=[
                g.config.badge_key for g in grants if isinstance(g.config, ProfileBadgeConfig) and g.config.badge_key
            ],
            active_bonuses=details,
        )


def apply_point_multiplier(amount: Decimal, multiplier: Decimal) -> Decimal:
    """Scale an earning by a multiplier, rounded to the minor unit."""
    return round_money(amount * multiplier)


def apply_penalty_reduction(amount: Decimal, reduction: Decimal) -> Decimal:
    """Reduce a penalty magnitude by a fraction, rounded to the minor unit."""
    return round_money(amount * (ONE - reduction))


async def apply_point_multiplier_for_user(
    user_id: str,
    amount: Decimal,
    *,
    clock: DateProvider = system_clock,
) -> BonusApplication:
    """Apply the user's active point multiplier to an earning.

    Args:
        user_id: User whose bonuses apply
        amount: Earning before bonuses
        clock: Determines which grants have expired

    Returns:
        BonusApplication; not applied when the combined multiplier is 1 or less
    """
    summary = await get_active_summary(user_id, clock=clock)
    if summary.point_multiplier <= ONE:
        return BonusApplication(applied=False, original_value=amount, modified_value=amount)

    return BonusApplication(
        applied=True,
        original_value=amount,
        modified_value=apply_point_multiplier(amount, summary.point_multiplier),
        description=f"{summary.point_multiplier:.0%} point bonus applied",
    )


async def apply_penalty_reduction_for_user(
    user_id: str,
    amount: Decimal,
    *,
    clock: DateProvider = system_clock,
) -> BonusApplication:
    """Apply the user's active penalty reduction to a penalty magnitude.

    Args:
        user_id: User whose bonuses apply
        amount: Positive penalty before bonuses
        clock: Determines which grants have expired

    Returns:
        BonusApplication; not applied when the user holds no reduction
    """
    summary = await get_active_summary(user_id, clock=clock)
    if summary.penalty_reduction <= ZERO:
        return BonusApplication(applied=False, original_value=amount, modified_value=amount)

    return BonusApplication(
        applied=True,
        original_value=amount,
        modified_value=apply_penalty_reduction(amount, summary.penalty_reduction),
        description=f"{summary.penalty_reduction:.0%} penalty reduction applied",
    )


async def consume_one_time_use(
    user_id: str,
    bonus_type: BonusType,
    *,
    clock: DateProvider = system_clock,
) -> bool:
    """Use one charge of the user's oldest matching one-time bonus.

    A grant whose last use is consumed is deactivated.

    Args:
        user_id: User spending the bonus
        bonus_type: One-time bonus type to consume
        clock: Source of the last-used timestamp

    Returns:
        True if a use was consumed, False when no active grant of that type has uses left
    """
    with span("bonus_service.consume_one_time_use"):
        async with entity_lock("bonus_user", user_id), db_client.transaction():
            now = clock.utc_now()
            grants = await list_active_grants(user_id, now=now)
            candidate = next(
                (g for g in grants if g.bonus_type == bonus_type and g.remaining_uses is not None),
                None,
            )
            if candidate is None:
                return False

            remaining = candidate.remaining_uses - 1
            await db_client.update_record(
                collection="bonus_grants",
                record_id=candidate.id,
                data={"remaining_uses": remaining, "last_used_at": now, "is_active": remaining > 0},
            )

        logger.info(
            "Used one-time bonus",
            extra={"user_id": user_id, "bonus_type": bonus_type, "grant_id": candidate.id, "remaining": remaining},
        )
        return True


async def use_forgiveness(user_id: str, *, clock: DateProvider = system_clock) -> bool:
    return await consume_one_time_use(user_id, BonusType.ONE_TIME_FORGIVENESS, clock=clock)


async def use_double_point_day(user_id: str, *, clock: DateProvider = system_clock) -> bool:
    return await consume_one_time_use(user_id, BonusType.DOUBLE_POINT_DAY, clock=clock)


async def use_streak_protection(user_id: str, *, clock: DateProvider = system_clock) -> bool:
    return await consume_one_time_use(user_id, BonusType.STREAK_PROTECTION, clock=clock)


async def expire_stale(*, clock: DateProvider = system_clock) -> int:
    """Deactivate every active grant whose expiry has passed.

    Args:
        clock: Source of the current time

    Returns:
        Number of grants deactivated
    """
    with span("bonus_service.expire_stale"):
        now = clock.utc_now()
        async with db_client.transaction():
            records = await db_client.list_all_records(collection="bonus_grants", filter_query='is_active = "1"')
            stale = [r for r in records if r.get("expires_at") and _parse_timestamp(r["expires_at"]) <= now]
            for record in stale:
                await db_client.update_record(collection="bonus_grants", record_id=record["id"], data={"is_active": False})
                logger.info(
                    "Expired bonus",
                    extra={"grant_id": record["id"], "bonus_type": record["bonus_type"], "user_id": record["user_id"]},
                )

        return len(stale)


async def are_reminders_suppressed(user_id: str, *, clock: DateProvider = system_clock) -> bool:
    summary = await get_active_summary(user_id, clock=clock)
    return summary.reminders_suppressed


async def get_effective_cash_out_threshold(
    user_id: str,
    base_threshold: Decimal,
    *,
    clock: DateProvider = system_clock,
) -> Decimal:
    """Cash-out threshold after the user's early cash-out bonuses, never below zero."""
    summary = await get_active_summary(user_id, clock=clock)
    return max(ZERO, round_money(base_threshold - summary.cash_out_threshold_reduction))
