"""Achievement, bonus configuration and bonus grant domain models.

Each bonus kind has its own configuration model carrying only the fields it
reads. The stored configuration is a flat key/value map; ``parse_bonus_config``
turns it into the typed model once, falling back to each field's default when a
value is missing or malformed.
"""

import json
import logging
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, SerializeAsAny, ValidationError, field_validator, model_validator

from choreledger.core.config import constants


logger = logging.getLogger(__name__)


class BonusType(StrEnum):
    """Reward unlocked by an achievement."""

    POINT_MULTIPLIER = "point_multiplier"
    PENALTY_REDUCTION = "penalty_reduction"
    ONE_TIME_FORGIVENESS = "one_time_forgiveness"
    DOUBLE_POINT_DAY = "double_point_day"
    STREAK_PROTECTION = "streak_protection"
    REMINDER_SUPPRESSION = "reminder_suppression"
    EARLY_CASH_OUT = "early_cash_out"
    TRUST_INCREASE = "trust_increase"
    PROFILE_BADGE = "profile_badge"
    UNLOCK_TIER = "unlock_tier"
    IMMEDIATE_BONUS_POINTS = "immediate_bonus_points"


# Expire after duration_days
TEMPORARY_BONUS_TYPES = frozenset(
    {
        BonusType.POINT_MULTIPLIER,
        BonusType.PENALTY_REDUCTION,
        BonusType.REMINDER_SUPPRESSION,
        BonusType.EARLY_CASH_OUT,
    }
)

# Carry a remaining-uses counter
ONE_TIME_BONUS_TYPES = frozenset(
    {
        BonusType.ONE_TIME_FORGIVENESS,
        BonusType.DOUBLE_POINT_DAY,
        BonusType.STREAK_PROTECTION,
    }
)

PERMANENT_BONUS_TYPES = frozenset(
    {
        BonusType.UNLOCK_TIER,
        BonusType.TRUST_INCREASE,
        BonusType.PROFILE_BADGE,
    }
)


class BonusConfig(BaseModel):
    """Base for per-kind bonus configuration."""


class TemporaryBonusConfig(BonusConfig):
    duration_days: int = Field(default=constants.DEFAULT_BONUS_DURATION_DAYS, ge=0)


class OneTimeBonusConfig(BonusConfig):
    count: int = Field(default=constants.DEFAULT_BONUS_USE_COUNT, ge=0)


class PointMultiplierConfig(TemporaryBonusConfig):
    multiplier: Decimal = Field(default=Decimal("1"), ge=0)


class PenaltyReductionConfig(TemporaryBonusConfig):
    """Fraction of a penalty waived; whole-number percentages (e.g. 50) are accepted."""

    reduction_percent: Decimal = Field(default=Decimal("0"), ge=0, le=1)

    @field_validator("reduction_percent", mode="before")
    @classmethod
    def normalize_percent(cls, v: Any) -> Any:
        """Interpret values above 1 as whole-number percentages."""
        try:
            value = Decimal(str(v))
            if value > 1:
                return value / 100
        except ArithmeticError:
            return v
        return value


class ReminderSuppressionConfig(TemporaryBonusConfig):
    pass


class EarlyCashOutConfig(TemporaryBonusConfig):
    threshold_reduction: Decimal = Field(default=Decimal("0"), ge=0)


class OneTimeForgivenessConfig(OneTimeBonusConfig):
    pass


class DoublePointDayConfig(OneTimeBonusConfig):
    pass


class StreakProtectionConfig(OneTimeBonusConfig):
    pass


class TrustIncreaseConfig(BonusConfig):
    level_increase: int = Field(default=0, ge=0)


class ProfileBadgeConfig(BonusConfig):
    badge_key: str = ""


class UnlockTierConfig(BonusConfig):
    tier: str = ""


class ImmediateBonusPointsConfig(BonusConfig):
    amount: Decimal = Field(default=Decimal("0"))


_CONFIG_MODELS: dict[BonusType, type[BonusConfig]] = {
    BonusType.POINT_MULTIPLIER: PointMultiplierConfig,
    BonusType.PENALTY_REDUCTION: PenaltyReductionConfig,
    BonusType.ONE_TIME_FORGIVENESS: OneTimeForgivenessConfig,
    BonusType.DOUBLE_POINT_DAY: DoublePointDayConfig,
    BonusType.STREAK_PROTECTION: StreakProtectionConfig,
    BonusType.REMINDER_SUPPRESSION: ReminderSuppressionConfig,
    BonusType.EARLY_CASH_OUT: EarlyCashOutConfig,
    BonusType.TRUST_INCREASE: TrustIncreaseConfig,
    BonusType.PROFILE_BADGE: ProfileBadgeConfig,
    BonusType.UNLOCK_TIER: UnlockTierConfig,
    BonusType.IMMEDIATE_BONUS_POINTS: ImmediateBonusPointsConfig,
}


def load_config_map(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode a stored configuration map, returning {} for anything that is not a JSON object."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Malformed bonus configuration, using defaults", extra={"raw": str(raw)[:200]})
        return {}
    return decoded if isinstance(decoded, dict) else {}


def parse_bonus_config(bonus_type: BonusType, raw: str | dict[str, Any] | None) -> BonusConfig:
    """Parse a stored configuration map into the typed model for ``bonus_type``.

    Each field is validated on its own so that one bad value only resets that
    field to its default.
    """
    model = _CONFIG_MODELS[bonus_type]
    values = load_config_map(raw)
    accepted: dict[str, Any] = {}
    for name in model.model_fields:
        if name not in values:
            continue
        try:
            model.model_validate({name: values[name]})
        except ValidationError:
            logger.warning(
                "Invalid bonus configuration value, using default",
                extra={"bonus_type": bonus_type, "field": name, "value": str(values[name])},
            )
            continue
        accepted[name] = values[name]
    return model.model_validate(accepted)


def dump_bonus_config(config: BonusConfig) -> dict[str, Any]:
    """Flatten a typed configuration back into the stored key/value map."""
    return config.model_dump(mode="json")


class Achievement(BaseModel):
    """Achievement that may unlock a bonus."""

    id: str = Field(..., description="Unique achievement ID from database")
    code: str = Field(..., description="Stable unique code (e.g., 'first_week')")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="What the achievement is for")
    criteria: str = Field(default="", description="Free-text criteria descriptor")
    bonus_type: BonusType | None = Field(default=None, description="Bonus unlocked, if any")
    bonus_config: dict[str, Any] = Field(default_factory=dict, description="Flat bonus configuration map")
    bonus_description: str | None = Field(default=None, description="Display text for the bonus")

    @field_validator("bonus_config", mode="before")
    @classmethod
    def decode_bonus_config(cls, v: Any) -> dict[str, Any]:
        return load_config_map(v)

    @field_validator("bonus_type", mode="before")
    @classmethod
    def empty_bonus_type_is_none(cls, v: Any) -> Any:
        return v or None

    def parsed_config(self) -> BonusConfig | None:
        if self.bonus_type is None:
            return None
        return parse_bonus_config(self.bonus_type, self.bonus_config)


class BonusGrant(BaseModel):
    """A bonus held by a user, created once per (user, achievement)."""

    id: str
    user_id: str
    achievement_id: str
    bonus_type: BonusType
    config: SerializeAsAny[BonusConfig] = Field(
        default_factory=BonusConfig,
        description="Typed configuration snapshot",
    )
    is_active: bool = True
    expires_at: str | None = Field(default=None, description="Expiry timestamp (ISO format, UTC)")
    remaining_uses: int | None = None
    granted_at: str = Field(..., description="Grant timestamp (ISO format, UTC)")
    last_used_at: str | None = None

    @model_validator(mode="before")
    @classmethod
    def parse_stored_config(cls, data: Any) -> Any:
        """Build the typed ``config`` from the stored ``bonus_config`` map."""
        if not isinstance(data, dict) or "config" in data:
            return data
        bonus_type = data.get("bonus_type")
        if bonus_type not in BonusType.__members__.values():
            return data
        parsed = dict(data)
        parsed["config"] = parse_bonus_config(BonusType(bonus_type), parsed.pop("bonus_config", None))
        return parsed
