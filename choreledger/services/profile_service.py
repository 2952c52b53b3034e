"""Profile and ledger account resolution."""

import logging

from choreledger.core import db_client
from choreledger.core.config import settings
from choreledger.core.logging import span
from choreledger.domain.ledger import ChildProfile, LedgerAccount


logger = logging.getLogger(__name__)


async def get_profile(user_id: str) -> ChildProfile | None:
    """Get the profile for a user, or None if the user has none."""
    record = await db_client.get_first_record(
        collection="profiles",
        filter_query=f'user_id = "{db_client.sanitize_param(user_id)}"',
    )
    return ChildProfile(**record) if record else None


async def list_profiles(*, include_inactive: bool = False) -> list[ChildProfile]:
    """List profiles in creation order."""
    filter_query = "" if include_inactive else 'is_active = "1"'
    records = await db_client.list_all_records(collection="profiles", filter_query=filter_query)
    return [ChildProfile(**r) for r in records]


async def get_account(account_id: str) -> LedgerAccount:
    """Get a ledger account by ID.

    Raises:
        KeyError: If the account does not exist
    """
    record = await db_client.get_record(collection="ledger_accounts", record_id=account_id)
    return LedgerAccount(**record)


async def get_account_owner(account: LedgerAccount) -> ChildProfile:
    """Get the profile that owns an account.

    Raises:
        KeyError: If the profile does not exist
    """
    record = await db_client.get_record(collection="profiles", record_id=account.profile_id)
    return ChildProfile(**record)


async def get_accounts(user_id: str, *, include_inactive: bool = False) -> list[LedgerAccount]:
    """List a user's ledger accounts in creation order."""
    profile = await get_profile(user_id)
    if profile is None:
        return []

    filter_query = f'profile_id = "{db_client.sanitize_param(profile.id)}"'
    if not include_inactive:
        filter_query += ' && is_active = "1"'
    records = await db_client.list_all_records(collection="ledger_accounts", filter_query=filter_query)
    return [LedgerAccount(**r) for r in records]


async def get_default_account(user_id: str) -> LedgerAccount | None:
    """Resolve the account that receives a user's task earnings and deductions.

    Prefers the active default account, then any active account.
    """
    accounts = await get_accounts(user_id)
    for account in accounts:
        if account.is_default:
            return account
    return accounts[0] if accounts else None


async def create_profile(user_id: str, display_name: str) -> ChildProfile:
    """Create a profile together with its default spending account."""
    with span("profile_service.create_profile"):
        async with db_client.transaction():
            record = await db_client.create_record(
                collection="profiles",
                data={"user_id": user_id, "display_name": display_name, "is_active": True},
            )
            profile = ChildProfile(**record)
            await create_account(profile.id, settings.default_account_name, is_default=True)

        logger.info("Created profile", extra={"user_id": user_id, "profile_id": profile.id})
        return profile


async def create_account(profile_id: str, name: str, *, is_default: bool = False) -> LedgerAccount:
    """Create a ledger account for a profile.

    Making the new account the default clears the flag on the profile's other accounts.

    Args:
        profile_id: Owning profile
        name: Account name
        is_default: Whether the account receives task earnings

    Returns:
        The created account
    """
    with span("profile_service.create_account"):
        async with db_client.transaction():
            if is_default:
                existing = await db_client.list_all_records(
                    collection="ledger_accounts",
                    filter_query=f'profile_id = "{db_client.sanitize_param(profile_id)}" && is_default = "1"',
                )
                for account in existing:
                    await db_client.update_record(
                        collection="ledger_accounts",
                        record_id=account["id"],
                        data={"is_default": False},
                    )

            record = await db_client.create_record(
                collection="ledger_accounts",
                data={"profile_id": profile_id, "name": name, "is_default": is_default, "is_active": True},
            )

        logger.info("Created ledger account", extra={"profile_id": profile_id, "account_id": record["id"]})
        return LedgerAccount(**record)
