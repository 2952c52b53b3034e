"""SQLite schema for the chore ledger (code-first approach)."""

import logging

from choreledger.core import db_client


logger = logging.getLogger(__name__)


TABLE_SCHEMAS: dict[str, str] = {
    "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        assigned_user_id TEXT,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        earn_value TEXT NOT NULL DEFAULT '0.00',
        penalty_value TEXT NOT NULL DEFAULT '0.00',
        schedule_kind TEXT NOT NULL DEFAULT 'specific_days'
            CHECK (schedule_kind IN ('specific_days', 'weekly_frequency')),
        active_days INTEGER NOT NULL DEFAULT 0 CHECK (active_days BETWEEN 0 AND 127),
        weekly_target_count INTEGER NOT NULL DEFAULT 0,
        start_date TEXT,
        end_date TEXT,
        is_repeatable INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
    "schedule_overrides": """CREATE TABLE IF NOT EXISTS schedule_overrides (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        task_id INTEGER NOT NULL REFERENCES tasks(id),
        date TEXT NOT NULL,
        override_type TEXT NOT NULL CHECK (override_type IN ('add', 'remove', 'move')),
        created_by_user_id TEXT,
        UNIQUE(task_id, date)
    )""",
    "completion_records": """CREATE TABLE IF NOT EXISTS completion_records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        task_id INTEGER NOT NULL REFERENCES tasks(id),
        date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'completed', 'approved', 'missed', 'skipped', 'help_requested')),
        completed_at TEXT,
        approved_at TEXT,
        notes TEXT,
        UNIQUE(task_id, date)
    )""",
    "profiles": """CREATE TABLE IF NOT EXISTS profiles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        user_id TEXT NOT NULL UNIQUE,
        display_name TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
    "ledger_accounts": """CREATE TABLE IF NOT EXISTS ledger_accounts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        profile_id INTEGER NOT NULL REFERENCES profiles(id),
        name TEXT NOT NULL,
        is_default INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
    "ledger_transactions": """CREATE TABLE IF NOT EXISTS ledger_transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        account_id INTEGER NOT NULL REFERENCES ledger_accounts(id),
        user_id TEXT,
        completion_record_id INTEGER UNIQUE REFERENCES completion_records(id),
        task_id INTEGER REFERENCES tasks(id),
        week_end_date TEXT,
        amount TEXT NOT NULL,
        type TEXT NOT NULL CHECK (
            type IN ('earning', 'deduction', 'bonus', 'penalty', 'payout', 'adjustment', 'transfer')
        ),
        description TEXT NOT NULL DEFAULT '',
        transaction_date TEXT NOT NULL,
        transfer_group_id TEXT
    )""",
    "achievements": """CREATE TABLE IF NOT EXISTS achievements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        criteria TEXT NOT NULL DEFAULT '',
        bonus_type TEXT,
        bonus_config TEXT,
        bonus_description TEXT
    )""",
    "bonus_grants": """CREATE TABLE IF NOT EXISTS bonus_grants (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        user_id TEXT NOT NULL,
        achievement_id INTEGER NOT NULL REFERENCES achievements(id),
        bonus_type TEXT NOT NULL,
        bonus_config TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        expires_at TEXT,
        remaining_uses INTEGER,
        granted_at TEXT NOT NULL,
        last_used_at TEXT,
        UNIQUE(user_id, achievement_id)
    )""",
    "savings_goals": """CREATE TABLE IF NOT EXISTS savings_goals (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        target_amount TEXT NOT NULL,
        priority INTEGER NOT NULL DEFAULT 0,
        is_primary INTEGER NOT NULL DEFAULT 0,
        is_completed INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
}


INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_user_id ON tasks (assigned_user_id)",
    "CREATE INDEX IF NOT EXISTS idx_completion_records_date ON completion_records (date)",
    "CREATE INDEX IF NOT EXISTS idx_completion_records_status ON completion_records (status)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_accounts_profile_id ON ledger_accounts (profile_id)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_transactions_account_id ON ledger_transactions (account_id)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_transactions_user_id ON ledger_transactions (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_transactions_transfer_group_id ON ledger_transactions (transfer_group_id)",
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_transactions_weekly_penalty"
        " ON ledger_transactions (task_id, week_end_date) WHERE week_end_date IS NOT NULL"
    ),
    "CREATE INDEX IF NOT EXISTS idx_bonus_grants_user_id ON bonus_grants (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_savings_goals_user_id ON savings_goals (user_id)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist."""
    await db_client.execute_script([*TABLE_SCHEMAS.values(), *INDEXES], db_path=db_path)
    logger.info("Database schema initialized", extra={"tables": list(TABLE_SCHEMAS)})
