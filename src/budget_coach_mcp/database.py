"""SQLite database schema and CRUD operations for the budget coach cache."""

import logging
import sqlite3
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Any

from .models import (
    AccountTier,
    Budget,
    SavingsGoal,
    Subscription,
    Transaction,
    UserProfile,
)

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS user_profiles (
    id              TEXT PRIMARY KEY,
    name            TEXT,
    account_tier    TEXT DEFAULT 'free',   -- 'free' | 'premium'
    monthly_income  REAL DEFAULT 0,
    created         INTEGER
);

CREATE TABLE IF NOT EXISTS transactions (
    id                TEXT PRIMARY KEY,
    user_id           TEXT,
    amount            REAL NOT NULL,       -- always >= 0
    category          INTEGER DEFAULT 0,   -- TransactionCategory
    description       TEXT,
    merchant          TEXT,
    transaction_time  TEXT NOT NULL,       -- ISO timestamp
    is_recurring      INTEGER DEFAULT 0,
    created           INTEGER
);

CREATE TABLE IF NOT EXISTS budgets (
    id               TEXT PRIMARY KEY,
    user_id          TEXT,
    category_name    TEXT,
    monthly_limit    REAL DEFAULT 0,
    current_spent    REAL DEFAULT 0,       -- running total, accrued externally
    alert_threshold  REAL DEFAULT 80,      -- percent
    is_active        INTEGER DEFAULT 1,
    created          INTEGER
);

CREATE TABLE IF NOT EXISTS savings_goals (
    id              TEXT PRIMARY KEY,
    user_id         TEXT,
    goal_name       TEXT,
    target_amount   REAL NOT NULL,
    current_amount  REAL DEFAULT 0,
    deadline        TEXT,                  -- 'YYYY-MM-DD' or NULL
    priority_level  INTEGER DEFAULT 2,     -- 1 low .. 3 high
    is_completed    INTEGER DEFAULT 0,     -- derived: current >= target
    created         INTEGER
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id                 TEXT PRIMARY KEY,
    user_id            TEXT,
    service_name       TEXT,
    amount             REAL NOT NULL,
    billing_cycle      INTEGER DEFAULT 2,  -- 1 weekly, 2 monthly, 3 yearly
    next_billing_date  TEXT NOT NULL,      -- 'YYYY-MM-DD'
    is_active          INTEGER DEFAULT 1,
    category           TEXT DEFAULT 'other',
    created            INTEGER
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_tx_time ON transactions(transaction_time);
CREATE INDEX IF NOT EXISTS idx_tx_category ON transactions(category);
CREATE INDEX IF NOT EXISTS idx_budgets_active ON budgets(is_active);
CREATE INDEX IF NOT EXISTS idx_goals_completed ON savings_goals(is_completed);
CREATE INDEX IF NOT EXISTS idx_subs_active ON subscriptions(is_active);
"""

TABLES = ("user_profiles", "transactions", "budgets", "savings_goals", "subscriptions")


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _new_id(item: dict[str, Any]) -> str:
    return item.get("id") or str(uuid.uuid4())


class Database:
    """SQLite database wrapper for the budget coach cache."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite file, or None/":memory:" for in-memory DB.
        """
        if db_path is None:
            db_path = ":memory:"
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrency (only for file-based DBs)
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            logger.debug("Opened database %s", self.db_path)
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def init_schema(self) -> None:
        """Create all tables and indexes."""
        conn = self.connect()
        conn.executescript(SCHEMA)
        conn.executescript(INDEXES)
        conn.commit()

    # -------------------------------------------------------------------------
    # Upserts (used by importers and fixtures)
    # -------------------------------------------------------------------------

    def upsert_user_profiles(self, items: list[dict[str, Any]]) -> int:
        """Upsert user profiles."""
        conn = self.connect()
        count = 0
        for item in items:
            tier = item.get("account_tier", AccountTier.FREE)
            conn.execute(
                """
                INSERT OR REPLACE INTO user_profiles
                (id, name, account_tier, monthly_income, created)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    _new_id(item),
                    item.get("name"),
                    tier.value if isinstance(tier, AccountTier) else tier,
                    item.get("monthly_income", 0.0),
                    item.get("created"),
                ),
            )
            count += 1
        conn.commit()
        return count

    def upsert_transactions(self, items: list[dict[str, Any]]) -> int:
        """Upsert transactions. Negative amounts are stored as absolute values."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                """
                INSERT OR REPLACE INTO transactions
                (id, user_id, amount, category, description, merchant,
                 transaction_time, is_recurring, created)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _new_id(item),
                    item.get("user_id"),
                    abs(item.get("amount") or 0.0),
                    int(item.get("category") or 0),
                    item.get("description"),
                    item.get("merchant"),
                    _iso(item["transaction_time"]),
                    1 if item.get("is_recurring", False) else 0,
                    item.get("created"),
                ),
            )
            count += 1
        conn.commit()
        return count

    def upsert_budgets(self, items: list[dict[str, Any]]) -> int:
        """Upsert budgets."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                """
                INSERT OR REPLACE INTO budgets
                (id, user_id, category_name, monthly_limit, current_spent,
                 alert_threshold, is_active, created)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _new_id(item),
                    item.get("user_id"),
                    item.get("category_name"),
                    item.get("monthly_limit", 0.0),
                    item.get("current_spent", 0.0),
                    item.get("alert_threshold", 80.0),
                    0 if item.get("is_active") is False else 1,
                    item.get("created"),
                ),
            )
            count += 1
        conn.commit()
        return count

    def upsert_savings_goals(self, items: list[dict[str, Any]]) -> int:
        """Upsert savings goals. The completed flag is always derived."""
        conn = self.connect()
        count = 0
        for item in items:
            target = item["target_amount"]
            current = item.get("current_amount", 0.0) or 0.0
            conn.execute(
                """
                INSERT OR REPLACE INTO savings_goals
                (id, user_id, goal_name, target_amount, current_amount,
                 deadline, priority_level, is_completed, created)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _new_id(item),
                    item.get("user_id"),
                    item.get("goal_name"),
                    target,
                    current,
                    _iso(item.get("deadline")),
                    item.get("priority_level", 2),
                    1 if current >= target else 0,
                    item.get("created"),
                ),
            )
            count += 1
        conn.commit()
        return count

    def upsert_subscriptions(self, items: list[dict[str, Any]]) -> int:
        """Upsert subscriptions. Every subscription needs a next billing date."""
        conn = self.connect()
        count = 0
        for item in items:
            billing_date = item.get("next_billing_date")
            if billing_date is None:
                raise ValueError(f"Subscription {item.get('id')} has no next_billing_date")
            conn.execute(
                """
                INSERT OR REPLACE INTO subscriptions
                (id, user_id, service_name, amount, billing_cycle,
                 next_billing_date, is_active, category, created)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _new_id(item),
                    item.get("user_id"),
                    item.get("service_name"),
                    item["amount"],
                    int(item.get("billing_cycle", 2)),
                    _iso(billing_date),
                    0 if item.get("is_active") is False else 1,
                    item.get("category", "other"),
                    item.get("created"),
                ),
            )
            count += 1
        conn.commit()
        return count

    # -------------------------------------------------------------------------
    # Typed reads
    # -------------------------------------------------------------------------

    def list_transactions(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Transaction]:
        """List transactions, optionally within an inclusive time range."""
        conn = self.connect()
        rows = conn.execute(
            "SELECT * FROM transactions ORDER BY transaction_time DESC"
        ).fetchall()
        transactions = [Transaction.from_row(row) for row in rows]
        # Stored strings may carry offsets, so filter on parsed values
        if start is not None:
            transactions = [t for t in transactions if t.timestamp >= start]
        if end is not None:
            transactions = [t for t in transactions if t.timestamp <= end]
        return transactions

    def list_budgets(self, active_only: bool = True) -> list[Budget]:
        """List budgets (active ones by default)."""
        conn = self.connect()
        query = "SELECT * FROM budgets"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY category_name"
        return [Budget.from_row(row) for row in conn.execute(query).fetchall()]

    def list_savings_goals(self) -> list[SavingsGoal]:
        """List all savings goals."""
        conn = self.connect()
        rows = conn.execute("SELECT * FROM savings_goals ORDER BY goal_name").fetchall()
        return [SavingsGoal.from_row(row) for row in rows]

    def get_savings_goal(self, goal_id: str) -> SavingsGoal | None:
        """Get a single savings goal by ID."""
        conn = self.connect()
        row = conn.execute(
            "SELECT * FROM savings_goals WHERE id = ?", (goal_id,)
        ).fetchone()
        return SavingsGoal.from_row(row) if row else None

    def list_subscriptions(self) -> list[Subscription]:
        """List all subscriptions, active and paused."""
        conn = self.connect()
        rows = conn.execute(
            "SELECT * FROM subscriptions ORDER BY next_billing_date"
        ).fetchall()
        return [Subscription.from_row(row) for row in rows]

    def get_user_profile(self) -> UserProfile | None:
        """Get the primary (first created) user profile."""
        conn = self.connect()
        row = conn.execute(
            "SELECT * FROM user_profiles ORDER BY created, id LIMIT 1"
        ).fetchone()
        return UserProfile.from_row(row) if row else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def set_goal_amount(self, goal_id: str, current_amount: float) -> bool:
        """Set a goal's current amount and recompute its completed flag."""
        conn = self.connect()
        cursor = conn.execute(
            """
            UPDATE savings_goals
            SET current_amount = ?,
                is_completed = CASE WHEN ? >= target_amount THEN 1 ELSE 0 END
            WHERE id = ?
            """,
            (current_amount, current_amount, goal_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def set_account_tier(self, profile_id: str, tier: AccountTier) -> bool:
        """Change the account tier of a profile."""
        conn = self.connect()
        cursor = conn.execute(
            "UPDATE user_profiles SET account_tier = ? WHERE id = ?",
            (tier.value, profile_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def delete_by_ids(self, table: str, ids: list[str]) -> int:
        """Delete records by IDs."""
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        if not ids:
            return 0
        conn = self.connect()
        placeholders = ",".join("?" * len(ids))
        cursor = conn.execute(
            f"DELETE FROM {table} WHERE id IN ({placeholders})", ids  # noqa: S608
        )
        conn.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------------

    def count_table(self, table: str) -> int:
        """Count rows in a table."""
        conn = self.connect()
        row = conn.execute(f"SELECT COUNT(*) as cnt FROM {table}").fetchone()  # noqa: S608
        return row["cnt"]
