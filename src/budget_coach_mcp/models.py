"""Typed records for the budget coach cache."""

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum, IntEnum

from .utils import parse_date, parse_datetime


class TransactionCategory(IntEnum):
    """Spending category of a transaction (stored as integer)."""

    UNSPECIFIED = 0
    FOOD = 1
    ENTERTAINMENT = 2
    TRANSPORTATION = 3
    UTILITIES = 4
    SHOPPING = 5
    HEALTH = 6
    SUBSCRIPTIONS = 7
    OTHER = 8

    @property
    def label(self) -> str:
        return self.name.capitalize()


class BillingCycle(IntEnum):
    """Subscription billing cycle."""

    WEEKLY = 1
    MONTHLY = 2
    YEARLY = 3

    @property
    def multiplier(self) -> int:
        """Number of charges per year."""
        return CYCLE_MULTIPLIERS[self]


CYCLE_MULTIPLIERS = {
    BillingCycle.WEEKLY: 52,
    BillingCycle.MONTHLY: 12,
    BillingCycle.YEARLY: 1,
}


class AccountTier(str, Enum):
    """Account tier of the user profile."""

    FREE = "free"
    PREMIUM = "premium"


class Granularity(str, Enum):
    """Time-window selector for spending analytics."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


SUBSCRIPTION_CATEGORIES = {
    "streaming": "Streaming",
    "music": "Music",
    "fitness": "Fitness",
    "software": "Software",
    "news": "News",
    "shopping": "Shopping",
    "productivity": "Productivity",
    "utilities": "Utilities",
    "food": "Food & Delivery",
    "other": "Other",
}


@dataclass
class Transaction:
    id: str
    amount: float
    category: TransactionCategory
    timestamp: datetime
    description: str = ""
    merchant: str | None = None
    is_recurring: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Transaction":
        return cls(
            id=row["id"],
            amount=row["amount"] or 0.0,
            category=_category(row["category"]),
            timestamp=parse_datetime(row["transaction_time"]),
            description=row["description"] or "",
            merchant=row["merchant"],
            is_recurring=bool(row["is_recurring"]),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": round(self.amount, 2),
            "category": self.category.label,
            "date": self.timestamp.isoformat(),
            "description": self.description,
            "merchant": self.merchant,
            "is_recurring": self.is_recurring,
        }


@dataclass
class Budget:
    id: str
    category_name: str
    monthly_limit: float
    current_spent: float = 0.0
    alert_threshold: float = 80.0
    is_active: bool = True

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Budget":
        return cls(
            id=row["id"],
            category_name=row["category_name"] or "Uncategorized",
            monthly_limit=row["monthly_limit"] or 0.0,
            current_spent=row["current_spent"] or 0.0,
            alert_threshold=row["alert_threshold"] if row["alert_threshold"] is not None else 80.0,
            is_active=bool(row["is_active"]),
        )


@dataclass
class SavingsGoal:
    id: str
    goal_name: str
    target_amount: float
    current_amount: float = 0.0
    deadline: date | None = None
    priority_level: int = 2
    is_completed: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SavingsGoal":
        return cls(
            id=row["id"],
            goal_name=row["goal_name"] or "",
            target_amount=row["target_amount"] or 0.0,
            current_amount=row["current_amount"] or 0.0,
            deadline=parse_date(row["deadline"]) if row["deadline"] else None,
            priority_level=row["priority_level"] or 2,
            is_completed=bool(row["is_completed"]),
        )

    @property
    def remaining(self) -> float:
        return self.target_amount - self.current_amount


@dataclass
class Subscription:
    id: str
    service_name: str
    amount: float
    billing_cycle: BillingCycle
    next_billing_date: date
    is_active: bool = True
    category: str = "other"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Subscription":
        return cls(
            id=row["id"],
            service_name=row["service_name"] or "",
            amount=row["amount"] or 0.0,
            billing_cycle=BillingCycle(row["billing_cycle"] or BillingCycle.MONTHLY),
            next_billing_date=parse_date(row["next_billing_date"]),
            is_active=bool(row["is_active"]),
            category=row["category"] or "other",
        )


@dataclass
class UserProfile:
    id: str
    name: str
    account_tier: AccountTier = AccountTier.FREE
    monthly_income: float = 0.0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "UserProfile":
        try:
            tier = AccountTier(row["account_tier"])
        except ValueError:
            tier = AccountTier.FREE
        return cls(
            id=row["id"],
            name=row["name"] or "",
            account_tier=tier,
            monthly_income=row["monthly_income"] or 0.0,
        )

    @property
    def is_premium(self) -> bool:
        return self.account_tier == AccountTier.PREMIUM


@dataclass
class Insight:
    """A computed, human-readable observation. Never persisted."""

    message: str
    type: str = "neutral"  # 'success', 'positive', 'neutral', 'warning'
    metric: str | None = None

    def to_dict(self) -> dict:
        return {"message": self.message, "type": self.type, "metric": self.metric}


def _category(value: int | None) -> TransactionCategory:
    try:
        return TransactionCategory(value or 0)
    except ValueError:
        return TransactionCategory.UNSPECIFIED
