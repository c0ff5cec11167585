"""Test fixtures for budget coach MCP server tests."""

from datetime import datetime

import pytest

from budget_coach_mcp.database import Database
from budget_coach_mcp.models import AccountTier


# Wednesday. The current month is March 2026, the previous one February.
NOW = datetime(2026, 3, 18, 12, 0)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time used by every time-dependent test."""
    return NOW


@pytest.fixture
def db() -> Database:
    """Create in-memory database with schema."""
    database = Database(":memory:")
    database.init_schema()
    return database


@pytest.fixture
def populated_db(db: Database) -> Database:
    """Create in-memory database populated with test fixtures.

    Free-tier profile; March has 280.00 of spending, February 300.00.
    """
    db.upsert_user_profiles([
        {
            "id": "user-1",
            "name": "Alex",
            "account_tier": AccountTier.FREE,
            "monthly_income": 5000.0,
            "created": 1000000,
        },
    ])

    db.upsert_transactions([
        # March 2026
        {"id": "tx-1", "amount": 50.0, "category": 1, "description": "Groceries",
         "transaction_time": "2026-03-02T09:00:00"},
        {"id": "tx-2", "amount": 120.0, "category": 2, "description": "Concert",
         "transaction_time": "2026-03-07T20:00:00"},
        {"id": "tx-3", "amount": 30.0, "category": 1, "description": "Bakery",
         "transaction_time": "2026-03-10T08:30:00"},
        {"id": "tx-4", "amount": 40.0, "category": 1, "description": "Farmers market",
         "transaction_time": "2026-03-14T11:00:00"},
        {"id": "tx-5", "amount": 25.0, "category": 3, "merchant": "Uber",
         "transaction_time": "2026-03-17T18:15:00"},
        {"id": "tx-6", "amount": -15.0, "category": 1, "description": "Lunch",
         "transaction_time": "2026-03-17T13:00:00"},
        # February 2026
        {"id": "tx-7", "amount": 40.0, "category": 1, "description": "Groceries",
         "transaction_time": "2026-02-05T10:00:00"},
        {"id": "tx-8", "amount": 200.0, "category": 2, "description": "Festival",
         "transaction_time": "2026-02-12T19:00:00"},
        {"id": "tx-9", "amount": 60.0, "category": 3, "description": "Train",
         "transaction_time": "2026-02-20T07:45:00"},
        # Outside both windows
        {"id": "tx-10", "amount": 500.0, "category": 5, "description": "Sofa",
         "transaction_time": "2026-01-15T15:00:00"},
    ])

    db.upsert_budgets([
        {"id": "b-food", "category_name": "Food", "monthly_limit": 400.0,
         "current_spent": 300.0, "alert_threshold": 80.0},
        {"id": "b-ent", "category_name": "Entertainment", "monthly_limit": 200.0,
         "current_spent": 170.0, "alert_threshold": 80.0},
        {"id": "b-transport", "category_name": "Transportation", "monthly_limit": 100.0,
         "current_spent": 120.0, "alert_threshold": 80.0},
        {"id": "b-shopping", "category_name": "Shopping", "monthly_limit": 300.0,
         "current_spent": 0.0, "is_active": False},
    ])

    db.upsert_savings_goals([
        {"id": "g-vacation", "goal_name": "Vacation", "target_amount": 2000.0,
         "current_amount": 450.0, "deadline": "2026-06-30", "priority_level": 3},
        {"id": "g-laptop", "goal_name": "Laptop", "target_amount": 1500.0,
         "current_amount": 1500.0, "priority_level": 2},
        {"id": "g-emergency", "goal_name": "Emergency Fund", "target_amount": 5000.0,
         "current_amount": 1000.0, "priority_level": 1},
    ])

    db.upsert_subscriptions([
        {"id": "s-netflix", "service_name": "Netflix", "amount": 15.99, "billing_cycle": 2,
         "next_billing_date": "2026-03-20", "category": "streaming"},
        {"id": "s-spotify", "service_name": "Spotify", "amount": 9.99, "billing_cycle": 2,
         "next_billing_date": "2026-04-02", "category": "music"},
        {"id": "s-gym", "service_name": "Gym", "amount": 10.0, "billing_cycle": 1,
         "next_billing_date": "2026-03-23", "category": "fitness"},
        {"id": "s-adobe", "service_name": "Adobe", "amount": 120.0, "billing_cycle": 3,
         "next_billing_date": "2026-09-01", "category": "software"},
        {"id": "s-hulu", "service_name": "Hulu", "amount": 7.99, "billing_cycle": 2,
         "next_billing_date": "2026-03-25", "category": "streaming", "is_active": False},
    ])

    return db


@pytest.fixture
def premium_db(populated_db: Database) -> Database:
    """Populated database with the profile upgraded to premium."""
    populated_db.set_account_tier("user-1", AccountTier.PREMIUM)
    return populated_db


@pytest.fixture
def chat_response() -> dict:
    """Successful chat-completion payload."""
    return {
        "model": "test-model",
        "choices": [
            {
                "message": {
                    "role": "assistant",
                    "content": (
                        "You spent $40.00 yesterday, mostly on food.\n"
                        "That keeps you on pace for the month.\n"
                        "- Pack lunch twice this week\n"
                        "- Walk instead of short rides\n"
                        "1. Set a weekend cap"
                    ),
                }
            }
        ],
        "usage": {"total_tokens": 123},
    }
