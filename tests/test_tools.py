"""Tests for MCP tool business logic and resources."""

from datetime import datetime
from unittest.mock import AsyncMock, Mock, patch

import pytest

from budget_coach_mcp.analytics import (
    add_goal_contribution,
    build_daily_insight_inputs,
    check_feature_access,
    generate_daily_insight_for_user,
    generate_savings_plan_for_goal,
    get_budget_status,
    get_budgets_resource,
    get_dashboard_overview,
    get_goals_resource,
    get_profile_resource,
    get_savings_goals,
    get_spending_analytics,
    get_subscription_summary,
    get_subscriptions_resource,
    get_transactions_resource,
)
from budget_coach_mcp.coach import CoachClient, ValidationError
from budget_coach_mcp.database import Database
from budget_coach_mcp.models import AccountTier


SAVINGS_REPLY = """RECOMMENDATION: Cook at home
SAVINGS: $120/month
DIFFICULTY: easy
RECOMMENDATION: Cancel unused apps
SAVINGS: $30.50/month
DIFFICULTY: medium
"""


@pytest.fixture
def client() -> CoachClient:
    return CoachClient("https://ai.example.com/v1/chat/completions", "secret", "test-model")


def _mock_response(payload: dict) -> Mock:
    mock_response = Mock()
    mock_response.status_code = 200
    mock_response.json.return_value = payload
    return mock_response


class TestSpendingAnalytics:
    """Test get_spending_analytics."""

    def test_monthly_totals(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "monthly", now=now)

        assert result["granularity"] == "monthly"
        assert result["period"] == {"start": "2026-03-01", "end": "2026-03-31"}
        assert result["previous_period"] == {"start": "2026-02-01", "end": "2026-02-28"}
        assert result["total_spending"] == 280.0
        assert result["previous_total_spending"] == 300.0
        assert result["difference"] == 20.0
        assert result["change_pct"] == -6.7
        assert result["transaction_count"] == 6
        assert result["average_transaction"] == 46.67

    def test_monthly_categories(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "monthly", now=now)

        assert result["categories"] == [
            {"category": "Food", "amount": 135.0, "percentage": 48.2},
            {"category": "Entertainment", "amount": 120.0, "percentage": 42.9},
            {"category": "Transportation", "amount": 25.0, "percentage": 8.9},
        ]
        food = result["top_category_changes"][0]
        assert food["previous_amount"] == 40.0
        assert food["change_pct"] == 237.5
        assert food["notable"] is True

    def test_monthly_insights(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "monthly", now=now)

        assert result["weekend_vs_weekday"] == {"weekend": 160.0, "weekday": 120.0}
        assert result["insights"] == [
            "Your weekend spending is 233% higher than weekdays.",
            "Food spending is 238% higher than the previous period.",
            "You tend to spend more during the first week of the month.",
            "Great job! You've reduced spending by 7% this period.",
        ]

    def test_monthly_trend(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "monthly", now=now)

        assert result["trend"] == [
            {"date": "Mar 2", "amount": 50.0},
            {"date": "Mar 7", "amount": 120.0},
            {"date": "Mar 10", "amount": 30.0},
            {"date": "Mar 14", "amount": 40.0},
            {"date": "Mar 17", "amount": 40.0},
        ]

    def test_weekly(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "weekly", now=now)

        assert result["period"] == {"start": "2026-03-16", "end": "2026-03-22"}
        assert result["total_spending"] == 40.0
        assert result["previous_total_spending"] == 70.0
        assert result["trend"] == [{"date": "Tue", "amount": 40.0}]
        assert result["insights"] == ["Great job! You've reduced spending by 43% this period."]

    def test_yearly(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "yearly", now=now)

        assert result["total_spending"] == 1080.0
        assert result["previous_total_spending"] == 0.0
        assert result["change_pct"] == 100.0

    def test_empty_database(self, db: Database, now: datetime):
        result = get_spending_analytics(db, "monthly", now=now)

        assert result["total_spending"] == 0.0
        assert result["change_pct"] == 0.0
        assert result["average_transaction"] == 0.0
        assert result["categories"] == []
        assert result["insights"] == []

    def test_unknown_granularity(self, populated_db: Database, now: datetime):
        result = get_spending_analytics(populated_db, "daily", now=now)
        assert "error" in result


class TestBudgetStatus:
    """Test get_budget_status."""

    def test_budget_status(self, populated_db: Database):
        result = get_budget_status(populated_db)

        assert [b["category"] for b in result["budgets"]] == ["Transportation", "Entertainment", "Food"]
        assert [b["status"] for b in result["budgets"]] == ["exceeded", "warning", "ok"]
        assert result["budgets"][0]["progress_pct"] == 100.0
        assert result["exceeded_count"] == 1
        assert result["warning_count"] == 1
        assert result["totals"]["total_budget"] == 700.0
        assert result["totals"]["utilization_pct"] == 84.3

    def test_no_budgets(self, db: Database):
        result = get_budget_status(db)

        assert result["budgets"] == []
        assert result["totals"]["total_budget"] == 0.0
        assert "message" in result


class TestSavingsGoals:
    """Test get_savings_goals and add_goal_contribution."""

    def test_sort_by_deadline(self, populated_db: Database, now: datetime):
        result = get_savings_goals(populated_db, now=now)

        assert [g["id"] for g in result["goals"]] == ["g-vacation", "g-emergency", "g-laptop"]

    def test_sort_by_progress_and_priority(self, populated_db: Database, now: datetime):
        by_progress = get_savings_goals(populated_db, sort_by="progress", now=now)
        by_priority = get_savings_goals(populated_db, sort_by="priority", now=now)

        assert [g["id"] for g in by_progress["goals"]] == ["g-laptop", "g-vacation", "g-emergency"]
        assert [g["id"] for g in by_priority["goals"]] == ["g-vacation", "g-laptop", "g-emergency"]

    def test_filter(self, populated_db: Database, now: datetime):
        active = get_savings_goals(populated_db, filter_by="active", now=now)
        completed = get_savings_goals(populated_db, filter_by="completed", now=now)

        assert {g["id"] for g in active["goals"]} == {"g-vacation", "g-emergency"}
        assert [g["id"] for g in completed["goals"]] == ["g-laptop"]
        # Totals always cover every goal
        assert active["totals"]["completed_count"] == 1

    def test_goal_details(self, populated_db: Database, now: datetime):
        result = get_savings_goals(populated_db, now=now)
        vacation = result["goals"][0]

        assert vacation["progress_pct"] == 22.5
        assert vacation["days_remaining"] == 104
        assert vacation["next_milestone"]["percentage"] == 25
        assert vacation["next_milestone"]["amount_needed"] == 50.0
        assert vacation["insight"] == {
            "message": "Save $104.33 weekly to reach your goal by the deadline.",
            "type": "neutral",
            "metric": "weekly_savings_needed",
        }

        totals = result["totals"]
        assert totals["total_saved"] == 2950.0
        assert totals["total_target"] == 8500.0
        assert totals["overall_progress_pct"] == 34.7

    def test_completed_goal(self, populated_db: Database, now: datetime):
        result = get_savings_goals(populated_db, filter_by="completed", now=now)
        laptop = result["goals"][0]

        assert laptop["completed"] is True
        assert laptop["next_milestone"] is None
        assert laptop["insight"]["type"] == "success"

    def test_contribution_crossing_milestone(self, populated_db: Database):
        result = add_goal_contribution(populated_db, "g-vacation", 50.0)

        assert result["new_balance"] == 500.0
        assert result["milestone"]["percentage"] == 25
        assert result["message"] == "25% Complete Great start! You're building momentum!"
        assert populated_db.get_savings_goal("g-vacation").current_amount == 500.0

    def test_contribution_without_milestone(self, populated_db: Database):
        result = add_goal_contribution(populated_db, "g-emergency", 100.0)

        assert result["milestone"] is None
        assert result["message"] == "Added $100.00. New balance: $1100.00"

    def test_contribution_completes_goal(self, populated_db: Database):
        result = add_goal_contribution(populated_db, "g-vacation", 1550.0)

        # One contribution reports one milestone, the lowest crossed
        assert result["milestone"]["percentage"] == 25
        assert result["goal"]["completed"] is True
        assert populated_db.get_savings_goal("g-vacation").is_completed is True

    def test_invalid_amount(self, populated_db: Database):
        assert "error" in add_goal_contribution(populated_db, "g-vacation", 0)
        assert "error" in add_goal_contribution(populated_db, "g-vacation", -10)
        assert populated_db.get_savings_goal("g-vacation").current_amount == 450.0

    def test_non_numeric_amount(self, populated_db: Database):
        """Test that amounts from loose tool arguments are validated, not raised."""
        for bad in ("abc", None, [], float("nan")):
            result = add_goal_contribution(populated_db, "g-vacation", bad)
            assert result["error"] == "Please enter a valid amount"
        assert populated_db.get_savings_goal("g-vacation").current_amount == 450.0

    def test_numeric_string_amount(self, populated_db: Database):
        result = add_goal_contribution(populated_db, "g-vacation", "50")

        assert result["new_balance"] == 500.0
        assert populated_db.get_savings_goal("g-vacation").current_amount == 500.0

    def test_unknown_goal(self, populated_db: Database):
        result = add_goal_contribution(populated_db, "nope", 10.0)
        assert "not found" in result["error"]


class TestSubscriptionSummary:
    """Test get_subscription_summary."""

    def test_default_listing(self, populated_db: Database, now: datetime):
        result = get_subscription_summary(populated_db, now=now)

        assert [s["service"] for s in result["subscriptions"]] == ["Netflix", "Gym", "Spotify", "Adobe"]
        netflix = result["subscriptions"][0]
        assert netflix["days_until_renewal"] == 2
        assert netflix["renewing_soon"] is True
        assert netflix["yearly_cost"] == 191.88

        gym = result["subscriptions"][1]
        assert gym["yearly_cost"] == 520.0
        assert gym["monthly_equivalent"] == 43.33

    def test_totals(self, populated_db: Database, now: datetime):
        totals = get_subscription_summary(populated_db, now=now)["totals"]

        assert totals["yearly_total"] == 951.76
        assert totals["monthly_total"] == 79.31
        assert totals["active_count"] == 4
        assert totals["paused_count"] == 1
        assert totals["upcoming_renewals"] == 2
        assert list(totals["by_category_yearly"])[0] == "fitness"

    def test_sort_by_cost(self, populated_db: Database, now: datetime):
        result = get_subscription_summary(populated_db, sort_by="cost", now=now)
        assert [s["service"] for s in result["subscriptions"]] == ["Gym", "Netflix", "Adobe", "Spotify"]

    def test_category_filter_with_paused(self, populated_db: Database, now: datetime):
        result = get_subscription_summary(
            populated_db, category="streaming", active_only=False, now=now
        )

        assert [s["service"] for s in result["subscriptions"]] == ["Netflix", "Hulu"]
        assert result["subscriptions"][1]["active"] is False

    def test_insights(self, populated_db: Database, now: datetime):
        messages = [i["message"] for i in get_subscription_summary(populated_db, now=now)["insights"]]

        assert messages[0] == "You're spending $79.31/month on subscriptions."
        assert messages[1] == "That's $951.76/year in total subscription costs."
        assert "You have 2 subscriptions renewing in the next 7 days ($25.99)." in messages
        assert messages[-1].startswith("You have 1 paused subscription.")

    def test_subscription_without_billing_date_is_refused(
        self, populated_db: Database, now: datetime
    ):
        """Test that a subscription missing its billing date never reaches the listing."""
        with pytest.raises(ValueError):
            populated_db.upsert_subscriptions([
                {"id": "s-broken", "service_name": "Broken", "amount": 9.99,
                 "next_billing_date": None},
            ])

        result = get_subscription_summary(populated_db, now=now)
        assert [s["service"] for s in result["subscriptions"]] == ["Netflix", "Gym", "Spotify", "Adobe"]
        assert result["totals"]["active_count"] == 4


class TestDashboardAndEntitlements:
    """Test get_dashboard_overview and check_feature_access."""

    def test_dashboard_free(self, populated_db: Database, now: datetime):
        result = get_dashboard_overview(populated_db, now=now)

        assert result["account_tier"] == "free"
        assert result["budget"]["spent"] == 590.0
        assert result["goals"] == {
            "active_count": 2,
            "saved": 1450.0,
            "target": 7000.0,
            "progress_pct": 20.7,
        }
        assert result["predictive_alert"]["upgrade_required"] is True

    def test_dashboard_premium(self, premium_db: Database, now: datetime):
        result = get_dashboard_overview(premium_db, now=now)

        assert result["account_tier"] == "premium"
        assert result["predictive_alert"] == {"projected_overspend": 283.33, "trend_pct": 4.3}

    def test_feature_access(self, populated_db: Database):
        assert check_feature_access(populated_db, "AI insight")["visible"] is False

        populated_db.set_account_tier("user-1", AccountTier.PREMIUM)
        assert check_feature_access(populated_db, "AI insight")["visible"] is True

    def test_feature_list(self, populated_db: Database):
        features = check_feature_access(populated_db)["features"]

        assert features["budgets"] is True
        assert features["ai_insight"] is False
        assert features["predictive_alerts"] is False

    def test_no_profile_is_free(self, db: Database):
        assert check_feature_access(db, "ai_insight") == {
            "account_tier": "free",
            "feature": "ai_insight",
            "visible": False,
        }


class TestAICoaching:
    """Test the premium AI coaching tools."""

    def test_daily_inputs(self, populated_db: Database, now: datetime):
        transactions, budget, patterns = build_daily_insight_inputs(populated_db, now)

        assert {t.id for t in transactions} == {"tx-5", "tx-6"}
        assert budget.total_budget == 700.0
        assert budget.remaining == 110.0
        assert [c.category for c in patterns.top_categories] == ["Food", "Entertainment", "Transportation"]

    @pytest.mark.asyncio
    async def test_daily_insight_requires_premium(
        self, populated_db: Database, client: CoachClient, now: datetime
    ):
        with patch("httpx.AsyncClient") as mock_client:
            result = await generate_daily_insight_for_user(populated_db, client, now)

            mock_client.assert_not_called()

        assert result["upgrade_required"] is True
        assert result["feature"] == "ai_insight"

    @pytest.mark.asyncio
    async def test_daily_insight(
        self, premium_db: Database, client: CoachClient, chat_response: dict, now: datetime
    ):
        with patch("httpx.AsyncClient") as mock_client:
            post = AsyncMock(return_value=_mock_response(chat_response))
            mock_client.return_value.__aenter__.return_value.post = post

            result = await generate_daily_insight_for_user(premium_db, client, now)

            assert post.await_count == 1
            user_prompt = post.call_args.kwargs["json"]["messages"][1]["content"]
            assert "Transactions (2 total):" in user_prompt
            assert "- Uber: $25.00 (Transportation)" in user_prompt

        assert result["sentiment"] == "neutral"
        assert result["tokens_used"] == 123
        assert len(result["suggestions"]) == 3

    @pytest.mark.asyncio
    async def test_daily_insight_without_transactions(
        self, premium_db: Database, client: CoachClient
    ):
        with pytest.raises(ValidationError):
            await generate_daily_insight_for_user(premium_db, client, datetime(2026, 3, 20, 9, 0))

    @pytest.mark.asyncio
    async def test_savings_plan_requires_premium(
        self, populated_db: Database, client: CoachClient, now: datetime
    ):
        result = await generate_savings_plan_for_goal(populated_db, client, "g-vacation", now=now)
        assert result["upgrade_required"] is True

    @pytest.mark.asyncio
    async def test_savings_plan(self, premium_db: Database, client: CoachClient, now: datetime):
        payload = {
            "model": "test-model",
            "choices": [{"message": {"content": SAVINGS_REPLY}}],
            "usage": {"total_tokens": 300},
        }
        with patch("httpx.AsyncClient") as mock_client:
            post = AsyncMock(return_value=_mock_response(payload))
            mock_client.return_value.__aenter__.return_value.post = post

            result = await generate_savings_plan_for_goal(premium_db, client, "g-vacation", now=now)

            user_prompt = post.call_args.kwargs["json"]["messages"][1]["content"]
            assert "Savings Goal: Vacation" in user_prompt
            assert "- Monthly Income: $5000.00" in user_prompt
            assert "- Average Monthly Spending: $340.00" in user_prompt

        assert result["recommendations"] == ["Cook at home", "Cancel unused apps"]
        assert result["projected_savings_increase"] == 150.5
        assert result["estimated_months_to_goal"] == 1
        assert result["tokens_used"] == 300

    @pytest.mark.asyncio
    async def test_savings_plan_unknown_goal(
        self, premium_db: Database, client: CoachClient, now: datetime
    ):
        with pytest.raises(ValidationError):
            await generate_savings_plan_for_goal(premium_db, client, "nope", now=now)


class TestResources:
    """Test MCP resources."""

    def test_transactions_resource(self, populated_db: Database):
        result = get_transactions_resource(populated_db, limit=3)

        assert result["total_count"] == 10
        assert [t["id"] for t in result["transactions"]] == ["tx-5", "tx-6", "tx-4"]
        assert result["transactions"][0]["category"] == "Transportation"

    def test_budgets_resource(self, populated_db: Database):
        assert len(get_budgets_resource(populated_db)["budgets"]) == 3

    def test_goals_resource(self, populated_db: Database):
        assert len(get_goals_resource(populated_db)["goals"]) == 3

    def test_subscriptions_resource(self, populated_db: Database):
        subs = get_subscriptions_resource(populated_db)["subscriptions"]

        assert len(subs) == 5
        assert subs[0]["billing_cycle"] == "monthly"
        assert subs[0]["next_billing_date"] == "2026-03-20"

    def test_profile_resource(self, populated_db: Database):
        result = get_profile_resource(populated_db)

        assert result["profile"]["name"] == "Alex"
        assert result["account_tier"] == "free"

    def test_profile_resource_empty(self, db: Database):
        assert get_profile_resource(db) == {"profile": None, "account_tier": "free"}
