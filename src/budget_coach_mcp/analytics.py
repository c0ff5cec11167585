"""Analytics business logic for budget coach MCP tools."""

import logging
import math
from datetime import datetime, timedelta
from typing import Any

from .coach import (
    BudgetStatus,
    CategorySpend,
    CoachClient,
    SpendingPattern,
    generate_daily_insight,
    generate_savings_plan,
)
from .database import Database
from .entitlements import FREE_FEATURES, PREMIUM_FEATURES, is_feature_visible
from .insights import (
    detect_milestone,
    goal_insight,
    next_milestone,
    spending_insights,
    subscription_insights,
)
from .metrics import (
    annualized_cost,
    budget_totals,
    category_breakdown,
    category_totals,
    days_until,
    goal_progress,
    goal_totals,
    monthly_equivalent,
    period_change_pct,
    projected_overspend,
    spending_trend,
    subscription_totals,
    summarize_budget,
    summarize_goal,
    total_spending,
    upcoming_renewals,
)
from .models import AccountTier, Granularity
from .periods import (
    MONDAY,
    current_window,
    first_week_total,
    partition,
    previous_window,
    trend_buckets,
    weekend_weekday_totals,
)
from .utils import format_money

logger = logging.getLogger(__name__)


def _account_tier(db: Database) -> AccountTier:
    profile = db.get_user_profile()
    return profile.account_tier if profile else AccountTier.FREE


def _upgrade_required(feature: str) -> dict[str, Any]:
    return {
        "error": f"'{feature}' is a premium feature. Upgrade to Premium to unlock it.",
        "upgrade_required": True,
        "feature": feature,
    }


def get_spending_analytics(
    db: Database,
    granularity: str = "monthly",
    now: datetime | None = None,
    week_start: int = MONDAY,
) -> dict[str, Any]:
    """Spending in the current calendar window compared to the previous one.

    "Where does my money go?", "Am I spending more than last month?"

    Args:
        db: Database instance.
        granularity: 'weekly', 'monthly', 'quarterly' or 'yearly'.
        now: Reference time (defaults to now).
        week_start: First weekday of a week (0=Monday .. 6=Sunday).

    Returns:
        Dictionary with totals, change, category breakdown, trend and insights.
    """
    if now is None:
        now = datetime.now()
    try:
        granularity = Granularity(granularity)
    except ValueError:
        return {"error": f"Unknown granularity: {granularity}"}

    current = current_window(granularity, now, week_start)
    previous = previous_window(granularity, now, week_start)
    in_current, in_previous = partition(
        db.list_transactions(start=previous.start, end=current.end), current, previous
    )

    total = total_spending(in_current)
    previous_total = total_spending(in_previous)
    change = period_change_pct(total, previous_total)

    breakdown = category_breakdown(in_current)
    previous_categories = category_totals(in_previous)
    previous_by_label = {c.label: amount for c, amount in previous_categories.items()}

    top_changes = []
    for row in breakdown[:5]:
        prev_amount = previous_by_label.get(row["category"], 0.0)
        row_change = (row["amount"] - prev_amount) / prev_amount * 100 if prev_amount > 0 else 0.0
        top_changes.append({
            "category": row["category"],
            "amount": round(row["amount"], 2),
            "previous_amount": round(prev_amount, 2),
            "change_pct": round(row_change, 1),
            "notable": abs(row_change) > 10,
        })

    weekend, weekday = weekend_weekday_totals(in_current)
    insights = spending_insights(
        weekend_total=weekend,
        weekday_total=weekday,
        current_categories=breakdown,
        previous_categories=previous_categories,
        first_week_total=first_week_total(in_current),
        period_total=total,
        change_pct=change,
        granularity=granularity,
    )

    return {
        "granularity": granularity.value,
        "period": current.to_dict(),
        "previous_period": previous.to_dict(),
        "total_spending": round(total, 2),
        "previous_total_spending": round(previous_total, 2),
        "difference": round(abs(total - previous_total), 2),
        "change_pct": round(change, 1),
        "transaction_count": len(in_current),
        "average_transaction": round(total / len(in_current), 2) if in_current else 0.0,
        "categories": [
            {
                "category": row["category"],
                "amount": round(row["amount"], 2),
                "percentage": round(row["percentage"], 1),
            }
            for row in breakdown
        ],
        "top_category_changes": top_changes,
        "weekend_vs_weekday": {"weekend": round(weekend, 2), "weekday": round(weekday, 2)},
        "trend": trend_buckets(in_current, granularity),
        "insights": insights,
    }


def get_budget_status(db: Database) -> dict[str, Any]:
    """Active budgets with utilization and status.

    "Am I within budget?", "Which budgets are close to the limit?"
    """
    budgets = db.list_budgets()
    if not budgets:
        return {
            "message": "No active budgets configured",
            "budgets": [],
            "totals": budget_totals([]),
        }

    rows = [summarize_budget(b) for b in budgets]
    # Most critical first
    rows.sort(key=lambda r: r["utilization_pct"], reverse=True)
    return {
        "budgets": rows,
        "totals": budget_totals(budgets),
        "exceeded_count": sum(1 for r in rows if r["status"] == "exceeded"),
        "warning_count": sum(1 for r in rows if r["status"] == "warning"),
    }


def get_savings_goals(
    db: Database,
    sort_by: str = "deadline",
    filter_by: str = "all",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Savings goals with progress, next milestone and a coaching message.

    Args:
        db: Database instance.
        sort_by: 'deadline' (soonest first, no deadline last), 'progress' or 'priority'.
        filter_by: 'all', 'active' or 'completed'.
        now: Reference time (defaults to now).
    """
    goals = db.list_savings_goals()
    all_goals = list(goals)

    if filter_by == "active":
        goals = [g for g in goals if not g.is_completed]
    elif filter_by == "completed":
        goals = [g for g in goals if g.is_completed]

    if sort_by == "progress":
        goals.sort(key=lambda g: goal_progress(g.current_amount, g.target_amount), reverse=True)
    elif sort_by == "priority":
        goals.sort(key=lambda g: g.priority_level, reverse=True)
    else:
        goals.sort(key=lambda g: (g.deadline is None, g.deadline or datetime.max.date()))

    result_goals = []
    for goal in goals:
        data = summarize_goal(goal, now)
        data["next_milestone"] = next_milestone(goal.current_amount, goal.target_amount)
        data["insight"] = goal_insight(goal, now).to_dict()
        result_goals.append(data)

    return {
        "goals": result_goals,
        "totals": goal_totals(all_goals),
    }


def add_goal_contribution(db: Database, goal_id: str, amount: float) -> dict[str, Any]:
    """Add a contribution to a goal and report a crossed milestone.

    "I just put $50 into my vacation fund."
    """
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        return {"error": "Please enter a valid amount", "goal_id": goal_id}
    if not math.isfinite(amount) or amount <= 0:
        return {"error": "Please enter a valid amount", "goal_id": goal_id}

    goal = db.get_savings_goal(goal_id)
    if goal is None:
        return {"error": f"Savings goal not found: {goal_id}", "goal_id": goal_id}

    milestone = detect_milestone(goal.current_amount, amount, goal.target_amount)
    new_amount = goal.current_amount + amount
    db.set_goal_amount(goal_id, new_amount)
    logger.info("Goal %s: contribution of %.2f, new balance %.2f", goal_id, amount, new_amount)

    updated = db.get_savings_goal(goal_id)
    result: dict[str, Any] = {
        "goal": summarize_goal(updated),
        "contribution": round(amount, 2),
        "new_balance": round(new_amount, 2),
        "milestone": None,
        "message": f"Added {format_money(amount)}. New balance: {format_money(new_amount)}",
    }
    if milestone:
        result["milestone"] = {
            "percentage": milestone.percentage,
            "label": milestone.label,
            "message": milestone.message,
        }
        result["message"] = f"{milestone.label} {milestone.message}"
    return result


def get_subscription_summary(
    db: Database,
    sort_by: str = "renewal",
    category: str | None = None,
    active_only: bool = True,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Subscriptions with annualized cost, upcoming renewals and insights.

    Args:
        db: Database instance.
        sort_by: 'renewal' (soonest first), 'cost' (yearly, highest first) or 'category'.
        category: Optional category tag filter.
        active_only: Hide paused subscriptions from the list.
        now: Reference time (defaults to now).
    """
    if now is None:
        now = datetime.now()
    subscriptions = db.list_subscriptions()

    listed = subscriptions
    if active_only:
        listed = [s for s in listed if s.is_active]
    if category and category != "all":
        listed = [s for s in listed if s.category == category]

    if sort_by == "cost":
        listed = sorted(listed, key=lambda s: annualized_cost(s.amount, s.billing_cycle), reverse=True)
    elif sort_by == "category":
        listed = sorted(listed, key=lambda s: s.category)
    else:
        listed = sorted(listed, key=lambda s: s.next_billing_date)

    items = []
    for sub in listed:
        days = days_until(sub.next_billing_date, now)
        items.append({
            "id": sub.id,
            "service": sub.service_name,
            "amount": round(sub.amount, 2),
            "billing_cycle": sub.billing_cycle.name.lower(),
            "category": sub.category,
            "active": sub.is_active,
            "next_billing_date": sub.next_billing_date.isoformat(),
            "days_until_renewal": days,
            "renewing_soon": 0 <= days <= 7,
            "yearly_cost": round(annualized_cost(sub.amount, sub.billing_cycle), 2),
            "monthly_equivalent": round(monthly_equivalent(sub.amount, sub.billing_cycle), 2),
        })

    totals = subscription_totals(subscriptions)
    totals["paused_count"] = sum(1 for s in subscriptions if not s.is_active)
    totals["upcoming_renewals"] = len(upcoming_renewals(subscriptions, now))

    return {
        "subscriptions": items,
        "totals": totals,
        "insights": [i.to_dict() for i in subscription_insights(subscriptions, now)],
    }


def get_dashboard_overview(db: Database, now: datetime | None = None) -> dict[str, Any]:
    """Budget and goal totals plus the premium-only predictive alert.

    "How am I doing overall this month?"
    """
    if now is None:
        now = datetime.now()
    tier = _account_tier(db)

    budgets = db.list_budgets()
    totals = budget_totals(budgets)
    active_goals = [g for g in db.list_savings_goals() if not g.is_completed]
    saved = sum(g.current_amount for g in active_goals)
    target = sum(g.target_amount for g in active_goals)

    result: dict[str, Any] = {
        "account_tier": tier.value,
        "budget": totals,
        "goals": {
            "active_count": len(active_goals),
            "saved": round(saved, 2),
            "target": round(target, 2),
            "progress_pct": round(goal_progress(saved, target), 1),
        },
    }

    if is_feature_visible(tier, "predictive_alerts"):
        result["predictive_alert"] = {
            "projected_overspend": round(
                projected_overspend(totals["spent"], totals["total_budget"], now.day), 2
            ),
            "trend_pct": round(spending_trend(totals["spent"], totals["total_budget"]), 1),
        }
    else:
        result["predictive_alert"] = _upgrade_required("predictive_alerts")

    return result


def check_feature_access(db: Database, feature: str | None = None) -> dict[str, Any]:
    """Which features the current account can see."""
    tier = _account_tier(db)
    if feature:
        return {
            "account_tier": tier.value,
            "feature": feature,
            "visible": is_feature_visible(tier, feature),
        }
    return {
        "account_tier": tier.value,
        "features": {
            name: is_feature_visible(tier, name)
            for name in sorted(FREE_FEATURES | PREMIUM_FEATURES)
        },
    }


# ============================================================================
# AI coaching
# ============================================================================

def build_daily_insight_inputs(
    db: Database,
    now: datetime | None = None,
) -> tuple[list, BudgetStatus, SpendingPattern]:
    """Collect yesterday's transactions and the budget summary for the daily insight."""
    if now is None:
        now = datetime.now()
    yesterday = now.date() - timedelta(days=1)
    transactions = [
        t for t in db.list_transactions() if t.timestamp.date() == yesterday
    ]

    budgets = db.list_budgets()
    total_budget = sum(b.monthly_limit for b in budgets)
    total_spent = sum(b.current_spent for b in budgets)

    budget = BudgetStatus(
        total_budget=total_budget,
        spent=total_spent,
        remaining=total_budget - total_spent,
        categories=[
            {"name": b.category_name, "budget": b.monthly_limit, "spent": b.current_spent}
            for b in budgets
        ],
    )
    top = sorted(budgets, key=lambda b: b.current_spent, reverse=True)[:3]
    patterns = SpendingPattern(
        average_daily=total_spent / 30,
        top_categories=[
            CategorySpend(
                b.category_name,
                b.current_spent,
                (b.current_spent / total_spent * 100) if total_spent > 0 else 0.0,
            )
            for b in top
        ],
    )
    return transactions, budget, patterns


async def generate_daily_insight_for_user(
    db: Database,
    client: CoachClient,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Premium: AI insight on yesterday's spending.

    Raises:
        ValidationError: Nothing to analyze (no transactions yesterday, no budget).
        ExternalServiceError: The AI service failed.
    """
    tier = _account_tier(db)
    if not is_feature_visible(tier, "ai_insight"):
        return _upgrade_required("ai_insight")

    transactions, budget, patterns = build_daily_insight_inputs(db, now)
    result = await generate_daily_insight(client, transactions, budget, patterns)
    return result.to_dict()


async def generate_savings_plan_for_goal(
    db: Database,
    client: CoachClient,
    goal_id: str,
    monthly_income: float | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Premium: AI recommendations to reach a savings goal faster.

    Spending patterns come from the last 30 days of transactions.

    Raises:
        ValidationError: Missing goal, no recent transactions, no income.
        ExternalServiceError: The AI service failed.
    """
    if now is None:
        now = datetime.now()
    tier = _account_tier(db)
    if not is_feature_visible(tier, "ai_savings_plan"):
        return _upgrade_required("ai_savings_plan")

    if monthly_income is None:
        profile = db.get_user_profile()
        monthly_income = profile.monthly_income if profile else 0.0

    goal = db.get_savings_goal(goal_id)
    recent = db.list_transactions(start=now - timedelta(days=30), end=now)
    patterns = SpendingPattern(
        average_daily=total_spending(recent) / 30,
        top_categories=[
            CategorySpend(row["category"], row["amount"], row["percentage"])
            for row in category_breakdown(recent)[:3]
        ],
    )

    plan = await generate_savings_plan(client, goal, recent, monthly_income, patterns)
    return plan.to_dict()


# ============================================================================
# Resources
# ============================================================================

def get_transactions_resource(db: Database, limit: int = 100) -> dict[str, Any]:
    transactions = db.list_transactions()
    return {
        "transactions": [t.to_dict() for t in transactions[:limit]],
        "total_count": len(transactions),
    }


def get_budgets_resource(db: Database) -> dict[str, Any]:
    return {"budgets": [summarize_budget(b) for b in db.list_budgets()]}


def get_goals_resource(db: Database) -> dict[str, Any]:
    return {"goals": [summarize_goal(g) for g in db.list_savings_goals()]}


def get_subscriptions_resource(db: Database) -> dict[str, Any]:
    return {
        "subscriptions": [
            {
                "id": s.id,
                "service": s.service_name,
                "amount": s.amount,
                "billing_cycle": s.billing_cycle.name.lower(),
                "next_billing_date": s.next_billing_date.isoformat(),
                "active": s.is_active,
                "category": s.category,
            }
            for s in db.list_subscriptions()
        ]
    }


def get_profile_resource(db: Database) -> dict[str, Any]:
    profile = db.get_user_profile()
    if profile is None:
        return {"profile": None, "account_tier": AccountTier.FREE.value}
    return {
        "profile": {
            "id": profile.id,
            "name": profile.name,
            "monthly_income": profile.monthly_income,
        },
        "account_tier": profile.account_tier.value,
    }
