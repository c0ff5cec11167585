"""Pure metric calculators.

Every function here is total: empty collections and zero denominators give
zero-valued results instead of raising.
"""

import math
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Any

from .models import (
    BillingCycle,
    Budget,
    SavingsGoal,
    Subscription,
    Transaction,
    TransactionCategory,
)


SECONDS_PER_DAY = 86400


def clamp_pct(value: float) -> float:
    """Clamp a percentage into [0, 100] for display."""
    return max(0.0, min(value, 100.0))


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

def budget_utilization(spent: float, limit: float) -> float:
    """Raw utilization percentage (uncapped). 0 when limit is 0."""
    if limit <= 0:
        return 0.0
    return spent / limit * 100


def budget_status(budget: Budget) -> str:
    """Return 'exceeded', 'warning' or 'ok'."""
    if budget.monthly_limit <= 0:
        # No limit configured: only real spending counts as overrun
        return "exceeded" if budget.current_spent > 0 else "ok"
    if budget.current_spent >= budget.monthly_limit:
        return "exceeded"
    if budget_utilization(budget.current_spent, budget.monthly_limit) >= budget.alert_threshold:
        return "warning"
    return "ok"


def summarize_budget(budget: Budget) -> dict[str, Any]:
    utilization = budget_utilization(budget.current_spent, budget.monthly_limit)
    return {
        "id": budget.id,
        "category": budget.category_name,
        "limit": round(budget.monthly_limit, 2),
        "spent": round(budget.current_spent, 2),
        "remaining": round(budget.monthly_limit - budget.current_spent, 2),
        "utilization_pct": round(utilization, 1),
        "progress_pct": round(clamp_pct(utilization), 1),
        "alert_threshold": budget.alert_threshold,
        "status": budget_status(budget),
    }


def budget_totals(budgets: Iterable[Budget]) -> dict[str, float]:
    """Total limit, spent, remaining and overall utilization."""
    budgets = list(budgets)
    total_budget = sum(b.monthly_limit for b in budgets)
    total_spent = sum(b.current_spent for b in budgets)
    utilization = budget_utilization(total_spent, total_budget)
    return {
        "total_budget": round(total_budget, 2),
        "spent": round(total_spent, 2),
        "remaining": round(total_budget - total_spent, 2),
        "utilization_pct": round(utilization, 1),
        "progress_pct": round(clamp_pct(utilization), 1),
    }


def projected_overspend(total_spent: float, total_budget: float, day_of_month: int) -> float:
    """Linear projection of month-end overspend, using a 30-day month.

    Returns 0 when there is no budget or no elapsed day.
    """
    if total_budget <= 0 or day_of_month <= 0:
        return 0.0
    return total_spent / (day_of_month / 30) - total_budget


def spending_trend(total_spent: float, total_budget: float) -> float:
    """Percent above (positive) or below an 80% utilization baseline."""
    if total_budget <= 0:
        return 0.0
    return (total_spent / total_budget - 0.8) * 100


# ---------------------------------------------------------------------------
# Savings goals
# ---------------------------------------------------------------------------

def goal_progress(current: float, target: float) -> float:
    """Progress percentage capped at 100."""
    if target <= 0:
        return 0.0
    return min(current / target * 100, 100.0)


def is_goal_completed(current: float, target: float) -> bool:
    return current >= target


def days_remaining(deadline: date | None, now: datetime | None = None) -> int | None:
    """Days until the deadline (ceil), negative once passed. None without deadline."""
    if deadline is None:
        return None
    if now is None:
        now = datetime.now()
    deadline_at = datetime(deadline.year, deadline.month, deadline.day)
    return math.ceil((deadline_at - now).total_seconds() / SECONDS_PER_DAY)


def weekly_savings_needed(current: float, target: float, days_left: int | None) -> float:
    """Amount per week needed to reach the target in time."""
    days = max(days_left or 0, 1)
    return (target - current) / days * 7


def summarize_goal(goal: SavingsGoal, now: datetime | None = None) -> dict[str, Any]:
    progress = goal_progress(goal.current_amount, goal.target_amount)
    days_left = days_remaining(goal.deadline, now)
    return {
        "id": goal.id,
        "name": goal.goal_name,
        "target": round(goal.target_amount, 2),
        "current": round(goal.current_amount, 2),
        "remaining": round(max(goal.remaining, 0.0), 2),
        "progress_pct": round(progress, 1),
        "deadline": goal.deadline.isoformat() if goal.deadline else None,
        "days_remaining": days_left,
        "weekly_savings_needed": round(
            max(weekly_savings_needed(goal.current_amount, goal.target_amount, days_left), 0.0), 2
        ),
        "priority": goal.priority_level,
        "completed": is_goal_completed(goal.current_amount, goal.target_amount),
    }


def goal_totals(goals: Iterable[SavingsGoal]) -> dict[str, Any]:
    goals = list(goals)
    total_saved = sum(g.current_amount for g in goals)
    total_target = sum(g.target_amount for g in goals)
    completed = [g for g in goals if is_goal_completed(g.current_amount, g.target_amount)]
    return {
        "total_saved": round(total_saved, 2),
        "total_target": round(total_target, 2),
        "overall_progress_pct": round(goal_progress(total_saved, total_target), 1),
        "completed_count": len(completed),
        "active_count": len(goals) - len(completed),
    }


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

def annualized_cost(amount: float, cycle: BillingCycle | int) -> float:
    """Yearly cost: amount x charges per year."""
    return amount * BillingCycle(cycle).multiplier


def monthly_equivalent(amount: float, cycle: BillingCycle | int) -> float:
    return annualized_cost(amount, cycle) / 12


def days_until(day: date, now: datetime | None = None) -> int:
    """Days until a calendar date (ceil); 0 for later today, negative if past."""
    if now is None:
        now = datetime.now()
    at = datetime(day.year, day.month, day.day)
    return math.ceil((at - now).total_seconds() / SECONDS_PER_DAY)


def upcoming_renewals(
    subscriptions: Iterable[Subscription],
    now: datetime | None = None,
    days: int = 7,
) -> list[Subscription]:
    """Active subscriptions billing between today and `days` from now."""
    if now is None:
        now = datetime.now()
    today = now.date()
    horizon = today + timedelta(days=days)
    return [
        s for s in subscriptions
        if s.is_active and today <= s.next_billing_date <= horizon
    ]


def subscription_totals(subscriptions: Iterable[Subscription]) -> dict[str, Any]:
    """Monthly and yearly totals of active subscriptions, plus per-category yearly cost."""
    active = [s for s in subscriptions if s.is_active]
    yearly = sum(annualized_cost(s.amount, s.billing_cycle) for s in active)

    by_category: dict[str, float] = {}
    for sub in active:
        by_category[sub.category] = by_category.get(sub.category, 0.0) + annualized_cost(
            sub.amount, sub.billing_cycle
        )

    return {
        "monthly_total": round(yearly / 12, 2),
        "yearly_total": round(yearly, 2),
        "active_count": len(active),
        "by_category_yearly": {
            k: round(v, 2) for k, v in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
        },
    }


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

def total_spending(transactions: Iterable[Transaction]) -> float:
    return sum(tx.amount for tx in transactions)


def period_change_pct(current_total: float, previous_total: float) -> float:
    """Period-over-period change. No previous spending counts as +100% (or 0%)."""
    if previous_total == 0:
        return 100.0 if current_total > 0 else 0.0
    return (current_total - previous_total) / previous_total * 100


def category_totals(transactions: Iterable[Transaction]) -> dict[TransactionCategory, float]:
    totals: dict[TransactionCategory, float] = {}
    for tx in transactions:
        totals[tx.category] = totals.get(tx.category, 0.0) + tx.amount
    return totals


def category_breakdown(transactions: Iterable[Transaction]) -> list[dict[str, Any]]:
    """Per-category totals sorted by amount descending, with share of total."""
    totals = category_totals(transactions)
    grand_total = sum(totals.values())
    rows = [
        {
            "category": category.label,
            "amount": amount,
            "percentage": (amount / grand_total * 100) if grand_total > 0 else 0.0,
        }
        for category, amount in totals.items()
    ]
    rows.sort(key=lambda r: r["amount"], reverse=True)
    return rows
