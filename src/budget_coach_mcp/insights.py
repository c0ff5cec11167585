"""Heuristic insight rules over computed spending and savings metrics.

Each rule takes plain aggregates and returns zero or more messages, so rules
can be tested in isolation. `spending_insights` runs all spending rules in a
fixed order; every matching rule fires.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .metrics import (
    days_remaining,
    goal_progress,
    subscription_totals,
    upcoming_renewals,
)
from .models import (
    SUBSCRIPTION_CATEGORIES,
    Granularity,
    Insight,
    SavingsGoal,
    Subscription,
    TransactionCategory,
)
from .utils import format_money, plural, round_half_up

logger = logging.getLogger(__name__)


WEEKEND_SKEW_RATIO = 0.4
CATEGORY_GROWTH_PCT = 15
FIRST_WEEK_SHARE = 0.35
IMPROVEMENT_PCT = -5


@dataclass(frozen=True)
class Milestone:
    percentage: int
    label: str
    message: str


MILESTONES = (
    Milestone(25, "25% Complete", "Great start! You're building momentum!"),
    Milestone(50, "Halfway There!", "Amazing progress! Keep it going!"),
    Milestone(75, "75% Complete", "You're so close! Don't give up now!"),
    Milestone(100, "Goal Achieved!", "Congratulations! You did it!"),
)


# ---------------------------------------------------------------------------
# Spending rules
# ---------------------------------------------------------------------------

def weekend_skew_insight(weekend_total: float, weekday_total: float) -> str | None:
    """Weekend spending compared to an average two weekdays."""
    if weekday_total <= 0:
        return None
    if weekend_total > weekday_total * WEEKEND_SKEW_RATIO:
        percent_higher = round_half_up(weekend_total / (weekday_total / 5 * 2) * 100 - 100)
        return f"Your weekend spending is {percent_higher}% higher than weekdays."
    return None


def category_growth_insights(
    current: list[dict[str, Any]] | dict[TransactionCategory, float],
    previous: dict[TransactionCategory, float],
) -> list[str]:
    """Growth alerts for categories present in both periods.

    Args:
        current: Current-period totals, either a category->amount mapping or
            rows from `metrics.category_breakdown` (order is preserved).
        previous: Previous-period category->amount mapping.
    """
    if isinstance(current, dict):
        items = sorted(current.items(), key=lambda kv: kv[1], reverse=True)
    else:
        by_label = {c.label: c for c in TransactionCategory}
        items = [(by_label[row["category"]], row["amount"]) for row in current]

    messages = []
    for category, amount in items:
        prev_amount = previous.get(category, 0.0)
        if prev_amount > 0:
            increase = (amount - prev_amount) / prev_amount * 100
            if increase > CATEGORY_GROWTH_PCT:
                messages.append(
                    f"{category.label} spending is {round_half_up(increase)}% higher than the previous period."
                )
    return messages


def front_loaded_month_insight(
    first_week_total: float,
    period_total: float,
    granularity: Granularity | str,
) -> str | None:
    """Only meaningful for monthly windows."""
    if Granularity(granularity) != Granularity.MONTHLY:
        return None
    if first_week_total > period_total * FIRST_WEEK_SHARE:
        return "You tend to spend more during the first week of the month."
    return None


def improvement_insight(change_pct: float) -> str | None:
    if change_pct < IMPROVEMENT_PCT:
        return f"Great job! You've reduced spending by {abs(round_half_up(change_pct))}% this period."
    return None


def spending_insights(
    *,
    weekend_total: float,
    weekday_total: float,
    current_categories: list[dict[str, Any]] | dict[TransactionCategory, float],
    previous_categories: dict[TransactionCategory, float],
    first_week_total: float,
    period_total: float,
    change_pct: float,
    granularity: Granularity | str,
) -> list[str]:
    """Run all spending rules in order and collect every message."""
    insights: list[str] = []

    message = weekend_skew_insight(weekend_total, weekday_total)
    if message:
        insights.append(message)

    insights.extend(category_growth_insights(current_categories, previous_categories))

    message = front_loaded_month_insight(first_week_total, period_total, granularity)
    if message:
        insights.append(message)

    message = improvement_insight(change_pct)
    if message:
        insights.append(message)

    logger.debug("Spending rules produced %d insights", len(insights))
    return insights


# ---------------------------------------------------------------------------
# Savings goal rules
# ---------------------------------------------------------------------------

def detect_milestone(current: float, contribution: float, target: float) -> Milestone | None:
    """Lowest milestone crossed by a single contribution, if any.

    A contribution is applied atomically, so at most one milestone fires
    even when it jumps over several thresholds.
    """
    if target <= 0:
        return None
    old_pct = current / target * 100
    new_pct = (current + contribution) / target * 100
    for milestone in MILESTONES:
        if old_pct < milestone.percentage <= new_pct:
            return milestone
    return None


def next_milestone(current: float, target: float) -> dict[str, Any] | None:
    """Next milestone above current progress and the amount still needed."""
    progress = goal_progress(current, target)
    for milestone in MILESTONES:
        if progress < milestone.percentage:
            return {
                "percentage": milestone.percentage,
                "label": milestone.label,
                "message": milestone.message,
                "amount_needed": round(target * milestone.percentage / 100 - current, 2),
            }
    return None


def goal_insight(goal: SavingsGoal, now: datetime | None = None) -> Insight:
    """Coaching message for a goal based on progress and deadline."""
    progress = goal_progress(goal.current_amount, goal.target_amount)
    days_left = days_remaining(goal.deadline, now)
    remaining = goal.target_amount - goal.current_amount

    if progress >= 100:
        return Insight(
            f"Congratulations! You've achieved your {goal.goal_name} goal!",
            "success",
            "goal_progress",
        )

    if days_left is not None and days_left > 0:
        daily = remaining / days_left
        weekly = daily * 7
        if progress >= 75:
            return Insight(
                f"You're ahead of schedule! Just {format_money(weekly)}/week to reach your goal.",
                "positive",
                "weekly_savings_needed",
            )
        if progress >= 50:
            return Insight(
                f"Saving {format_money(weekly)} per week will keep you on track.",
                "neutral",
                "weekly_savings_needed",
            )
        if days_left < 30:
            return Insight(
                f"Only {days_left} days left! Consider saving {format_money(daily)}/day to catch up.",
                "warning",
                "days_remaining",
            )
        return Insight(
            f"Save {format_money(weekly)} weekly to reach your goal by the deadline.",
            "neutral",
            "weekly_savings_needed",
        )

    if progress < 25:
        return Insight("Keep building momentum! Every contribution counts.", "neutral", "goal_progress")

    return Insight(
        f"Great progress! You're {progress:.0f}% of the way there!",
        "positive",
        "goal_progress",
    )


# ---------------------------------------------------------------------------
# Subscription rules
# ---------------------------------------------------------------------------

def subscription_insights(
    subscriptions: Iterable[Subscription],
    now: datetime | None = None,
) -> list[Insight]:
    subscriptions = list(subscriptions)
    totals = subscription_totals(subscriptions)
    insights = [
        Insight(
            f"You're spending {format_money(totals['monthly_total'])}/month on subscriptions.",
            "spending",
            "monthly_total",
        ),
        Insight(
            f"That's {format_money(totals['yearly_total'])}/year in total subscription costs.",
            "yearly",
            "yearly_total",
        ),
    ]

    by_category = totals["by_category_yearly"]
    if by_category:
        top_category, yearly = next(iter(by_category.items()))
        label = SUBSCRIPTION_CATEGORIES.get(top_category, top_category)
        insights.append(Insight(
            f"You're paying {format_money(yearly / 12)}/month for {label} services.",
            "category",
            "by_category_yearly",
        ))

    renewals = upcoming_renewals(subscriptions, now)
    if renewals:
        total_upcoming = sum(s.amount for s in renewals)
        insights.append(Insight(
            f"You have {len(renewals)} {plural(len(renewals), 'subscription')} renewing "
            f"in the next 7 days ({format_money(total_upcoming)}).",
            "renewal",
            "upcoming_renewals",
        ))

    paused = [s for s in subscriptions if not s.is_active]
    if paused:
        insights.append(Insight(
            f"You have {len(paused)} paused {plural(len(paused), 'subscription')}. "
            "Consider canceling if no longer needed.",
            "inactive",
            "paused_count",
        ))

    return insights
