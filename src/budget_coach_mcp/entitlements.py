"""Feature visibility by account tier."""

import re

from .models import AccountTier


# Manual tracking, available on every tier
FREE_FEATURES = frozenset({
    "track_spending",
    "transactions",
    "budgets",
    "budget_tracking",
    "savings_goals",
    "subscriptions",
    "category_summaries",
    "spending_analytics",
    "daily_spending_log",
    "weekly_report",
})

# AI and predictive features
PREMIUM_FEATURES = frozenset({
    "ai_insight",
    "ai_daily_coach",
    "ai_coaching",
    "ai_budget_planning",
    "ai_savings_plan",
    "personalized_saving_plan",
    "deep_analysis",
    "automatic_category_detection",
    "subscription_alerts",
    "overspending_warnings",
    "predictive_alerts",
    "predictive_budgeting",
    "money_patterns_report",
    "financial_health_score",
    "unlimited_smart_alerts",
})


def normalize_feature(feature: str) -> str:
    """'AI insight' -> 'ai_insight'."""
    return re.sub(r"[^a-z0-9]+", "_", feature.strip().lower()).strip("_")


def _tier(tier: AccountTier | str | None) -> AccountTier:
    if isinstance(tier, AccountTier):
        return tier
    try:
        return AccountTier(str(tier).strip().lower())
    except ValueError:
        return AccountTier.FREE


def is_premium_feature(feature: str) -> bool:
    """Unknown features count as premium-only."""
    return normalize_feature(feature) not in FREE_FEATURES


def is_feature_visible(tier: AccountTier | str | None, feature: str) -> bool:
    """Whether a feature is visible for an account tier."""
    if not is_premium_feature(feature):
        return True
    return _tier(tier) == AccountTier.PREMIUM
