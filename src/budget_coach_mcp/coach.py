"""AI coaching: prompt building, chat-completion client and response parsing."""

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx

from .models import SavingsGoal, Transaction
from .utils import format_money

logger = logging.getLogger(__name__)


MAX_LISTED_TRANSACTIONS = 10
MAX_SAMPLE_TRANSACTIONS = 5
TOP_CATEGORIES = 3

DAILY_SYSTEM_PROMPT = (
    "You are a friendly and insightful personal finance advisor. Analyze the user's "
    "spending data and provide a concise, personalized daily insight in 2-3 sentences. "
    "Focus on actionable advice and encouraging tone. Be specific about amounts and categories."
)

SAVINGS_SYSTEM_PROMPT = (
    "You are an expert financial advisor specializing in savings strategies. Analyze the "
    "user's financial data and provide specific, actionable recommendations to accelerate "
    "their savings goal. Focus on realistic suggestions based on their spending patterns. "
    "Format your response with clear action items and estimated savings amounts."
)

_BULLET_RE = re.compile(r"^\d+\.")
_BULLET_PREFIX_RE = re.compile(r"^[-•]\s*|\d+\.\s*")
_RECOMMENDATION_RE = re.compile(r"RECOMMENDATION:\s*(.+)", re.IGNORECASE)
_SAVINGS_RE = re.compile(r"SAVINGS:\s*\$?(\d+(?:\.\d{2})?)", re.IGNORECASE)
_DIFFICULTY_RE = re.compile(r"DIFFICULTY:\s*(easy|medium|hard)", re.IGNORECASE)

PRIORITY_NAMES = {1: "low", 2: "medium", 3: "high"}


class CoachError(Exception):
    """Base error for AI coaching."""

    pass


class ValidationError(CoachError):
    """Input is insufficient to build a prompt. Raised before any network call."""

    pass


class ExternalServiceError(CoachError):
    """The chat-completion endpoint failed or returned no usable content."""

    pass


# ============================================================================
# Prompt inputs and results
# ============================================================================

@dataclass
class CategorySpend:
    category: str
    amount: float
    percentage: float


@dataclass
class BudgetStatus:
    total_budget: float
    spent: float
    remaining: float
    categories: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SpendingPattern:
    average_daily: float
    top_categories: list[CategorySpend] = field(default_factory=list)
    trends: dict[str, float] = field(default_factory=dict)


@dataclass
class ChatCompletion:
    content: str
    total_tokens: int
    model: str | None


@dataclass
class DailyInsight:
    insight: str
    suggestions: list[str]
    sentiment: str  # 'positive' | 'neutral' | 'warning'
    tokens_used: int = 0
    model_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SavingsAction:
    action: str
    potential_savings: float
    difficulty: str  # 'easy' | 'medium' | 'hard'


@dataclass
class SavingsPlan:
    recommendations: list[str]
    projected_savings_increase: float
    estimated_months_to_goal: int  # -1 when the goal cannot be reached
    time_to_goal_description: str
    specific_actions: list[SavingsAction]
    tokens_used: int = 0
    model_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# Chat-completion client
# ============================================================================

class CoachClient:
    """Client for an OpenAI-compatible chat-completion endpoint.

    One request per call. Failures are raised, never retried.
    """

    def __init__(self, url: str, token: str | None, model: str, timeout: float = 60.0):
        """Initialize client.

        Args:
            url: Full chat-completions URL.
            token: Bearer token, or None for endpoints that need none.
            model: Model identifier sent with every request.
            timeout: Request timeout in seconds.
        """
        self.url = url
        self.token = token
        self.model = model
        self.timeout = timeout

    async def complete(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        """Send a system + user message pair and return the first choice.

        Raises:
            ExternalServiceError: On transport errors, non-2xx status, invalid
                JSON, or a response without content.
        """
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        request_body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }

        logger.info("Requesting chat completion from %s (model=%s)", self.url, self.model)

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.url,
                    json=request_body,
                    headers=headers,
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                logger.warning("Chat completion request failed: %s", e)
                raise ExternalServiceError(f"HTTP error calling AI service: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning("AI service returned status %s", response.status_code)
            raise ExternalServiceError(
                f"AI service returned status {response.status_code}: {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(f"Invalid JSON response from AI service: {e}") from e

        if not data:
            raise ExternalServiceError("No response data received from AI service")

        choices = data.get("choices") or []
        if not choices:
            raise ExternalServiceError("No completion choices returned from AI service")

        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise ExternalServiceError("Empty content returned from AI service")

        usage = data.get("usage") or {}
        completion = ChatCompletion(
            content=content,
            total_tokens=usage.get("total_tokens") or 0,
            model=data.get("model"),
        )
        logger.info("Chat completion received (%d tokens)", completion.total_tokens)
        return completion


# ============================================================================
# Prompt builders
# ============================================================================

def _describe(tx: Transaction) -> str:
    name = tx.description or tx.merchant or "Purchase"
    return f"- {name}: {format_money(tx.amount)} ({tx.category.label})"


def validate_daily_input(
    transactions: list[Transaction],
    budget: BudgetStatus | None,
    patterns: SpendingPattern | None,
) -> None:
    if not transactions:
        raise ValidationError("At least one transaction is required to generate insights")
    if budget is None:
        raise ValidationError("Budget status is required to generate insights")
    if budget.total_budget <= 0:
        raise ValidationError("A positive total budget is required to generate insights")
    if patterns is None:
        raise ValidationError("Spending patterns are required to generate insights")


def build_daily_insight_prompt(
    transactions: list[Transaction],
    budget: BudgetStatus,
    patterns: SpendingPattern,
) -> tuple[str, str]:
    """Build (system, user) messages for the daily insight.

    Raises:
        ValidationError: Empty transactions, missing or zero budget, missing patterns.
    """
    validate_daily_input(transactions, budget, patterns)

    total_spent = sum(tx.amount for tx in transactions)
    count = len(transactions)

    lines = [
        "Analyze my spending from yesterday:",
        "",
        f"Transactions ({count} total):",
    ]
    lines.extend(_describe(tx) for tx in transactions[:MAX_LISTED_TRANSACTIONS])
    if count > MAX_LISTED_TRANSACTIONS:
        lines.append(f"... and {count - MAX_LISTED_TRANSACTIONS} more transactions")
    lines += [
        "",
        f"Total spent yesterday: {format_money(total_spent)}",
        "",
        "Budget Status:",
        f"- Total Budget: {format_money(budget.total_budget)}",
        f"- Already Spent: {format_money(budget.spent)}",
        f"- Remaining: {format_money(budget.remaining)}",
        "",
        "Top Spending Categories:",
    ]
    lines.extend(
        f"- {c.category}: {format_money(c.amount)} ({c.percentage:.1f}% of total)"
        for c in patterns.top_categories[:TOP_CATEGORIES]
    )
    lines += [
        "",
        "Provide a personalized insight and 2-3 actionable suggestions to improve my spending habits.",
    ]
    return DAILY_SYSTEM_PROMPT, "\n".join(lines)


@dataclass
class SavingsContext:
    """Figures computed while building the savings prompt, reused by the parser."""

    remaining_to_goal: float
    average_monthly_spending: float
    current_monthly_savings: float
    months_to_goal: int | None  # None when spending exceeds income


def months_to_reach(remaining: float, monthly_savings: float) -> int | None:
    if monthly_savings <= 0:
        return None
    return math.ceil(remaining / monthly_savings)


def build_savings_prompt(
    goal: SavingsGoal | None,
    transactions: list[Transaction],
    monthly_income: float,
    patterns: SpendingPattern | None,
) -> tuple[str, str, SavingsContext]:
    """Build (system, user, context) for savings recommendations.

    Raises:
        ValidationError: Missing goal, empty transactions, non-positive
            income, or missing patterns.
    """
    if goal is None:
        raise ValidationError("Savings goal is required")
    if not transactions:
        raise ValidationError("Transaction history is required to generate recommendations")
    if not monthly_income or monthly_income <= 0:
        raise ValidationError("Valid monthly income is required")
    if patterns is None:
        raise ValidationError("Spending patterns are required")

    remaining = goal.target_amount - goal.current_amount
    average_monthly = patterns.average_daily * 30
    monthly_savings = monthly_income - average_monthly
    months = months_to_reach(remaining, monthly_savings)
    context = SavingsContext(remaining, average_monthly, monthly_savings, months)

    lines = [
        "Help me reach my savings goal faster:",
        "",
        f"Savings Goal: {goal.goal_name}",
        f"- Target: {format_money(goal.target_amount)}",
        f"- Current: {format_money(goal.current_amount)}",
        f"- Remaining: {format_money(remaining)}",
        f"- Deadline: {goal.deadline.isoformat() if goal.deadline else 'No deadline'}",
        f"- Priority: {PRIORITY_NAMES.get(goal.priority_level, 'medium')}",
        "",
        "Financial Situation:",
        f"- Monthly Income: {format_money(monthly_income)}",
        f"- Average Monthly Spending: {format_money(average_monthly)}",
        f"- Current Monthly Savings: {format_money(monthly_savings)}",
        "- Estimated months to goal at current rate: "
        + ("Cannot reach goal (spending exceeds income)" if months is None else str(months)),
        "",
        "Top Spending Categories (potential reduction areas):",
    ]
    lines.extend(
        f"- {c.category}: {format_money(c.amount)}/month ({c.percentage:.1f}%)"
        for c in patterns.top_categories
    )
    lines += ["", "Recent Transactions (sample):"]
    lines.extend(_describe(tx) for tx in transactions[:MAX_SAMPLE_TRANSACTIONS])
    lines += [
        "",
        "Provide:",
        "1. 3-5 specific recommendations to increase my savings rate",
        "2. For each recommendation, estimate the monthly savings amount",
        "3. Rate each recommendation's difficulty (easy/medium/hard)",
        "4. Calculate how much faster I could reach my goal",
        "",
        "Format as:",
        "RECOMMENDATION: [action]",
        "SAVINGS: $[amount]/month",
        "DIFFICULTY: [easy/medium/hard]",
    ]
    return SAVINGS_SYSTEM_PROMPT, "\n".join(lines), context


# ============================================================================
# Response parsers
# ============================================================================

def _non_empty_lines(content: str) -> list[str]:
    return [line for line in content.split("\n") if line.strip()]


def _is_bullet(line: str) -> bool:
    return "-" in line or "•" in line or bool(_BULLET_RE.match(line))


def _strip_bullet(line: str) -> str:
    return _BULLET_PREFIX_RE.sub("", line, count=1).strip()


def sentiment_from_budget(spent: float, total_budget: float) -> str:
    """Sentiment comes from budget utilization, not from the AI's wording."""
    if total_budget <= 0:
        return "neutral"
    utilization = spent / total_budget
    if utilization < 0.7:
        return "positive"
    if utilization > 0.9:
        return "warning"
    return "neutral"


def parse_daily_insight(content: str, budget: BudgetStatus) -> DailyInsight:
    """First two lines form the insight, later bullet lines the suggestions."""
    lines = _non_empty_lines(content)
    insight = " ".join(lines[:2])
    suggestions = [_strip_bullet(line) for line in lines[2:] if _is_bullet(line)]
    return DailyInsight(
        insight=insight or content,
        suggestions=suggestions or [content],
        sentiment=sentiment_from_budget(budget.spent, budget.total_budget),
    )


def parse_savings_actions(content: str) -> list[SavingsAction]:
    """Group RECOMMENDATION / SAVINGS / DIFFICULTY lines into actions.

    A record is flushed when the next RECOMMENDATION starts; records missing
    any of the three fields are dropped.
    """
    actions: list[SavingsAction] = []
    current: dict[str, Any] = {}

    def flush() -> None:
        if current.get("action") and "savings" in current and current.get("difficulty"):
            actions.append(SavingsAction(current["action"], current["savings"], current["difficulty"]))

    for line in _non_empty_lines(content):
        recommendation = _RECOMMENDATION_RE.search(line)
        savings = _SAVINGS_RE.search(line)
        difficulty = _DIFFICULTY_RE.search(line)

        if recommendation:
            flush()
            current = {"action": recommendation.group(1).strip()}
        elif savings:
            current["savings"] = float(savings.group(1))
        elif difficulty:
            current["difficulty"] = difficulty.group(1).lower()

    flush()
    return actions


def _time_to_goal_description(months_before: int | None, months_after: int | None) -> str:
    if months_after is None:
        return "Additional income needed to reach goal"
    if months_before is not None and months_before - months_after > 0:
        saved = months_before - months_after
        return f"{saved} month{'' if saved == 1 else 's'} faster than current pace"
    return f"{months_after} month{'' if months_after == 1 else 's'} to reach goal"


def parse_savings_plan(content: str, context: SavingsContext) -> SavingsPlan:
    """Parse a savings reply.

    A reply without RECOMMENDATION markers is returned whole as the single
    recommendation, bullets included.
    """
    actions = parse_savings_actions(content)
    total_potential = sum(a.potential_savings for a in actions)
    months_after = months_to_reach(
        context.remaining_to_goal, context.current_monthly_savings + total_potential
    )

    if actions:
        recommendations = [a.action for a in actions]
    else:
        logger.info("AI reply had no structured recommendations, returning raw text")
        recommendations = [content]
        actions = [SavingsAction(
            "Review and optimize spending across all categories",
            round(min(context.average_monthly_spending * 0.1, 200), 2),
            "medium",
        )]

    return SavingsPlan(
        recommendations=recommendations,
        projected_savings_increase=round(total_potential, 2),
        estimated_months_to_goal=-1 if months_after is None else months_after,
        time_to_goal_description=_time_to_goal_description(context.months_to_goal, months_after),
        specific_actions=actions,
    )


# ============================================================================
# End-to-end generation
# ============================================================================

async def generate_daily_insight(
    client: CoachClient,
    transactions: list[Transaction],
    budget: BudgetStatus,
    patterns: SpendingPattern,
) -> DailyInsight:
    """Validate, prompt, call the AI service once and parse the reply.

    Raises:
        ValidationError: Before any request, for degenerate input.
        ExternalServiceError: If the AI service fails.
    """
    system_prompt, user_prompt = build_daily_insight_prompt(transactions, budget, patterns)
    completion = await client.complete(system_prompt, user_prompt)
    result = parse_daily_insight(completion.content, budget)
    result.tokens_used = completion.total_tokens
    result.model_used = completion.model
    return result


async def generate_savings_plan(
    client: CoachClient,
    goal: SavingsGoal,
    transactions: list[Transaction],
    monthly_income: float,
    patterns: SpendingPattern,
) -> SavingsPlan:
    """Validate, prompt, call the AI service once and parse the reply.

    Raises:
        ValidationError: Before any request, for degenerate input.
        ExternalServiceError: If the AI service fails.
    """
    system_prompt, user_prompt, context = build_savings_prompt(
        goal, transactions, monthly_income, patterns
    )
    completion = await client.complete(system_prompt, user_prompt)
    result = parse_savings_plan(completion.content, context)
    result.tokens_used = completion.total_tokens
    result.model_used = completion.model
    return result
