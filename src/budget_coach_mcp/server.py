"""MCP Server for personal budget analytics and AI coaching."""

import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from .analytics import (
    add_goal_contribution,
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
from .coach import CoachClient, CoachError
from .config import Settings
from .database import Database

logger = logging.getLogger(__name__)


# Initialize MCP server
server = Server("budget-coach-mcp")

# Global state
_settings: Settings | None = None
_db: Database | None = None
_coach_client: CoachClient | None = None


def get_settings() -> Settings:
    """Get or load settings from the environment."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_db() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        db_path = get_settings().db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        _db = Database(db_path)
        _db.init_schema()
    return _db


def get_coach_client() -> CoachClient:
    """Get or create the AI coach client."""
    global _coach_client
    if _coach_client is None:
        settings = get_settings()
        if not settings.ai_token:
            logger.warning("BUDGET_COACH_AI_TOKEN is not set; AI requests are unauthenticated")
        _coach_client = CoachClient(settings.ai_url, settings.ai_token, settings.ai_model)
    return _coach_client


def init_for_testing(db: Database, client: CoachClient | None = None) -> None:
    """Initialize server with test database and AI client.

    Args:
        db: Database instance to use.
        client: Coach client (defaults to a dummy endpoint that is never hit
            unless a test patches httpx).
    """
    global _settings, _db, _coach_client
    _settings = Settings(db_path=db.db_path)
    _db = db
    _coach_client = client or CoachClient("http://test.invalid/chat/completions", "test_token", "test-model")


def _json(result: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]


# ============================================================================
# Tools
# ============================================================================

GRANULARITY_SCHEMA = {
    "type": "string",
    "enum": ["weekly", "monthly", "quarterly", "yearly"],
    "description": "Calendar window to analyze",
    "default": "monthly",
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="get_spending_analytics",
            description="Spending for this week/month/quarter/year vs the previous one, by category, with trend and insights. Answers: 'Where does my money go?', 'Am I spending more?'",
            inputSchema={
                "type": "object",
                "properties": {"granularity": GRANULARITY_SCHEMA},
            },
        ),
        Tool(
            name="get_budget_status",
            description="Budget utilization per category with ok/warning/exceeded status. Answers: 'Am I within budget?'",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_savings_goals",
            description="Savings goals with progress, days remaining, weekly amount needed, next milestone and coaching message.",
            inputSchema={
                "type": "object",
                "properties": {
                    "sort_by": {
                        "type": "string",
                        "enum": ["deadline", "progress", "priority"],
                        "default": "deadline",
                    },
                    "filter_by": {
                        "type": "string",
                        "enum": ["all", "active", "completed"],
                        "default": "all",
                    },
                },
            },
        ),
        Tool(
            name="add_goal_contribution",
            description="Add money to a savings goal. Reports a milestone (25/50/75/100%) if one is reached.",
            inputSchema={
                "type": "object",
                "properties": {
                    "goal_id": {"type": "string", "description": "Savings goal ID"},
                    "amount": {"type": "number", "description": "Contribution amount"},
                },
                "required": ["goal_id", "amount"],
            },
        ),
        Tool(
            name="get_subscription_summary",
            description="Subscriptions with monthly/yearly cost, upcoming renewals and insights. Answers: 'How much do I pay for subscriptions?'",
            inputSchema={
                "type": "object",
                "properties": {
                    "sort_by": {
                        "type": "string",
                        "enum": ["renewal", "cost", "category"],
                        "default": "renewal",
                    },
                    "category": {
                        "type": "string",
                        "description": "Category tag filter (streaming, music, software, ...)",
                    },
                    "active_only": {
                        "type": "boolean",
                        "description": "Hide paused subscriptions",
                        "default": True,
                    },
                },
            },
        ),
        Tool(
            name="get_dashboard_overview",
            description="Overall budget and savings-goal totals, plus the predictive overspend alert (premium).",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="check_feature_access",
            description="Check which features the account tier unlocks.",
            inputSchema={
                "type": "object",
                "properties": {
                    "feature": {
                        "type": "string",
                        "description": "Feature name, e.g. 'AI insight'. Omit to list all.",
                    },
                },
            },
        ),
        Tool(
            name="generate_daily_insight",
            description="Premium: AI coaching insight on yesterday's spending with 2-3 suggestions.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="generate_savings_plan",
            description="Premium: AI recommendations with estimated monthly savings to reach a goal faster.",
            inputSchema={
                "type": "object",
                "properties": {
                    "goal_id": {"type": "string", "description": "Savings goal ID"},
                    "monthly_income": {
                        "type": "number",
                        "description": "Monthly income (defaults to the profile's)",
                    },
                },
                "required": ["goal_id"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    db = get_db()
    arguments = arguments or {}

    if name == "get_spending_analytics":
        result = get_spending_analytics(
            db,
            granularity=arguments.get("granularity", "monthly"),
            week_start=get_settings().week_start,
        )
        return _json(result)

    elif name == "get_budget_status":
        return _json(get_budget_status(db))

    elif name == "get_savings_goals":
        result = get_savings_goals(
            db,
            sort_by=arguments.get("sort_by", "deadline"),
            filter_by=arguments.get("filter_by", "all"),
        )
        return _json(result)

    elif name == "add_goal_contribution":
        result = add_goal_contribution(
            db,
            goal_id=arguments.get("goal_id"),
            amount=arguments.get("amount"),
        )
        return _json(result)

    elif name == "get_subscription_summary":
        result = get_subscription_summary(
            db,
            sort_by=arguments.get("sort_by", "renewal"),
            category=arguments.get("category"),
            active_only=arguments.get("active_only", True),
        )
        return _json(result)

    elif name == "get_dashboard_overview":
        return _json(get_dashboard_overview(db))

    elif name == "check_feature_access":
        return _json(check_feature_access(db, feature=arguments.get("feature")))

    elif name == "generate_daily_insight":
        try:
            result = await generate_daily_insight_for_user(db, get_coach_client())
        except CoachError as e:
            logger.warning("Daily insight failed: %s", e)
            result = {"error": str(e)}
        return _json(result)

    elif name == "generate_savings_plan":
        try:
            result = await generate_savings_plan_for_goal(
                db,
                get_coach_client(),
                goal_id=arguments.get("goal_id"),
                monthly_income=arguments.get("monthly_income"),
            )
        except CoachError as e:
            logger.warning("Savings plan failed: %s", e)
            result = {"error": str(e)}
        return _json(result)

    else:
        raise ValueError(f"Unknown tool: {name}")


# ============================================================================
# Resources
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri="finance://transactions",
            name="Transactions",
            description="Most recent transactions",
            mimeType="application/json",
        ),
        Resource(
            uri="finance://budgets",
            name="Budgets",
            description="Active monthly budgets with utilization",
            mimeType="application/json",
        ),
        Resource(
            uri="finance://goals",
            name="Savings Goals",
            description="Savings goals with progress",
            mimeType="application/json",
        ),
        Resource(
            uri="finance://subscriptions",
            name="Subscriptions",
            description="Active and paused subscriptions",
            mimeType="application/json",
        ),
        Resource(
            uri="finance://profile",
            name="Profile",
            description="User profile and account tier",
            mimeType="application/json",
        ),
    ]


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read resource content."""
    db = get_db()
    uri = str(uri)

    if uri == "finance://transactions":
        result = get_transactions_resource(db)
    elif uri == "finance://budgets":
        result = get_budgets_resource(db)
    elif uri == "finance://goals":
        result = get_goals_resource(db)
    elif uri == "finance://subscriptions":
        result = get_subscriptions_resource(db)
    elif uri == "finance://profile":
        result = get_profile_resource(db)
    else:
        raise ValueError(f"Unknown resource: {uri}")

    return json.dumps(result, ensure_ascii=False, indent=2)


# ============================================================================
# Main
# ============================================================================

def main() -> None:
    """Run the MCP server."""
    import asyncio

    from mcp.server.stdio import stdio_server

    # stdout carries the MCP stream, so logs go to stderr
    logging.basicConfig(
        level=get_settings().log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
