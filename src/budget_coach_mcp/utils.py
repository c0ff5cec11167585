"""Utility functions for the budget coach MCP server."""

import math
from datetime import date, datetime


def parse_datetime(value: str | datetime | date) -> datetime:
    """Parse a stored timestamp into a naive local datetime.

    Accepts ISO strings with or without time, a trailing 'Z', or an offset.
    Aware values are converted to local time and made naive so they compare
    with calendar windows.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def parse_date(value: str | date) -> date:
    """Parse 'YYYY-MM-DD' (or a full timestamp) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_datetime(value).date()


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity.

    Matches the rounding used in insight messages (2.5 -> 3, -2.5 -> -2)
    instead of Python's banker's rounding.
    """
    return math.floor(value + 0.5)


def format_money(amount: float) -> str:
    """Format amount as '$1234.50'."""
    return f"${amount:.2f}"


def plural(count: int, word: str) -> str:
    """Return 'word' or 'words' depending on count."""
    return word if count == 1 else f"{word}s"
