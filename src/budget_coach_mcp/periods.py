"""Calendar windows and transaction bucketing for spending analytics."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from .models import Granularity, Transaction


MONDAY = 0
SUNDAY = 6


@dataclass(frozen=True)
class Window:
    """Inclusive [start, end] time range."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.date().isoformat(), "end": self.end.date().isoformat()}


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _month_end(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1) - timedelta(days=1)
    return date(day.year, day.month + 1, 1) - timedelta(days=1)


def window_containing(
    granularity: Granularity | str,
    moment: datetime | date,
    week_start: int = MONDAY,
) -> Window:
    """Return the calendar-aligned window of the given granularity around moment.

    Args:
        granularity: 'weekly', 'monthly', 'quarterly' or 'yearly'.
        moment: Any instant inside the wanted window.
        week_start: First weekday of a week (0=Monday .. 6=Sunday).

    Raises:
        ValueError: For an unknown granularity.
    """
    granularity = Granularity(granularity)
    day = moment.date() if isinstance(moment, datetime) else moment

    if granularity == Granularity.WEEKLY:
        offset = (day.weekday() - week_start) % 7
        start = day - timedelta(days=offset)
        end = start + timedelta(days=6)
    elif granularity == Granularity.MONTHLY:
        start = day.replace(day=1)
        end = _month_end(start)
    elif granularity == Granularity.QUARTERLY:
        first_month = 3 * ((day.month - 1) // 3) + 1
        start = date(day.year, first_month, 1)
        end = _month_end(date(day.year, first_month + 2, 1))
    else:
        start = date(day.year, 1, 1)
        end = date(day.year, 12, 31)

    return Window(_day_start(start), _day_end(end))


def current_window(
    granularity: Granularity | str,
    now: datetime | None = None,
    week_start: int = MONDAY,
) -> Window:
    """Window of the given granularity containing now."""
    if now is None:
        now = datetime.now()
    return window_containing(granularity, now, week_start)


def previous_window(
    granularity: Granularity | str,
    now: datetime | None = None,
    week_start: int = MONDAY,
) -> Window:
    """Window of the same granularity immediately before the current one.

    One rule for all granularities: the window containing the day before the
    current window starts. For calendar months and years this is the same
    as "the calendar month/year before now".
    """
    current = current_window(granularity, now, week_start)
    return window_containing(granularity, current.start - timedelta(days=1), week_start)


def partition(
    transactions: Iterable[Transaction],
    current: Window,
    previous: Window,
) -> tuple[list[Transaction], list[Transaction]]:
    """Split transactions into (in current window, in previous window).

    Transactions outside both windows are dropped.
    """
    in_current: list[Transaction] = []
    in_previous: list[Transaction] = []
    for tx in transactions:
        if current.contains(tx.timestamp):
            in_current.append(tx)
        elif previous.contains(tx.timestamp):
            in_previous.append(tx)
    return in_current, in_previous


def is_weekend(moment: datetime | date) -> bool:
    """Saturday or Sunday."""
    return moment.weekday() >= 5


def weekend_weekday_totals(transactions: Iterable[Transaction]) -> tuple[float, float]:
    """Return (weekend_total, weekday_total)."""
    weekend = 0.0
    weekday = 0.0
    for tx in transactions:
        if is_weekend(tx.timestamp):
            weekend += tx.amount
        else:
            weekday += tx.amount
    return weekend, weekday


def totals_by_weekday(transactions: Iterable[Transaction]) -> dict[int, float]:
    """Totals keyed by weekday (0=Monday .. 6=Sunday)."""
    totals: dict[int, float] = {}
    for tx in transactions:
        key = tx.timestamp.weekday()
        totals[key] = totals.get(key, 0.0) + tx.amount
    return totals


def totals_by_day_of_month(transactions: Iterable[Transaction]) -> dict[int, float]:
    """Totals keyed by day of month (1..31)."""
    totals: dict[int, float] = {}
    for tx in transactions:
        key = tx.timestamp.day
        totals[key] = totals.get(key, 0.0) + tx.amount
    return totals


def first_week_total(transactions: Iterable[Transaction]) -> float:
    """Spending on days 1-7 of the month."""
    by_day = totals_by_day_of_month(transactions)
    return sum(amount for day, amount in by_day.items() if day <= 7)


def trend_label(moment: datetime, granularity: Granularity | str) -> str:
    """Chart label for a transaction: 'Mon', 'Dec 1' or 'Jan'."""
    granularity = Granularity(granularity)
    if granularity == Granularity.WEEKLY:
        return moment.strftime("%a")
    if granularity == Granularity.MONTHLY:
        return f"{moment.strftime('%b')} {moment.day}"
    return moment.strftime("%b")


def trend_buckets(
    transactions: Iterable[Transaction],
    granularity: Granularity | str,
) -> list[dict[str, float | str]]:
    """Group spending into chart buckets, ordered chronologically."""
    grouped: dict[str, float] = {}
    for tx in sorted(transactions, key=lambda t: t.timestamp):
        key = trend_label(tx.timestamp, granularity)
        grouped[key] = grouped.get(key, 0.0) + tx.amount
    return [{"date": key, "amount": round(amount, 2)} for key, amount in grouped.items()]
