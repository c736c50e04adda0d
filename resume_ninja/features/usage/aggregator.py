"""
resume_ninja/features/usage/aggregator.py

Usage reducer: rolls ledger events up into a UsageSummary.

Pure function: same events + same window = same summary, in any order.
The score average is lifetime; the event count is scoped to the window.
Credit grants are not billable: they only add to the period's grant total.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from resume_ninja.models.usage import UsageSummary
from resume_ninja.models.usage_event import UsageEvent


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize(
    events: Iterable[UsageEvent],
    period_start: datetime,
    period_end: datetime,
) -> UsageSummary:
    """
    Reduce events to lifetime/period counts and the average score.

    Args:
        events: The user's ledger events (any order)
        period_start: Start of billing period (inclusive)
        period_end: End of billing period (exclusive)

    Returns:
        UsageSummary; average_score is None when no event carries a score.
        Grants count toward credits_granted_this_period only.
    """
    period_start = _as_utc(period_start)
    period_end = _as_utc(period_end)

    total = 0
    in_period = 0
    granted = 0
    score_sum = Decimal(0)
    scored = 0

    for event in events:
        within = period_start <= event.occurred_at < period_end
        if not event.is_billable:
            if within:
                granted += event.amount
            continue

        total += 1
        if within:
            in_period += 1
        if event.score_value is not None:
            # str() keeps float scores exact in decimal form
            score_sum += Decimal(str(event.score_value))
            scored += 1

    average: Optional[int] = None
    if scored:
        average = round_half_up(score_sum / scored)

    return UsageSummary(
        total_events=total,
        events_this_period=in_period,
        credits_granted_this_period=granted,
        average_score=average,
    )


def current_period(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Calendar month (UTC) containing now, as [start, end)."""
    if now is None:
        now = datetime.now(timezone.utc)
    now = _as_utc(now).astimezone(timezone.utc)

    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end
