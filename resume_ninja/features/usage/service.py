"""
resume_ninja/features/usage/service.py

Usage accounting for one authenticated caller.

Handles:
- Stats: ledger read -> aggregator -> credit policy
- History: newest-first page of the caller's billable actions

The caller's identity is always passed in; nothing here reads request
context or module-level clients.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from resume_ninja.core.config import settings
from resume_ninja.features.credits.policy import evaluate
from resume_ninja.features.usage.aggregator import current_period, summarize
from resume_ninja.features.usage.store import LedgerStore
from resume_ninja.models.tier import TierLimits
from resume_ninja.models.usage import CreditDecision, UsageStatsResponse, UsageSummary
from resume_ninja.models.usage_event import UsageEvent
from resume_ninja.models.user import Identity


def decide(
    identity: Identity,
    events: Iterable[UsageEvent],
    tier_limits: TierLimits,
    now: Optional[datetime] = None,
    low_balance_threshold: Optional[int] = None,
) -> Tuple[UsageSummary, CreditDecision]:
    """Summary and credit decision for an already-fetched ledger."""
    if low_balance_threshold is None:
        low_balance_threshold = settings.LOW_BALANCE_THRESHOLD

    period_start, period_end = current_period(now)
    summary = summarize(events, period_start, period_end)
    decision = evaluate(
        identity.tier,
        summary.events_this_period,
        tier_limits,
        low_balance_threshold=low_balance_threshold,
        granted=summary.credits_granted_this_period,
    )
    return summary, decision


def compute_usage(
    identity: Identity,
    store: LedgerStore,
    tier_limits: TierLimits,
    now: Optional[datetime] = None,
    low_balance_threshold: Optional[int] = None,
) -> Tuple[UsageSummary, CreditDecision]:
    """
    Summarize the caller's ledger and evaluate their credit position.

    All-or-nothing: any store or policy error propagates unchanged.
    """
    events = store.fetch_events(identity.user_id)
    return decide(identity, events, tier_limits, now=now, low_balance_threshold=low_balance_threshold)


def get_usage_stats(
    identity: Identity,
    store: LedgerStore,
    tier_limits: TierLimits,
    now: Optional[datetime] = None,
) -> UsageStatsResponse:
    summary, decision = compute_usage(identity, store, tier_limits, now=now)
    return UsageStatsResponse.from_parts(summary, decision)


def get_usage_history(
    identity: Identity,
    store: LedgerStore,
    *,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[UsageEvent], int]:
    """Newest-first page of the caller's billable actions, plus their lifetime total."""
    actions = [e for e in store.fetch_events(identity.user_id) if e.is_billable]
    newest_first = sorted(actions, key=lambda e: e.occurred_at, reverse=True)
    return newest_first[offset:offset + limit], len(newest_first)
