"""
resume_ninja/features/credits/service.py

Credit checks, consumption and grants on top of the usage ledger.

The balance is never stored: it is derived from the period's ledger
events, the tier's cap and any credits granted this period. Consuming a
credit appends a billable event; granting credits appends a
credit_grant event.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union

from resume_ninja.core.errors import InsufficientCreditsError
from resume_ninja.features.usage.service import compute_usage, decide
from resume_ninja.features.usage.store import LedgerStore
from resume_ninja.models.tier import Tier, TierLimits, Unlimited, UNLIMITED
from resume_ninja.models.usage import CreditDecision
from resume_ninja.models.usage_event import UsageEvent, UsageKind
from resume_ninja.models.user import Identity

logger = logging.getLogger("resume_ninja")


@dataclass(frozen=True)
class CreditCheck:
    has_credits: bool
    credits_remaining: Union[int, Unlimited]
    required: int
    tier: Tier


def check_credits(
    identity: Identity,
    store: LedgerStore,
    tier_limits: TierLimits,
    *,
    required: int = 1,
    now: Optional[datetime] = None,
) -> CreditCheck:
    """Whether the caller can afford `required` credits right now."""
    if required < 1:
        raise ValueError("required must be >= 1")

    _, decision = compute_usage(identity, store, tier_limits, now=now)
    if decision.credits_remaining is UNLIMITED:
        has_credits = True
    else:
        has_credits = decision.credits_remaining >= required

    return CreditCheck(
        has_credits=has_credits,
        credits_remaining=decision.credits_remaining,
        required=required,
        tier=identity.tier,
    )


def consume_credit(
    identity: Identity,
    store: LedgerStore,
    kind: UsageKind,
    tier_limits: TierLimits,
    *,
    score_value: Optional[float] = None,
    now: Optional[datetime] = None,
) -> CreditDecision:
    """
    Record one billable action if the caller still has credit.

    The credit check runs inside the store's conditional append, so
    concurrent calls for the same user cannot spend past the cap.
    Enterprise usage is recorded too; it just never runs out.

    Returns:
        CreditDecision after the event was appended

    Raises:
        InsufficientCreditsError: no credits left this period
        ValueError: kind is credit_grant (use add_credits)
    """
    if kind is UsageKind.CREDIT_GRANT:
        raise ValueError("credit grants are recorded with add_credits")
    if now is None:
        now = datetime.now(timezone.utc)

    event = UsageEvent(
        user_id=identity.user_id,
        kind=kind,
        occurred_at=now,
        score_value=score_value,
    )

    def permits(events: List[UsageEvent]) -> bool:
        _, decision = decide(identity, events, tier_limits, now=now)
        return decision.can_perform_action

    if not store.append_event_if(event, permits):
        logger.info(
            "credits.exhausted",
            extra={"user_id": identity.user_id, "tier": identity.tier.value},
        )
        raise InsufficientCreditsError()

    _, after = compute_usage(identity, store, tier_limits, now=now)
    logger.info(
        "credits.consumed",
        extra={"user_id": identity.user_id, "tier": identity.tier.value, "event_type": kind.value},
    )
    return after


def add_credits(
    identity: Identity,
    store: LedgerStore,
    amount: int,
    tier_limits: TierLimits,
    *,
    now: Optional[datetime] = None,
) -> CreditDecision:
    """
    Grant purchased or comped credits for the current period.

    Grants stack on top of the tier cap and expire with the period,
    like the cap itself.

    Raises:
        ValueError: amount < 1
    """
    if amount < 1:
        raise ValueError("amount must be >= 1")
    if now is None:
        now = datetime.now(timezone.utc)

    store.append_event(
        UsageEvent(
            user_id=identity.user_id,
            kind=UsageKind.CREDIT_GRANT,
            occurred_at=now,
            amount=amount,
        )
    )

    _, after = compute_usage(identity, store, tier_limits, now=now)
    logger.info(
        "credits.granted",
        extra={"user_id": identity.user_id, "tier": identity.tier.value, "event_type": UsageKind.CREDIT_GRANT.value},
    )
    return after
