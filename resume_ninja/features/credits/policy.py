"""
resume_ninja/features/credits/policy.py

Credit policy: maps a tier, the period's usage count and any credits
granted this period to a credit decision.

Pure function: no I/O, no clock, same inputs = same decision.
"""

from resume_ninja.core.errors import UnknownTierError
from resume_ninja.models.tier import Tier, TierLimits, UNLIMITED
from resume_ninja.models.usage import CreditDecision

DEFAULT_LOW_BALANCE_THRESHOLD = 1

_UNLIMITED_DECISION = CreditDecision(
    credits_remaining=UNLIMITED,
    is_low_balance=False,
    can_perform_action=True,
)


def _limit_for(tier: Tier, tier_limits: TierLimits):
    try:
        return tier_limits[tier]
    except KeyError:
        raise UnknownTierError(f"No credit limit configured for tier {tier.value!r}")


def evaluate(
    tier: Tier,
    period_event_count: int,
    tier_limits: TierLimits,
    *,
    low_balance_threshold: int = DEFAULT_LOW_BALANCE_THRESHOLD,
    granted: int = 0,
) -> CreditDecision:
    """
    Evaluate the caller's credit position for the current period.

    Args:
        tier: Caller's subscription tier
        period_event_count: Billable events already consumed this period (>= 0)
        tier_limits: Cap per tier; enterprise maps to UNLIMITED
        low_balance_threshold: Remaining credits at or below which the balance is low
        granted: Extra credits added to this period on top of the tier cap

    Returns:
        CreditDecision with credits_remaining floored at 0

    Raises:
        UnknownTierError: tier is not a Tier or has no configured limit
        ValueError: period_event_count or granted is negative
    """
    if not isinstance(tier, Tier):
        raise UnknownTierError(f"Unknown subscription tier: {tier!r}")
    if period_event_count < 0:
        raise ValueError("period_event_count must be >= 0")
    if granted < 0:
        raise ValueError("granted must be >= 0")

    if tier is Tier.ENTERPRISE:
        return _UNLIMITED_DECISION
    elif tier is Tier.FREE or tier is Tier.PRO:
        cap = _limit_for(tier, tier_limits)
        if cap is UNLIMITED:
            return _UNLIMITED_DECISION
        remaining = max(0, cap + granted - period_event_count)
        return CreditDecision(
            credits_remaining=remaining,
            is_low_balance=remaining <= low_balance_threshold,
            can_perform_action=remaining > 0,
        )

    raise UnknownTierError(f"Unhandled subscription tier: {tier.value!r}")
