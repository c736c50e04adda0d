"""
resume_ninja/models/tier.py

Subscription tiers and per-tier credit limits.

Tiers are a closed set. Parsing an unrecognised value raises
UnknownTierError instead of falling back to a default tier, so a new or
misspelled tier can never silently pick up another tier's allowance.
"""

from enum import Enum
from typing import Dict, Mapping, Union

from resume_ninja.core.errors import UnknownTierError


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: object) -> "Tier":
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownTierError(f"Unknown subscription tier: {value!r}")


class Unlimited:
    """Sentinel for an uncapped credit allowance. Not a number."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"

    def __str__(self) -> str:
        return "unlimited"

    def __reduce__(self):
        return (Unlimited, ())


UNLIMITED = Unlimited()

CreditLimit = Union[int, Unlimited]
TierLimits = Mapping[Tier, CreditLimit]


def default_tier_limits(free: int = 3, pro: int = 50) -> Dict[Tier, CreditLimit]:
    """Monthly credit allowance per tier."""
    return {
        Tier.FREE: free,
        Tier.PRO: pro,
        Tier.ENTERPRISE: UNLIMITED,
    }


def tier_limits_from_settings(settings_obj) -> Dict[Tier, CreditLimit]:
    return default_tier_limits(
        free=settings_obj.FREE_CREDITS_PER_PERIOD,
        pro=settings_obj.PRO_CREDITS_PER_PERIOD,
    )
