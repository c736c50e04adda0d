"""
resume_ninja/models/usage.py

Derived usage read models (never persisted) and API response shapes.
"""

from datetime import datetime
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from resume_ninja.models.tier import Tier, Unlimited, UNLIMITED
from resume_ninja.models.usage_event import UsageEvent


class UsageSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_events: int = 0
    events_this_period: int = 0
    credits_granted_this_period: int = 0
    average_score: Optional[int] = None


class CreditDecision(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    credits_remaining: Union[int, Unlimited]
    is_low_balance: bool
    can_perform_action: bool


def render_credits(value: Union[int, Unlimited]) -> Union[int, str]:
    """JSON form of a credit balance: an int, or "unlimited"."""
    if value is UNLIMITED:
        return str(UNLIMITED)
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)


class UsageStatsResponse(_CamelModel):
    total_events: int = Field(alias="totalEvents")
    events_this_period: int = Field(alias="eventsThisPeriod")
    credits_remaining: Union[int, Unlimited] = Field(alias="creditsRemaining")
    is_low_balance: bool = Field(alias="isLowBalance")
    average_score: Optional[int] = Field(alias="averageScore")

    @field_serializer("credits_remaining")
    def _serialize_credits(self, value):
        return render_credits(value)

    @classmethod
    def from_parts(cls, summary: UsageSummary, decision: CreditDecision) -> "UsageStatsResponse":
        return cls(
            total_events=summary.total_events,
            events_this_period=summary.events_this_period,
            credits_remaining=decision.credits_remaining,
            is_low_balance=decision.is_low_balance,
            average_score=summary.average_score,
        )


class CreditsResponse(_CamelModel):
    credits_remaining: Union[int, Unlimited] = Field(alias="creditsRemaining")
    tier: Tier
    is_low_balance: bool = Field(alias="isLowBalance")

    @field_serializer("credits_remaining")
    def _serialize_credits(self, value):
        return render_credits(value)


class UsageEventOut(_CamelModel):
    kind: str
    occurred_at: datetime = Field(alias="occurredAt")
    score_value: Optional[float] = Field(alias="scoreValue")

    @classmethod
    def from_event(cls, event: UsageEvent) -> "UsageEventOut":
        return cls(kind=event.kind.value, occurred_at=event.occurred_at, score_value=event.score_value)


class UsageHistoryResponse(BaseModel):
    events: List[UsageEventOut]
    total: int
    limit: int
    offset: int
