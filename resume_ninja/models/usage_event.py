"""
resume_ninja/models/usage_event.py

UsageEvent model for the credit ledger.

One event is written per billable action, and one per credit grant
(purchased or comped credits). Events are immutable and the ledger is
append-only.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class UsageKind(str, Enum):
    """
    Ledger entry kinds.

    - analysis: ATS analysis of a resume (produces a score)
    - optimization: AI rewrite of a resume against a job description
    - credit_grant: credits added to the current period; not billable
    """
    ANALYSIS = "analysis"
    OPTIMIZATION = "optimization"
    CREDIT_GRANT = "credit_grant"


class UsageEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    kind: UsageKind
    occurred_at: datetime
    score_value: Optional[float] = Field(default=None, ge=0, le=100)
    # Credits granted; set on credit_grant entries only
    amount: Optional[int] = Field(default=None, ge=1)

    @field_validator("occurred_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_grant_shape(self) -> "UsageEvent":
        if self.kind is UsageKind.CREDIT_GRANT:
            if self.amount is None:
                raise ValueError("credit_grant events require an amount")
            if self.score_value is not None:
                raise ValueError("credit_grant events carry no score")
        elif self.amount is not None:
            raise ValueError("amount is only valid on credit_grant events")
        return self

    @property
    def is_billable(self) -> bool:
        return self.kind is not UsageKind.CREDIT_GRANT
