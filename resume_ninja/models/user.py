from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

from resume_ninja.models.tier import Tier


class Identity(BaseModel):
    """The authenticated caller, as resolved by the identity provider."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    tier: Tier
    email: Optional[str] = None
    created_at: Optional[datetime] = None
