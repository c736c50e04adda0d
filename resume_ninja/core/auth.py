"""
Identity resolution for Resume Ninja API.

Validates Supabase access tokens (HS256 JWTs signed with the project's JWT
secret) and reads the caller's subscription tier from the profiles table.
Falls back to X-User-Id header outside production (local testing).
"""
from fastapi import Request
from typing import Callable, Optional, Protocol
from sqlalchemy import select
import jwt
import logging

from resume_ninja.core.config import settings
from resume_ninja.core.database import ensure_schema, get_db_session, profiles
from resume_ninja.core.errors import StoreUnavailable
from resume_ninja.models.tier import Tier
from resume_ninja.models.user import Identity

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def get_current_user(self) -> Optional[Identity]:
        ...


def lookup_tier(user_id: str) -> Tier:
    """
    Read the caller's tier from profiles.

    A missing profile row means the user has not upgraded: free tier.
    An unrecognised tier value raises UnknownTierError.

    Raises:
        StoreUnavailable: the profile could not be read for any reason
            (unconfigured or unreachable database, driver error)
    """
    try:
        ensure_schema()
        with get_db_session() as session:
            row = session.execute(
                select(profiles.c.subscription_tier).where(profiles.c.id == user_id)
            ).first()
    except Exception as e:
        raise StoreUnavailable(f"Failed to read profile for {user_id}: {e}") from e

    if row is None:
        return Tier.FREE
    return Tier.parse(row.subscription_tier)


def verify_supabase_jwt(token: str, settings_obj=None) -> Optional[str]:
    """
    Verify a Supabase access token and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id from the 'sub' claim, or None if the token is not valid
    """
    cfg = settings_obj or settings
    if not cfg.SUPABASE_JWT_SECRET:
        logger.debug("No SUPABASE_JWT_SECRET configured, cannot verify tokens")
        return None

    try:
        payload = jwt.decode(
            token,
            cfg.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=cfg.SUPABASE_JWT_AUDIENCE,
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        logger.debug("No 'sub' claim in token")
        return None
    return user_id


class SupabaseIdentityProvider:
    """
    Resolves the caller of one request.

    Priority:
    1. Supabase JWT from Authorization header
    2. X-User-Id header (non-production only)
    3. None (unauthenticated)
    """

    def __init__(
        self,
        request: Request,
        *,
        settings_obj=None,
        tier_lookup: Callable[[str], Tier] = lookup_tier,
    ):
        self.request = request
        self.settings = settings_obj or settings
        self.tier_lookup = tier_lookup

    def _user_id_from_request(self) -> Optional[str]:
        auth_header = self.request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            # An invalid bearer token never falls through to the header
            return verify_supabase_jwt(auth_header[7:], self.settings)

        header_allowed = (
            self.settings.ALLOW_USER_ID_HEADER
            and self.settings.ENV.lower() != "production"
        )
        if header_allowed:
            x_user_id = self.request.headers.get("X-User-Id")
            if x_user_id and x_user_id.strip():
                return x_user_id.strip()

        return None

    def get_current_user(self) -> Optional[Identity]:
        user_id = self._user_id_from_request()
        if not user_id:
            return None
        return Identity(user_id=user_id, tier=self.tier_lookup(user_id))


def get_identity_provider(request: Request) -> IdentityProvider:
    """FastAPI dependency; override in tests via app.dependency_overrides."""
    return SupabaseIdentityProvider(request)
