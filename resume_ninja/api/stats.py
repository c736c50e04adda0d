"""
resume_ninja/api/stats.py

Per-user usage endpoints: stats, credits, history.

Each request: resolve identity -> (401 if none) -> read the caller's
ledger -> aggregate -> credit policy -> JSON. Any failure after
authentication is logged and returned as a generic 500; no partial
summaries are returned.
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from resume_ninja.core.auth import IdentityProvider, get_identity_provider
from resume_ninja.core.config import settings
from resume_ninja.core.errors import AppError, AuthenticationFailure, StoreUnavailable, ValidationError
from resume_ninja.core.logging import bind_caller, log_event
from resume_ninja.features.usage.service import compute_usage, get_usage_history, get_usage_stats
from resume_ninja.features.usage.store import LedgerStore, SqlLedgerStore
from resume_ninja.models.tier import TierLimits, tier_limits_from_settings
from resume_ninja.models.usage import CreditsResponse, UsageEventOut, UsageHistoryResponse
from resume_ninja.models.user import Identity

logger = logging.getLogger("resume_ninja")

router = APIRouter(prefix="/api/user", tags=["usage"])

MAX_HISTORY_LIMIT = 100


def get_ledger_store() -> LedgerStore:
    return SqlLedgerStore()


def get_tier_limits() -> TierLimits:
    return tier_limits_from_settings(settings)


def authenticate(provider: IdentityProvider) -> Identity:
    """
    Resolve the caller or raise AuthenticationFailure.

    Backend outages (StoreUnavailable and other AppErrors) propagate as-is
    so they surface as 500, not as a misleading 401.
    """
    try:
        identity = provider.get_current_user()
    except AppError:
        raise
    except Exception:
        logger.warning("auth.resolution_failed", exc_info=True)
        raise AuthenticationFailure()

    if identity is None:
        raise AuthenticationFailure()
    bind_caller(identity.user_id, identity.tier.value)
    return identity


def _run(identity: Identity, operation: str, fn):
    """Run a ledger-touching operation; wrap unexpected errors as StoreUnavailable."""
    try:
        return fn()
    except AppError as e:
        log_event(
            "error",
            f"{operation}.failed",
            user_id=identity.user_id,
            error_code=e.code,
            extra={"detail": e.message},
        )
        raise
    except Exception as e:
        log_event(
            "error",
            f"{operation}.failed",
            user_id=identity.user_id,
            error_code="internal_error",
            exc_info=True,
        )
        raise StoreUnavailable(f"{operation} failed: {e}") from e


def _json(model) -> JSONResponse:
    return JSONResponse(content=model.model_dump(mode="json", by_alias=True))


@router.get("/stats")
def user_stats(
    provider: IdentityProvider = Depends(get_identity_provider),
    store: LedgerStore = Depends(get_ledger_store),
    tier_limits: TierLimits = Depends(get_tier_limits),
):
    """
    Usage summary for the authenticated caller.

    Returns:
    - totalEvents: lifetime billable actions
    - eventsThisPeriod: actions in the current calendar month (UTC)
    - creditsRemaining: int >= 0, or "unlimited" for enterprise
    - isLowBalance: true when remaining credits <= 1
    - averageScore: rounded lifetime mean ATS score, null if none
    """
    identity = authenticate(provider)
    stats = _run(identity, "usage.stats", lambda: get_usage_stats(identity, store, tier_limits))
    return _json(stats)


@router.get("/credits")
def user_credits(
    provider: IdentityProvider = Depends(get_identity_provider),
    store: LedgerStore = Depends(get_ledger_store),
    tier_limits: TierLimits = Depends(get_tier_limits),
):
    """Credit balance and tier, for the credits badge."""
    identity = authenticate(provider)
    _, decision = _run(identity, "usage.credits", lambda: compute_usage(identity, store, tier_limits))
    return _json(CreditsResponse(
        credits_remaining=decision.credits_remaining,
        tier=identity.tier,
        is_low_balance=decision.is_low_balance,
    ))


@router.get("/history")
def user_history(
    limit: int = Query(10, description="Page size (1-100)"),
    offset: int = Query(0, description="Events to skip (>= 0)"),
    provider: IdentityProvider = Depends(get_identity_provider),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Newest-first page of the caller's billable actions."""
    identity = authenticate(provider)

    if limit < 1 or limit > MAX_HISTORY_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must be >= 0")

    events, total = _run(
        identity,
        "usage.history",
        lambda: get_usage_history(identity, store, limit=limit, offset=offset),
    )
    return _json(UsageHistoryResponse(
        events=[UsageEventOut.from_event(e) for e in events],
        total=total,
        limit=limit,
        offset=offset,
    ))
