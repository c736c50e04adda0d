"""
Health endpoints for Resume Ninja backend.

Lightweight health checks for operational monitoring without exposing secrets.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from resume_ninja.core.database import check_connection, get_engine

logger = logging.getLogger("resume_ninja")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = ["profiles", "usage_events"]


def _not_ready(detail: str) -> JSONResponse:
    return JSONResponse(status_code=503, content={"status": "error", "detail": detail})


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    if not check_connection():
        return _not_ready("database unreachable")

    try:
        inspector = inspect(get_engine())
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    except Exception:
        logger.exception("[readyz] table inspection failed")
        return _not_ready("database unreachable")

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return _not_ready(detail)

    return {"status": "ok"}
