import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

# Load env from the project .env (tests configure env themselves)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from sqlalchemy.exc import SQLAlchemyError

from resume_ninja.core.config import settings, validate_config
from resume_ninja.core.database import ensure_schema, is_configured
from resume_ninja.core.logging import configure_logging
from resume_ninja.core.validation import validate_env
from resume_ninja.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from resume_ninja.core.middleware.request_id import RequestIdMiddleware
from resume_ninja.core.middleware.ratelimit import RateLimitMiddleware
from resume_ninja.core.middleware.security_headers import SecurityHeadersMiddleware, build_csp
from resume_ninja.core.ratelimit import build_rate_limit_config_from_env
from resume_ninja.api import health, stats

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("resume_ninja")
    logger.info("Starting Resume Ninja backend...")
    app.state.startup_time = time.time()
    if is_configured():
        try:
            ensure_schema()
        except SQLAlchemyError:
            # Routes retry lazily; /readyz reports the failure meanwhile
            logger.exception("Schema setup failed at startup")
    else:
        logger.warning("No DATABASE_URL configured; skipping schema setup")
    try:
        yield
    finally:
        logging.getLogger("resume_ninja").info("Stopping Resume Ninja backend...")


def create_app() -> FastAPI:
    app = FastAPI(title="Resume Ninja - Usage API", lifespan=lifespan)

    # Middlewares (last added runs first: request id wraps everything)
    app.add_middleware(RateLimitMiddleware, config=build_rate_limit_config_from_env(os.environ))
    app.add_middleware(
        SecurityHeadersMiddleware,
        csp=build_csp(settings.SUPABASE_URL) if settings.SECURITY_CSP_ENABLED else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(stats.router)
    app.include_router(health.router)
    return app


app = create_app()
