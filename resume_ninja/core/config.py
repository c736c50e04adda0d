import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Supabase auth
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    ALLOW_USER_ID_HEADER: bool = True  # ignored in production

    # Credits per billing period (calendar month); enterprise is unlimited
    FREE_CREDITS_PER_PERIOD: int = 3
    PRO_CREDITS_PER_PERIOD: int = 50
    LOW_BALANCE_THRESHOLD: int = 1

    # Rate limiting (requests per minute, per tier)
    RATE_LIMIT_ENABLED: bool = False
    RATE_LIMIT_ANONYMOUS_PER_MINUTE: int = 3
    RATE_LIMIT_FREE_PER_MINUTE: int = 5
    RATE_LIMIT_PRO_PER_MINUTE: int = 30
    RATE_LIMIT_ENTERPRISE_PER_MINUTE: int = 100

    # Security headers
    SECURITY_CSP_ENABLED: bool = False

    # App URLs
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("resume_ninja")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SUPABASE_URL",
        "SUPABASE_JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    for key in ("FREE_CREDITS_PER_PERIOD", "PRO_CREDITS_PER_PERIOD", "LOW_BALANCE_THRESHOLD"):
        value = getattr(cfg, key, 0)
        if value is not None and value < 0:
            message = f"{key} must be >= 0"
            if strict_mode:
                raise RuntimeError(message)
            log.warning(message)

    return True
