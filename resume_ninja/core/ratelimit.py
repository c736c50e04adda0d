"""
Token-bucket rate limiter with per-tier limits.

- In-memory, keyed by user id or client ip.
- Defaults are safe (disabled unless enabled via env/settings).
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Callable

ANONYMOUS = "anonymous"


@dataclass
class RateLimitConfig:
    enabled: bool = False
    # Requests per minute; burst capacity equals the per-minute limit
    per_minute: Dict[str, int] = field(default_factory=lambda: {
        ANONYMOUS: 3,
        "free": 5,
        "pro": 30,
        "enterprise": 100,
    })

    def limit_for(self, tier: str) -> int:
        return self.per_minute.get(tier, self.per_minute[ANONYMOUS])


class TokenBucket:
    def __init__(self, capacity: int, refill_rate_per_sec: float, time_fn: Callable[[], float] = time.monotonic):
        self.capacity = max(1, capacity)
        self.tokens = float(self.capacity)
        self.refill_rate = max(0.0, refill_rate_per_sec)
        self.time_fn = time_fn
        self.last_refill = self.time_fn()

    def _refill(self) -> None:
        now = self.time_fn()
        elapsed = now - self.last_refill
        if elapsed <= 0:
            return
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def allow(self, cost: float = 1.0) -> bool:
        self._refill()
        if self.tokens >= cost:
            self.tokens -= cost
            return True
        return False

    def seconds_until_available(self, cost: float = 1.0) -> float:
        self._refill()
        missing = cost - self.tokens
        if missing <= 0:
            return 0.0
        if self.refill_rate <= 0:
            return 60.0
        return missing / self.refill_rate

    def seconds_until_full(self) -> float:
        self._refill()
        missing = self.capacity - self.tokens
        if missing <= 0:
            return 0.0
        if self.refill_rate <= 0:
            return 60.0
        return missing / self.refill_rate


class InMemoryRateLimiter:
    def __init__(self, config: RateLimitConfig, time_fn: Callable[[], float] = time.monotonic):
        self.config = config
        self.time_fn = time_fn
        self.buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def _bucket_for(self, key: str, per_minute: int) -> TokenBucket:
        if key not in self.buckets:
            refill_rate = per_minute / 60.0
            self.buckets[key] = TokenBucket(capacity=per_minute, refill_rate_per_sec=refill_rate, time_fn=self.time_fn)
        return self.buckets[key]

    def allow(self, key: str, *, per_minute: int) -> bool:
        with self._lock:
            return self._bucket_for(key, per_minute).allow()

    def retry_after(self, key: str, *, per_minute: int) -> int:
        with self._lock:
            wait = self._bucket_for(key, per_minute).seconds_until_available()
        return max(1, int(wait + 0.999))

    def reset_after(self, key: str, *, per_minute: int) -> int:
        """Whole seconds until the bucket is back to full capacity."""
        with self._lock:
            wait = self._bucket_for(key, per_minute).seconds_until_full()
        return max(1, int(wait + 0.999))


def build_rate_limit_config_from_env(env: dict) -> RateLimitConfig:
    def _bool(name: str, default: bool) -> bool:
        raw = env.get(name)
        if raw is None:
            return default
        return str(raw).lower() in {"1", "true", "yes", "on"}

    def _int(name: str, default: int) -> int:
        raw = env.get(name)
        if raw is None:
            return default
        try:
            value = int(raw)
            return value if value > 0 else default
        except (TypeError, ValueError):
            return default

    return RateLimitConfig(
        enabled=_bool("RATE_LIMIT_ENABLED", False),
        per_minute={
            ANONYMOUS: _int("RATE_LIMIT_ANONYMOUS_PER_MINUTE", 3),
            "free": _int("RATE_LIMIT_FREE_PER_MINUTE", 5),
            "pro": _int("RATE_LIMIT_PRO_PER_MINUTE", 30),
            "enterprise": _int("RATE_LIMIT_ENTERPRISE_PER_MINUTE", 100),
        },
    )
