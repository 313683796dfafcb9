# Request quotas kept in Redis.
# Anonymous auth endpoints are counted per client IP; everything behind a login is counted per user,
# so tenants sharing a campus NAT do not throttle each other. Without Redis nothing is counted.
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Literal, Optional

from fastapi import Request
from redis.exceptions import RedisError

from .errors import DomainError
from .redis_client import get_redis

logger = logging.getLogger("vinhousing.rate_limit")

Scope = Literal["login", "signup", "write", "sign", "issue"]


@dataclass(frozen=True)
class Quota:
    env_name: str
    default: int

    def limit(self) -> int:
        return _env_int(self.env_name, self.default)


QUOTAS: Dict[str, Quota] = {
    "login": Quota("RATE_LIMIT_LOGIN_PER_WINDOW", 10),
    "signup": Quota("RATE_LIMIT_SIGNUP_PER_WINDOW", 5),
    "write": Quota("RATE_LIMIT_WRITE_PER_WINDOW", 30),
    "sign": Quota("RATE_LIMIT_SIGN_PER_WINDOW", 10),
    "issue": Quota("RATE_LIMIT_ISSUE_PER_WINDOW", 20),
}


class RateLimitedError(DomainError):
    status_code = 429

    def __init__(self, scope: str, retry_after: int) -> None:
        super().__init__(f"Too many {scope} requests, retry in {retry_after}s")
        self.scope = scope
        self.retry_after = retry_after


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def consume(scope: Scope, subject: str, now: Optional[float] = None) -> None:
    """
    Count one request by `subject` ("user:<id>" or "ip:<addr>") against the scope's quota.

    Windows are aligned buckets of RATE_LIMIT_WINDOW_SECONDS; each bucket is its own key and
    expires on its own. Raises RateLimitedError once the bucket is over its limit.
    """
    r = get_redis()
    if r is None:
        return

    window = max(1, _env_int("RATE_LIMIT_WINDOW_SECONDS", 60))
    limit = QUOTAS[scope].limit()
    now = int(time.time() if now is None else now)
    bucket = now // window
    key = f"vinhousing:quota:{scope}:{subject}:{bucket}"
    try:
        pipe = r.pipeline()
        pipe.incr(key)
        pipe.expire(key, window + 1)
        count, _ = pipe.execute()
    except RedisError as exc:
        logger.warning("rate_limit.unavailable", extra={"scope": scope, "reason": str(exc)})
        return

    if count > limit:
        retry_after = max(1, (bucket + 1) * window - now)
        logger.info("rate_limit.exceeded", extra={"scope": scope, "subject": subject, "limit": limit})
        raise RateLimitedError(scope, retry_after)


def client_ip(request: Request) -> str:
    # X-Forwarded-For is not trusted; deploy behind a proxy that rewrites the peer address if needed
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def limit_by_ip(scope: Scope) -> Callable[[Request], None]:
    """FastAPI dependency for endpoints reachable without a token (signup, login)."""
    def _dependency(request: Request) -> None:
        consume(scope, f"ip:{client_ip(request)}")

    return _dependency
