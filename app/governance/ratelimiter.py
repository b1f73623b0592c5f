"""Per-action request rate limiting.

Usage pattern:
    from app.governance import RateLimiter, RateLimitPolicy
    limiter = RateLimiter()
    decision = await limiter.check(request, RateLimitPolicy(max_requests=5, window_seconds=60))
    if not decision.allowed:
        return decision.to_rejection().to_response()

Keys are namespaced by endpoint (the request path unless overridden), so one
client has an independent budget per protected action:
    "<endpoint>:ip:203.0.113.4"
    "<endpoint>:email:alice@example.com"

Failure policy is fail-open: when no key can be derived (custom key function
returns None or raises, or no client address header is present) the request is
admitted and a warning logged. Inability to identify a caller must never turn
into a denial of service for legitimate traffic.

Headers contract on denial:
    X-RateLimit-Limit: total allowed in the window
    X-RateLimit-Remaining: "0"
    X-RateLimit-Reset: epoch milliseconds when the window resets
    Retry-After: seconds until reset (rounded up)
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from starlette.requests import Request

from app.governance.rejection import RATE_LIMIT_EXCEEDED, Rejection
from app.governance.store import InMemoryRateLimitStore, RateLimitStore
from app.utils import get_logger
from app.utils.time import now_ms

logger = get_logger(__name__)

KeyFunc = Callable[[Request], Awaitable[Optional[str]]]
SkipFunc = Callable[[Request], Awaitable[bool]]

# Checked in order of trust; the last one is Cloudflare's client address header.
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


@dataclass
class RateLimitPolicy:
    max_requests: int
    window_seconds: int
    key_func: Optional[KeyFunc] = None
    skip_func: Optional[SkipFunc] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: Optional[int] = None
    retry_after_seconds: Optional[int] = None
    key: Optional[str] = None

    @classmethod
    def bypass(cls, limit: int) -> "RateLimitDecision":
        """Admit without counting (skipped or unattributable request)."""
        return cls(allowed=True, limit=limit, remaining=limit)

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if self.reset_at_ms is not None:
            headers["X-RateLimit-Reset"] = str(self.reset_at_ms)
        if self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers

    def to_rejection(self) -> Rejection:
        return Rejection(
            status_code=429,
            body={
                "error": "Too many requests",
                "code": RATE_LIMIT_EXCEEDED,
                "retryAfter": self.retry_after_seconds,
            },
            headers=self.headers(),
        )


def get_client_ip(headers: Mapping[str, str]) -> Optional[str]:
    """Best-effort client address from proxy headers; None when unattributable."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    for header in CLIENT_IP_HEADERS[1:]:
        value = (headers.get(header) or "").strip()
        if value:
            return value
    return None


class RateLimiter:
    """Fixed-window limiter over a ``RateLimitStore``.

    The store is owned by this instance; pass one explicitly to share counters
    or to plug in an external backend.
    """

    def __init__(self, store: Optional[RateLimitStore] = None, clock: Callable[[], int] = now_ms):
        self.store: RateLimitStore = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    async def _derive_key(self, request: Request, policy: RateLimitPolicy) -> Optional[str]:
        if policy.key_func is not None:
            try:
                key = await policy.key_func(request)
            except Exception as e:
                logger.warning(
                    "Rate limit key generation raised; failing open",
                    policy=policy.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None
            if not key:
                logger.warning("Rate limit key generation failed; skipping rate limit", policy=policy.name)
                return None
            return key

        ip = get_client_ip(request.headers)
        if ip is None:
            logger.warning("Unable to determine client IP; skipping rate limit", policy=policy.name)
            return None
        return f"ip:{ip}"

    async def check(self, request: Request, policy: RateLimitPolicy, endpoint: Optional[str] = None) -> RateLimitDecision:
        if policy.skip_func is not None:
            try:
                if await policy.skip_func(request):
                    return RateLimitDecision.bypass(policy.max_requests)
            except Exception as e:
                logger.warning("Rate limit skip check raised; applying limit", policy=policy.name, error=str(e))

        key = await self._derive_key(request, policy)
        if key is None:
            return RateLimitDecision.bypass(policy.max_requests)

        full_key = f"{endpoint or request.url.path}:{key}"
        now = self._clock()
        result = await self.store.upsert_and_check(
            full_key, now, policy.window_seconds * 1000, policy.max_requests
        )
        entry = result.entry

        if result.allowed:
            return RateLimitDecision(
                allowed=True,
                limit=policy.max_requests,
                remaining=max(0, policy.max_requests - entry.count),
                reset_at_ms=entry.reset_at_ms,
                key=full_key,
            )

        retry_after = max(0, math.ceil((entry.reset_at_ms - now) / 1000))
        logger.warning(
            "Rate limit exceeded",
            policy=policy.name,
            endpoint=endpoint or request.url.path,
            limit=policy.max_requests,
            retry_after=retry_after,
        )
        return RateLimitDecision(
            allowed=False,
            limit=policy.max_requests,
            remaining=0,
            reset_at_ms=entry.reset_at_ms,
            retry_after_seconds=retry_after,
            key=full_key,
        )

    async def check_all(self, request: Request, *policies: RateLimitPolicy, endpoint: Optional[str] = None) -> Optional[RateLimitDecision]:
        """Run policies in order; return the first denial or None."""
        for policy in policies:
            decision = await self.check(request, policy, endpoint=endpoint)
            if not decision.allowed:
                return decision
        return None


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    try:
        body = await request.json()
    except Exception:
        return None
    return body if isinstance(body, dict) else None


def email_key_generator(email_field: str = "email") -> KeyFunc:
    """Key by a (lower-cased) email field of the JSON body."""
    async def _key(request: Request) -> Optional[str]:
        body = await _json_body(request)
        if body is None:
            return None
        email = body.get(email_field)
        if not isinstance(email, str) or not email.strip():
            return None
        return f"email:{email.strip().lower()}"
    return _key


def body_field_key_generator(field_name: str, prefix: str) -> KeyFunc:
    """Key by an arbitrary scalar JSON body field, e.g. a group id."""
    async def _key(request: Request) -> Optional[str]:
        body = await _json_body(request)
        if body is None:
            return None
        value = body.get(field_name)
        if value is None or isinstance(value, (dict, list)) or str(value) == "":
            return None
        return f"{prefix}:{value}"
    return _key


__all__ = [
    "RateLimitPolicy",
    "RateLimitDecision",
    "RateLimiter",
    "get_client_ip",
    "email_key_generator",
    "body_field_key_generator",
    "CLIENT_IP_HEADERS",
]
