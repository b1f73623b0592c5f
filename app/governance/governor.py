"""Request governance: CSRF first, then rate limits, then business logic.

The two gates deliberately use opposite failure policies. CSRF is fail-closed
(an internal error is a 500), rate limiting is fail-open (an unattributable
request is admitted). The governor short-circuits on the first rejection.
"""
from __future__ import annotations

from typing import Optional, Sequence

from starlette.requests import Request

from app.governance.csrf import CSRFValidator, SessionLoader
from app.governance.ratelimiter import RateLimitPolicy, RateLimiter
from app.governance.rejection import Rejection


class RequestGovernor:
    def __init__(self, csrf_validator: Optional[CSRFValidator] = None, rate_limiter: Optional[RateLimiter] = None):
        self.csrf_validator = csrf_validator or CSRFValidator()
        self.rate_limiter = rate_limiter or RateLimiter()

    async def evaluate(
        self,
        request: Request,
        load_session: SessionLoader,
        policies: Sequence[RateLimitPolicy] = (),
        endpoint: Optional[str] = None,
    ) -> Optional[Rejection]:
        rejection = await self.csrf_validator.validate_lazy(request, load_session)
        if rejection is not None:
            return rejection
        denied = await self.rate_limiter.check_all(request, *policies, endpoint=endpoint)
        if denied is not None:
            return denied.to_rejection()
        return None


__all__ = ["RequestGovernor"]
