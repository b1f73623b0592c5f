"""
Request governance: rate limiting and CSRF protection.
"""
from .store import CounterEntry, CounterCheck, RateLimitStore, InMemoryRateLimitStore
from .ratelimiter import (
    RateLimitPolicy,
    RateLimitDecision,
    RateLimiter,
    get_client_ip,
    email_key_generator,
    body_field_key_generator,
)
from .csrf import CSRFValidator, generate_csrf_token, tokens_match, issue_csrf_token
from .rejection import Rejection, GovernanceRejected
from .governor import RequestGovernor

__all__ = [
    "CounterEntry",
    "CounterCheck",
    "RateLimitStore",
    "InMemoryRateLimitStore",
    "RateLimitPolicy",
    "RateLimitDecision",
    "RateLimiter",
    "get_client_ip",
    "email_key_generator",
    "body_field_key_generator",
    "CSRFValidator",
    "generate_csrf_token",
    "tokens_match",
    "issue_csrf_token",
    "Rejection",
    "GovernanceRejected",
    "RequestGovernor",
]
