"""abuse-guard: calendar-day rate limiting and lockout for web endpoints.

This package is grouped by responsibility:
- store: the ``AttemptStore`` contract, MongoDB and in-memory implementations
- limiters: address-keyed and principal-keyed daily limiters
- guard: FastAPI dependencies wrapping protected actions
- registry: builds one limiter per shipped policy over a single store
- routers: admin API (list blocked, unblock, status, purge)
"""

from abuse_guard.errors import (
    AbuseGuardError,
    AuthenticationRequired,
    RateLimitExceeded,
    StoreUnavailable,
    UnknownPolicy,
)
from abuse_guard.guard import AddressGuard, PrincipalGuard, RateLimitInfo
from abuse_guard.limiters import AddressRateLimiter, PrincipalRateLimiter
from abuse_guard.policies import SHIPPED_POLICIES, PolicyConfig
from abuse_guard.registry import LimiterRegistry
from abuse_guard.timeutils import format_remaining_time

__all__ = [
    "AbuseGuardError",
    "AddressGuard",
    "AddressRateLimiter",
    "AuthenticationRequired",
    "LimiterRegistry",
    "PolicyConfig",
    "PrincipalGuard",
    "PrincipalRateLimiter",
    "RateLimitExceeded",
    "RateLimitInfo",
    "SHIPPED_POLICIES",
    "StoreUnavailable",
    "UnknownPolicy",
    "format_remaining_time",
]
