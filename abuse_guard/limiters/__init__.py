"""Calendar-day attempt limiters.

- address: ``AddressRateLimiter`` for login/registration/contact flows
- principal: ``PrincipalRateLimiter`` for authenticated content submissions
"""

from abuse_guard.limiters.address import AddressRateLimiter, BlockStatus
from abuse_guard.limiters.base import BlockedEntry, DailyLimiter
from abuse_guard.limiters.principal import PrincipalRateLimiter, RateLimitStatus

__all__ = [
    "AddressRateLimiter",
    "BlockStatus",
    "BlockedEntry",
    "DailyLimiter",
    "PrincipalRateLimiter",
    "RateLimitStatus",
]
