"""FastAPI guards that put a limiter in front of a protected action.

Typical wiring::

    review_guard = PrincipalGuard(registry.principal("review"))

    @router.post("/courses/{course_id}/reviews")
    def add_review(course_id: str, body: ReviewIn,
                   rl: RateLimitInfo = Depends(review_guard)):
        save_review(course_id, rl.principal, body)    # may raise
        review_guard.reset(rl.principal)              # refund on success
        return {"ok": True}

Guards never let a store failure break the request: they log it and let the
request through (``RateLimitInfo.fail_open``).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from abuse_guard.errors import AuthenticationRequired, RateLimitExceeded, StoreUnavailable
from abuse_guard.identity import client_address, principal_id
from abuse_guard.limiters import AddressRateLimiter, PrincipalRateLimiter

LOG = logging.getLogger(__name__)

# The reset header is a fixed "a day from now" hint, not the record's real reset.
RESET_HINT = timedelta(hours=24)


@dataclass
class RateLimitInfo:
    """What a guard hands to the route (also stored on ``request.state``)."""
    policy: str
    action: str
    limit: int
    remaining_attempts: int
    principal: Optional[str] = None
    fail_open: bool = False


def _iso_z(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _apply_headers(response: Optional[Response], info: RateLimitInfo, now: datetime) -> None:
    if response is None or info.fail_open:
        return
    response.headers["X-RateLimit-Limit"] = str(info.limit)
    response.headers["X-RateLimit-Remaining"] = str(info.remaining_attempts)
    response.headers["X-RateLimit-Reset"] = _iso_z(now + RESET_HINT)


class PrincipalGuard:
    """Check, consume and (later) refund one slot of a principal's daily quota."""

    def __init__(
        self,
        limiter: PrincipalRateLimiter,
        action: Optional[str] = None,
        resolve_identity: Callable[[Request], Optional[str]] = principal_id,
    ):
        self.limiter = limiter
        self.action = action or limiter.policy
        self.resolve_identity = resolve_identity

    def _reject(self, remaining_time: Optional[int]) -> RateLimitExceeded:
        remaining_time = remaining_time or 0
        return RateLimitExceeded(
            message=(
                f"Rate limit exceeded for {self.action}. Please try again in "
                f"{self.limiter.format_remaining_time(remaining_time)}."
            ),
            remaining_time=remaining_time,
            action=self.action,
            remaining_attempts=0,
        )

    def _fail_open(self, principal: str) -> RateLimitInfo:
        return RateLimitInfo(
            policy=self.limiter.policy,
            action=self.action,
            limit=self.limiter.max_attempts,
            remaining_attempts=self.limiter.max_attempts,
            principal=principal,
            fail_open=True,
        )

    def check(self, principal: str) -> RateLimitInfo:
        """Steps 2-3: reject if limited, otherwise consume one attempt."""
        status = self.limiter.is_rate_limited(principal)
        if status.limited:
            LOG.warning(
                f"User {principal} rate limited for {self.action} - "
                f"{self.limiter.format_remaining_time(status.remaining_time or 0)} remaining"
            )
            raise self._reject(status.remaining_time)

        attempt = self.limiter.record_attempt(principal)
        if attempt.limited:
            LOG.warning(f"User {principal} blocked after attempt for {self.action}")
            raise self._reject(attempt.remaining_time)

        return RateLimitInfo(
            policy=self.limiter.policy,
            action=self.action,
            limit=self.limiter.max_attempts,
            remaining_attempts=attempt.remaining_attempts,
            principal=principal,
        )

    def __call__(self, request: Request, response: Response) -> RateLimitInfo:
        principal = self.resolve_identity(request)
        if not principal:
            raise AuthenticationRequired(self.action)

        try:
            info = self.check(principal)
        except RateLimitExceeded:
            raise
        except StoreUnavailable as exc:
            LOG.error(f"Attempt store unavailable for {self.action}, allowing request: {exc}")
            info = self._fail_open(principal)
        except Exception:
            LOG.exception(f"Error in rate limit guard for {self.action}, allowing request")
            info = self._fail_open(principal)

        _apply_headers(response, info, self.limiter.now())
        request.state.rate_limit_info = info
        return info

    def reset(self, principal: Optional[str]) -> None:
        """Refund the slot after the protected action succeeded."""
        if not principal:
            return
        try:
            self.limiter.reset_attempts(principal)
        except Exception:
            LOG.exception(f"Error resetting rate limit for {self.action}")


class AddressGuard:
    """Lockout for public flows keyed by caller address.

    Login-style routes use ``check`` as a dependency and then call
    ``record_failure`` / ``record_success`` once they know the outcome.
    Submission-style routes (the contact form) use ``consume``, which spends
    the attempt up front like ``PrincipalGuard`` does.
    """

    def __init__(
        self,
        limiter: AddressRateLimiter,
        action: Optional[str] = None,
        message: str = "Too many attempts",
        resolve_address: Callable[[Request], str] = client_address,
    ):
        self.limiter = limiter
        self.action = action or limiter.policy
        self.message = message
        self.resolve_address = resolve_address

    def _reject(self, remaining_time: Optional[int]) -> RateLimitExceeded:
        remaining_time = remaining_time or 0
        return RateLimitExceeded(
            message=(
                f"{self.message}. Please try again in "
                f"{self.limiter.format_remaining_time(remaining_time)}."
            ),
            remaining_time=remaining_time,
            action=self.action,
        )

    def check(self, request: Request) -> str:
        """Reject a currently blocked address; returns the address otherwise."""
        address = self.resolve_address(request)
        try:
            status = self.limiter.is_blocked(address)
        except Exception:
            LOG.exception(f"Error checking {self.action} block for {address}, allowing request")
            return address
        if status.blocked:
            LOG.warning(
                f"Blocked {self.action} attempt from {address} - "
                f"{self.limiter.format_remaining_time(status.remaining_time or 0)} remaining"
            )
            raise self._reject(status.remaining_time)
        return address

    def record_failure(self, address: str, label: Optional[str] = None) -> Optional[int]:
        """Count a failed attempt; returns attempts left, raises if this one blocked."""
        try:
            status = self.limiter.record_failed_attempt(address, label)
        except Exception:
            LOG.exception(f"Error recording failed {self.action} attempt for {address}")
            return None
        if status.blocked:
            LOG.warning(f"{address} blocked after failed {self.action} attempt")
            raise self._reject(status.remaining_time)
        return status.remaining_attempts

    def record_success(self, address: str, label: Optional[str] = None) -> None:
        try:
            self.limiter.record_successful_login(address, label)
        except Exception:
            LOG.exception(f"Error resetting {self.action} attempts for {address}")

    def consume(self, request: Request, response: Response) -> RateLimitInfo:
        """Check and spend one attempt before the action runs."""
        address = self.check(request)
        remaining = self.record_failure(address)
        info = RateLimitInfo(
            policy=self.limiter.policy,
            action=self.action,
            limit=self.limiter.max_attempts,
            remaining_attempts=self.limiter.max_attempts if remaining is None else remaining,
            principal=address,
            fail_open=remaining is None,
        )
        _apply_headers(response, info, self.limiter.now())
        request.state.rate_limit_info = info
        return info


def install_exception_handlers(app: FastAPI) -> None:
    """Render guard rejections with the standard JSON payloads."""

    @app.exception_handler(AuthenticationRequired)
    async def _auth_required(request: Request, exc: AuthenticationRequired):
        return JSONResponse(status_code=401, content=exc.to_payload())

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded):
        retry_after = str(max(1, exc.remaining_time // 1000))
        return JSONResponse(
            status_code=429,
            content=exc.to_payload(),
            headers={"Retry-After": retry_after},
        )
