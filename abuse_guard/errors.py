"""Exception taxonomy for abuse-guard.

``AuthenticationRequired`` and ``RateLimitExceeded`` are raised by the guards
and turned into HTTP responses by
``abuse_guard.guard.install_exception_handlers``.
``StoreUnavailable`` never reaches a client: guards catch it and let the
request through.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AbuseGuardError(Exception):
    """Base class for every error raised by this package."""


class AuthenticationRequired(AbuseGuardError):
    """No caller identity could be resolved for a principal-keyed action."""

    def __init__(self, action: Optional[str] = None):
        super().__init__("Authentication required")
        self.action = action

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": "Authentication required"}
        if self.action:
            payload["action"] = self.action
        return payload


class RateLimitExceeded(AbuseGuardError):
    """The caller is blocked or out of attempts for the current day."""

    def __init__(
        self,
        message: str,
        remaining_time: int,
        action: Optional[str] = None,
        remaining_attempts: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.remaining_time = max(0, int(remaining_time))
        self.action = action
        self.remaining_attempts = remaining_attempts

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": self.message,
            "limited": True,
            "remainingTime": self.remaining_time,
        }
        if self.action:
            payload["action"] = self.action
        if self.remaining_attempts is not None:
            payload["remainingAttempts"] = self.remaining_attempts
        return payload


class StoreUnavailable(AbuseGuardError):
    """The attempt store could not be reached or rejected an operation."""


class UnknownPolicy(AbuseGuardError, KeyError):
    """A policy name that the registry does not know about."""

    def __init__(self, policy: str):
        super().__init__(policy)
        self.policy = policy

    def __str__(self) -> str:
        return f"Unknown rate-limit policy: {self.policy}"
