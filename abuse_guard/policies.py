"""Rate-limit policies.

A ``PolicyConfig`` is plain construction-time data: it is bound to exactly one
limiter and never persisted. ``SHIPPED_POLICIES`` lists the six policies the
service runs with; the numbers must not drift, clients rely on them.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from abuse_guard.config import DAY_MS


class KeyedBy(str, Enum):
    ADDRESS = "address"
    PRINCIPAL = "principal"


@dataclass(frozen=True)
class PolicyConfig:
    """Immutable limits for one protected action.

    ``window_ms`` documents the accounting window; counters are always
    bucketed by calendar day, so it is informational for the shipped policies.
    """

    max_attempts: int
    window_ms: int = DAY_MS
    block_duration_ms: int = DAY_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.window_ms <= 0 or self.block_duration_ms <= 0:
            raise ValueError("window_ms and block_duration_ms must be positive")


@dataclass(frozen=True)
class PolicySpec:
    name: str
    keyed_by: KeyedBy
    config: PolicyConfig
    description: str = ""


LOGIN = "login"
CONTACT = "contact"
COPYRIGHT = "copyright"
TICKET_CHECK = "ticket_check"
COMMENT = "comment"
REVIEW = "review"

SHIPPED_POLICIES: Dict[str, PolicySpec] = {
    LOGIN: PolicySpec(
        LOGIN, KeyedBy.ADDRESS, PolicyConfig(max_attempts=10),
        "login, registration and admin login failures per address",
    ),
    CONTACT: PolicySpec(
        CONTACT, KeyedBy.ADDRESS, PolicyConfig(max_attempts=3),
        "public contact form submissions per address",
    ),
    COPYRIGHT: PolicySpec(
        COPYRIGHT, KeyedBy.PRINCIPAL, PolicyConfig(max_attempts=2),
        "copyright dispute submissions per user",
    ),
    TICKET_CHECK: PolicySpec(
        TICKET_CHECK, KeyedBy.PRINCIPAL, PolicyConfig(max_attempts=5),
        "ticket status lookups per user",
    ),
    COMMENT: PolicySpec(
        COMMENT, KeyedBy.PRINCIPAL, PolicyConfig(max_attempts=10),
        "lesson comment submissions per user",
    ),
    REVIEW: PolicySpec(
        REVIEW, KeyedBy.PRINCIPAL, PolicyConfig(max_attempts=5),
        "course review submissions per user",
    ),
}
