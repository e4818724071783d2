"""Attempt record model and the storage contract the limiters depend on.

Every limiter talks to storage only through ``AttemptStore`` so the counting
logic stays storage-agnostic (MongoDB in production, a dict in tests).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from abuse_guard.timeutils import ensure_aware, millis_between, utc_now


@dataclass
class AttemptRecord:
    """Counter for one principal under one policy for one calendar day."""
    principal: str
    policy: str
    day_start: datetime
    attempt_count: int = 0
    last_attempt: Optional[datetime] = None
    is_blocked: bool = False
    blocked_until: Optional[datetime] = None
    # Free-form audit metadata, e.g. the username typed on a login form
    label: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def block_active(self, now: datetime) -> bool:
        return (
            self.is_blocked
            and self.blocked_until is not None
            and ensure_aware(self.blocked_until) > now
        )

    def block_expired(self, now: datetime) -> bool:
        """A block was set today but its timer has already run out."""
        return (
            self.is_blocked
            and self.blocked_until is not None
            and ensure_aware(self.blocked_until) <= now
        )

    def remaining_block_ms(self, now: datetime) -> int:
        if not self.block_active(now):
            return 0
        return millis_between(now, self.blocked_until)

    def key(self) -> Dict[str, Any]:
        return {
            "principal": self.principal,
            "policy": self.policy,
            "day_start": self.day_start,
        }

    def to_document(self) -> Dict[str, Any]:
        return {
            "principal": self.principal,
            "policy": self.policy,
            "day_start": self.day_start,
            "attempt_count": self.attempt_count,
            "last_attempt": self.last_attempt,
            "is_blocked": self.is_blocked,
            "blocked_until": self.blocked_until,
            "label": self.label,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "AttemptRecord":
        def _dt(value: Optional[datetime]) -> Optional[datetime]:
            return ensure_aware(value) if value is not None else None

        return cls(
            principal=doc["principal"],
            policy=doc["policy"],
            day_start=ensure_aware(doc["day_start"]),
            attempt_count=int(doc.get("attempt_count", 0)),
            last_attempt=_dt(doc.get("last_attempt")),
            is_blocked=bool(doc.get("is_blocked", False)),
            blocked_until=_dt(doc.get("blocked_until")),
            label=doc.get("label"),
            created_at=_dt(doc.get("created_at")) or ensure_aware(doc["day_start"]),
        )


class AttemptStore(ABC):
    """Minimal persistence contract for attempt counters.

    Implementations raise ``StoreUnavailable`` for any backend failure; they
    never return sentinel values for errors.
    """

    @abstractmethod
    def find_record(
        self, principal: str, policy: str, day_start: datetime
    ) -> Optional[AttemptRecord]:
        """Return the record for this day bucket, or None."""

    @abstractmethod
    def upsert_record(self, record: AttemptRecord) -> None:
        """Create or replace the record matching ``record.key()``."""

    @abstractmethod
    def increment_attempt(
        self,
        principal: str,
        policy: str,
        day_start: datetime,
        now: datetime,
        label: Optional[str] = None,
    ) -> AttemptRecord:
        """Atomically add one attempt (creating the record) and return it."""

    @abstractmethod
    def set_block(
        self, principal: str, policy: str, day_start: datetime, blocked_until: datetime
    ) -> None:
        """Mark the record blocked until ``blocked_until``; the counter is left alone."""

    @abstractmethod
    def restart_expired_block(
        self,
        principal: str,
        policy: str,
        day_start: datetime,
        now: datetime,
        label: Optional[str] = None,
    ) -> Optional[AttemptRecord]:
        """Clear an expired block and count this attempt as the first one.

        Conditional on the block still being expired at write time: returns the
        restarted record, or None when another caller restarted it first.
        """

    @abstractmethod
    def reset_day(
        self, principal: str, policy: str, day_start: datetime, now: datetime
    ) -> int:
        """Zero every record of this principal for this day. Returns count touched."""

    @abstractmethod
    def bulk_reset(self, principal: str, policy: str) -> int:
        """Zero every record of this principal regardless of day. Returns count touched."""

    @abstractmethod
    def find_blocked(
        self, policy: str, day_start: datetime, now: datetime
    ) -> List[AttemptRecord]:
        """Today's records with an active block, most recent attempt first."""

    @abstractmethod
    def purge_expired(self, cutoff: datetime) -> int:
        """Delete records created before ``cutoff``. Returns count deleted."""

    @abstractmethod
    def ping(self) -> bool:
        """Cheap reachability check used by the health endpoint."""


__all__ = ["AttemptRecord", "AttemptStore"]
