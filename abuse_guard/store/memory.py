"""Process-local attempt store.

Used by the test suite and as the fallback when ``MONGODB_URI`` is not set.
Counters live only as long as the process, so this is not suitable for a
deployment with more than one worker.
"""
from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from abuse_guard.config import RECORD_RETENTION_HOURS
from abuse_guard.store.base import AttemptRecord, AttemptStore
from abuse_guard.timeutils import ensure_aware

LOG = logging.getLogger(__name__)

_Key = Tuple[str, str, datetime]

# Stale buckets are swept at most this often, measured on the callers' clock
PRUNE_INTERVAL = timedelta(minutes=1)


def _zero(record: AttemptRecord) -> bool:
    changed = record.attempt_count != 0 or record.is_blocked or record.blocked_until is not None
    record.attempt_count = 0
    record.is_blocked = False
    record.blocked_until = None
    return changed


class InMemoryAttemptStore(AttemptStore):
    """Dict-backed ``AttemptStore``; every method holds one lock.

    Records older than ``retention_hours`` are dropped while new attempts come
    in, the way the MongoDB TTL index reaps them, so the dict does not grow
    without bound.
    """

    def __init__(self, retention_hours: int = RECORD_RETENTION_HOURS):
        self._records: Dict[_Key, AttemptRecord] = {}
        self._lock = threading.Lock()
        self.retention = timedelta(hours=retention_hours)
        self._last_pruned: Optional[datetime] = None

    @staticmethod
    def _key(principal: str, policy: str, day_start: datetime) -> _Key:
        return (policy, principal, ensure_aware(day_start))

    def __len__(self) -> int:
        return len(self._records)

    def find_record(
        self, principal: str, policy: str, day_start: datetime
    ) -> Optional[AttemptRecord]:
        with self._lock:
            record = self._records.get(self._key(principal, policy, day_start))
            return copy.copy(record) if record else None

    def upsert_record(self, record: AttemptRecord) -> None:
        with self._lock:
            key = self._key(record.principal, record.policy, record.day_start)
            existing = self._records.get(key)
            stored = copy.copy(record)
            if existing is not None:
                stored.created_at = existing.created_at
            self._records[key] = stored

    def increment_attempt(
        self,
        principal: str,
        policy: str,
        day_start: datetime,
        now: datetime,
        label: Optional[str] = None,
    ) -> AttemptRecord:
        with self._lock:
            self._prune(now)
            key = self._key(principal, policy, day_start)
            record = self._records.get(key)
            if record is None:
                record = AttemptRecord(
                    principal=principal,
                    policy=policy,
                    day_start=ensure_aware(day_start),
                    created_at=now,
                )
                self._records[key] = record
            record.attempt_count += 1
            record.last_attempt = now
            if label is not None:
                record.label = label
            return copy.copy(record)

    def set_block(
        self, principal: str, policy: str, day_start: datetime, blocked_until: datetime
    ) -> None:
        with self._lock:
            record = self._records.get(self._key(principal, policy, day_start))
            if record is not None:
                record.is_blocked = True
                record.blocked_until = blocked_until

    def restart_expired_block(
        self,
        principal: str,
        policy: str,
        day_start: datetime,
        now: datetime,
        label: Optional[str] = None,
    ) -> Optional[AttemptRecord]:
        with self._lock:
            record = self._records.get(self._key(principal, policy, day_start))
            if record is None or not record.block_expired(now):
                return None
            _zero(record)
            record.attempt_count = 1
            record.last_attempt = now
            if label is not None:
                record.label = label
            return copy.copy(record)

    def reset_day(
        self, principal: str, policy: str, day_start: datetime, now: datetime
    ) -> int:
        with self._lock:
            record = self._records.get(self._key(principal, policy, day_start))
            if record is None:
                return 0
            _zero(record)
            record.last_attempt = now
            return 1

    def bulk_reset(self, principal: str, policy: str) -> int:
        touched = 0
        with self._lock:
            for (rec_policy, rec_principal, _), record in self._records.items():
                if rec_policy == policy and rec_principal == principal:
                    if _zero(record):
                        touched += 1
        return touched

    def find_blocked(
        self, policy: str, day_start: datetime, now: datetime
    ) -> List[AttemptRecord]:
        day_start = ensure_aware(day_start)
        with self._lock:
            blocked = [
                copy.copy(r)
                for (rec_policy, _, rec_day), r in self._records.items()
                if rec_policy == policy and rec_day == day_start and r.block_active(now)
            ]
        blocked.sort(key=lambda r: r.last_attempt or r.created_at, reverse=True)
        return blocked

    def _drop_older_than(self, cutoff: datetime) -> int:
        stale = [k for k, r in self._records.items() if ensure_aware(r.created_at) < cutoff]
        for k in stale:
            del self._records[k]
        return len(stale)

    def _prune(self, now: datetime) -> None:
        """Sweep expired records; caller holds the lock."""
        if self._last_pruned is not None and now - self._last_pruned < PRUNE_INTERVAL:
            return
        self._last_pruned = now
        dropped = self._drop_older_than(now - self.retention)
        if dropped:
            LOG.debug(f"Reaped {dropped} attempt record(s) past retention")

    def purge_expired(self, cutoff: datetime) -> int:
        with self._lock:
            deleted = self._drop_older_than(ensure_aware(cutoff))
        if deleted:
            LOG.info(f"Purged {deleted} expired attempt record(s)")
        return deleted

    def ping(self) -> bool:
        return True


__all__ = ["InMemoryAttemptStore"]
