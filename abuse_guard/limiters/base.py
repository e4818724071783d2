"""Shared calendar-day counting for both limiter flavours."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from abuse_guard.config import RATE_LIMIT_TIMEZONE
from abuse_guard.policies import PolicyConfig
from abuse_guard.store.base import AttemptRecord, AttemptStore
from abuse_guard.timeutils import (
    Tz,
    format_remaining_time,
    get_timezone,
    millis_between,
    next_day_start,
    start_of_day,
    utc_now,
)

LOG = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class BlockedEntry:
    """One row of the admin "who is blocked" listing."""
    principal: str
    attempt_count: int
    last_attempt: Optional[datetime]
    blocked_until: Optional[datetime]
    remaining_time: int
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal": self.principal,
            "label": self.label,
            "attemptCount": self.attempt_count,
            "lastAttempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "blockedUntil": self.blocked_until.isoformat() if self.blocked_until else None,
            "remainingTime": self.remaining_time,
        }


class DailyLimiter:
    """Counts attempts per principal per calendar day and blocks at the threshold."""

    def __init__(
        self,
        store: AttemptStore,
        config: PolicyConfig,
        policy: str,
        tz: Tz = RATE_LIMIT_TIMEZONE,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.config = config
        self.policy = policy
        self.tz = get_timezone(tz)
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    def now(self) -> datetime:
        return self._clock()

    def day_start(self, now: datetime) -> datetime:
        return start_of_day(now, self.tz)

    def millis_until_next_day(self, now: datetime) -> int:
        return millis_between(now, next_day_start(now, self.tz))

    def remaining_for(self, record: Optional[AttemptRecord], now: datetime) -> int:
        if record is None or record.block_expired(now):
            return self.max_attempts
        return max(0, self.max_attempts - record.attempt_count)

    def _today(self, principal: str) -> Tuple[Optional[AttemptRecord], datetime]:
        now = self.now()
        return self.store.find_record(principal, self.policy, self.day_start(now)), now

    def _consume(self, principal: str, label: Optional[str] = None) -> Tuple[AttemptRecord, datetime]:
        """Add one attempt to today's record, blocking when the threshold is met."""
        now = self.now()
        day = self.day_start(now)
        record = self.store.increment_attempt(principal, self.policy, day, now, label)

        if record.block_expired(now):
            # The block ran its course; the day starts over with this attempt.
            restarted = self.store.restart_expired_block(principal, self.policy, day, now, label)
            if restarted is None:
                # A concurrent request restarted it first and wiped our increment
                record = self.store.increment_attempt(principal, self.policy, day, now, label)
            else:
                LOG.info(f"Expired {self.policy} block for {principal} cleared, counter restarted")
                record = restarted

        if record.attempt_count >= self.max_attempts and not record.block_active(now):
            record.is_blocked = True
            record.blocked_until = now + timedelta(milliseconds=self.config.block_duration_ms)
            self.store.set_block(principal, self.policy, day, record.blocked_until)
            LOG.warning(
                f"{principal} blocked for {self.policy} after {record.attempt_count} attempts "
                f"(until {record.blocked_until.isoformat()})"
            )
        return record, now

    def _reset_today(self, principal: str) -> int:
        now = self.now()
        return self.store.reset_day(principal, self.policy, self.day_start(now), now)

    # ==================== ADMIN ====================

    def list_blocked(self) -> List[BlockedEntry]:
        now = self.now()
        return [
            BlockedEntry(
                principal=r.principal,
                attempt_count=r.attempt_count,
                last_attempt=r.last_attempt,
                blocked_until=r.blocked_until,
                remaining_time=r.remaining_block_ms(now),
                label=r.label,
            )
            for r in self.store.find_blocked(self.policy, self.day_start(now), now)
        ]

    def unblock(self, principal: str) -> int:
        """Reset every record of ``principal`` for this policy, whatever its day."""
        touched = self.store.bulk_reset(principal, self.policy)
        if touched:
            LOG.info(f"{principal} unblocked for {self.policy} by admin ({touched} record(s))")
        return touched

    @staticmethod
    def format_remaining_time(ms: int) -> str:
        return format_remaining_time(ms)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(policy={self.policy!r}, "
            f"max_attempts={self.max_attempts}, block_ms={self.config.block_duration_ms})"
        )
