"""Caller-address limiter for authentication-adjacent flows.

Only *failed* attempts are recorded (wrong password, taken username, ...); a
successful login wipes the day's counter for that address.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from abuse_guard.limiters.base import DailyLimiter

LOG = logging.getLogger(__name__)


@dataclass
class BlockStatus:
    blocked: bool
    remaining_time: Optional[int] = None
    remaining_attempts: Optional[int] = None


class AddressRateLimiter(DailyLimiter):
    """Blocks an address for ``block_duration_ms`` after ``max_attempts`` failures in a day."""

    def is_blocked(self, address: str) -> BlockStatus:
        """Blocked only while today's block timer is still running."""
        record, now = self._today(address)
        if record is not None and record.block_active(now):
            return BlockStatus(blocked=True, remaining_time=record.remaining_block_ms(now))
        return BlockStatus(blocked=False)

    def record_failed_attempt(self, address: str, label: Optional[str] = None) -> BlockStatus:
        record, now = self._consume(address, label)
        if record.block_active(now):
            return BlockStatus(
                blocked=True,
                remaining_time=record.remaining_block_ms(now),
                remaining_attempts=0,
            )
        return BlockStatus(blocked=False, remaining_attempts=self.remaining_for(record, now))

    def record_successful_login(self, address: str, label: Optional[str] = None) -> None:
        """Reset all of today's records for ``address``."""
        self._reset_today(address)
        LOG.info(
            f"{self.policy} attempts reset for {address}"
            + (f" ({label})" if label else "")
            + " after success"
        )

    def get_remaining_attempts(self, address: str) -> int:
        record, now = self._today(address)
        return self.remaining_for(record, now)
