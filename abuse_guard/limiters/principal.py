"""Authenticated-user quota for content submissions.

Attempts are consumed *before* the wrapped action runs. Only a confirmed
success refunds the slot (``reset_attempts``); a rejected submission, such as
a duplicate review, keeps its slot spent for the rest of the day.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from abuse_guard.limiters.base import DailyLimiter

LOG = logging.getLogger(__name__)


@dataclass
class RateLimitStatus:
    limited: bool
    remaining_attempts: int
    remaining_time: Optional[int] = None


class PrincipalRateLimiter(DailyLimiter):
    """Per-policy daily quota keyed by authenticated principal id."""

    def is_rate_limited(self, principal: str) -> RateLimitStatus:
        record, now = self._today(principal)
        if record is None:
            return RateLimitStatus(limited=False, remaining_attempts=self.max_attempts)

        if record.block_active(now):
            return RateLimitStatus(
                limited=True,
                remaining_attempts=0,
                remaining_time=record.remaining_block_ms(now),
            )

        remaining = self.remaining_for(record, now)
        if remaining == 0:
            # Out of slots without a running block timer: wait for tomorrow.
            return RateLimitStatus(
                limited=True,
                remaining_attempts=0,
                remaining_time=self.millis_until_next_day(now),
            )
        return RateLimitStatus(limited=False, remaining_attempts=remaining)

    def record_attempt(self, principal: str) -> RateLimitStatus:
        record, now = self._consume(principal)
        if record.block_active(now):
            return RateLimitStatus(
                limited=True,
                remaining_attempts=0,
                remaining_time=record.remaining_block_ms(now),
            )
        remaining = self.remaining_for(record, now)
        return RateLimitStatus(limited=False, remaining_attempts=remaining)

    def reset_attempts(self, principal: str) -> None:
        self._reset_today(principal)
        LOG.info(f"{self.policy} attempts reset for user {principal}")
