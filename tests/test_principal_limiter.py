"""Tests for PrincipalRateLimiter — per-user daily quotas on content submissions."""
from __future__ import annotations

from datetime import datetime

import pytest
import pytz

from abuse_guard.limiters import PrincipalRateLimiter
from abuse_guard.policies import PolicyConfig
from abuse_guard.store.memory import InMemoryAttemptStore
from conftest import HOUR_MS, make_principal_limiter


# =====================================================================
# Quota accounting
# =====================================================================

class TestQuota:

    def test_fresh_user_has_full_quota(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=5)
        status = limiter.is_rate_limited("u1")
        assert status.limited is False
        assert status.remaining_attempts == 5
        assert status.remaining_time is None

    @pytest.mark.parametrize("max_attempts", [1, 2, 5])
    def test_limited_after_max_attempts(self, store, clock, max_attempts):
        limiter = make_principal_limiter(store, clock, max_attempts=max_attempts)
        results = [limiter.record_attempt("u1") for _ in range(max_attempts)]

        assert all(not r.limited for r in results[:-1])
        assert results[-1].limited is True
        assert limiter.is_rate_limited("u1").limited is True

    def test_remaining_never_negative(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=2)
        for _ in range(6):
            status = limiter.record_attempt("u1")
            assert status.remaining_attempts >= 0
        assert limiter.is_rate_limited("u1").remaining_attempts == 0

    def test_remaining_counts_down(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=5)
        assert [limiter.record_attempt("u1").remaining_attempts for _ in range(4)] == [4, 3, 2, 1]

    def test_block_duration_reported(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=2, block_ms=24 * HOUR_MS)
        limiter.record_attempt("u1")
        blocked = limiter.record_attempt("u1")
        assert blocked.remaining_time == 24 * HOUR_MS

        clock.advance(hours=2)
        status = limiter.is_rate_limited("u1")
        assert status.limited is True
        assert status.remaining_time == 22 * HOUR_MS

    def test_reset_restores_full_quota(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=5)
        limiter.record_attempt("u1")
        limiter.record_attempt("u1")
        limiter.reset_attempts("u1")
        assert limiter.is_rate_limited("u1").remaining_attempts == 5

    def test_reset_lifts_an_active_block(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=1)
        limiter.record_attempt("u1")
        limiter.reset_attempts("u1")
        assert limiter.is_rate_limited("u1").limited is False

    def test_users_are_independent(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=1)
        limiter.record_attempt("u1")
        assert limiter.is_rate_limited("u1").limited is True
        assert limiter.is_rate_limited("u2").limited is False

    def test_policies_are_independent(self, store, clock):
        review = make_principal_limiter(store, clock, max_attempts=1, policy="review")
        comment = make_principal_limiter(store, clock, max_attempts=1, policy="comment")
        review.record_attempt("u1")
        assert review.is_rate_limited("u1").limited is True
        assert comment.is_rate_limited("u1").limited is False


# =====================================================================
# Time-based behaviour
# =====================================================================

class TestExpiry:

    def test_expired_block_gives_fresh_allowance(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=2, block_ms=HOUR_MS)
        limiter.record_attempt("u1")
        limiter.record_attempt("u1")

        clock.advance(hours=1, minutes=1)
        status = limiter.is_rate_limited("u1")
        assert status.limited is False
        assert status.remaining_attempts == 2

        after = limiter.record_attempt("u1")
        assert after.limited is False
        assert after.remaining_attempts == 1

    def test_next_calendar_day_is_a_new_bucket(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=1, block_ms=48 * HOUR_MS)
        limiter.record_attempt("u1")
        assert limiter.is_rate_limited("u1").limited is True

        clock.set(datetime(2026, 3, 11, 0, 0, 1, tzinfo=pytz.utc))
        assert limiter.is_rate_limited("u1").limited is False

    def test_day_boundary_follows_configured_timezone(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=1)
        ny = PrincipalRateLimiter(
            store, PolicyConfig(max_attempts=1), "review", tz="America/New_York", clock=clock
        )

        # 03:00 UTC on the 11th is still the 10th in New York
        clock.set(datetime(2026, 3, 10, 20, 0, tzinfo=pytz.utc))
        ny.record_attempt("u1")
        clock.set(datetime(2026, 3, 11, 3, 0, tzinfo=pytz.utc))
        assert ny.is_rate_limited("u1").limited is True
        assert limiter.is_rate_limited("u1").limited is False

    def test_exhausted_without_block_waits_for_next_day(self, store, clock):
        limiter = make_principal_limiter(store, clock, max_attempts=3)
        day = limiter.day_start(clock())
        for _ in range(3):
            store.increment_attempt("u1", "review", day, clock())

        status = limiter.is_rate_limited("u1")
        assert status.limited is True
        assert status.remaining_attempts == 0
        # START is 09:00 UTC, so 15 hours to midnight
        assert status.remaining_time == 15 * HOUR_MS


# =====================================================================
# Interleaved requests
# =====================================================================

class InterleavedBlockStore(InMemoryAttemptStore):
    """Lets a second request's increment land just before the block is written."""

    def __init__(self, clock):
        super().__init__()
        self.clock = clock

    def set_block(self, principal, policy, day_start, blocked_until):
        self.increment_attempt(principal, policy, day_start, self.clock())
        super().set_block(principal, policy, day_start, blocked_until)


class RacingRestartStore(InMemoryAttemptStore):
    """A second request increments and restarts an expired block ahead of ours."""

    race_next_restart = False

    def restart_expired_block(self, principal, policy, day_start, now, label=None):
        if self.race_next_restart:
            self.race_next_restart = False
            self.increment_attempt(principal, policy, day_start, now)
            super().restart_expired_block(principal, policy, day_start, now)
        return super().restart_expired_block(principal, policy, day_start, now, label)


class TestInterleavedRequests:

    def test_block_write_keeps_concurrent_increment(self, clock):
        store = InterleavedBlockStore(clock)
        limiter = make_principal_limiter(store, clock, max_attempts=3)
        for _ in range(3):
            limiter.record_attempt("u1")

        stored = store.find_record("u1", "review", limiter.day_start(clock()))
        assert stored.attempt_count == 4
        assert stored.is_blocked is True
        assert limiter.is_rate_limited("u1").limited is True

    def test_racing_restart_counts_both_attempts(self, clock):
        store = RacingRestartStore()
        limiter = make_principal_limiter(store, clock, max_attempts=3, block_ms=HOUR_MS)
        for _ in range(3):
            limiter.record_attempt("u1")

        clock.advance(hours=1, minutes=1)
        store.race_next_restart = True
        status = limiter.record_attempt("u1")

        stored = store.find_record("u1", "review", limiter.day_start(clock()))
        assert stored.attempt_count == 2
        assert stored.is_blocked is False
        assert status.limited is False
        assert status.remaining_attempts == 1
