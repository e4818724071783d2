"""Shared fixtures for the abuse-guard test suite."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
import pytz

from abuse_guard.limiters import AddressRateLimiter, PrincipalRateLimiter
from abuse_guard.policies import KeyedBy, PolicyConfig, PolicySpec
from abuse_guard.rate_limit import limiter as admin_throttle
from abuse_guard.registry import LimiterRegistry
from abuse_guard.store.memory import InMemoryAttemptStore

HOUR_MS = 3_600_000

# A Tuesday morning, well away from any day boundary
START = datetime(2026, 3, 10, 9, 0, tzinfo=pytz.utc)


class FakeClock:
    """Callable clock the limiters read instead of the wall clock."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture(autouse=True)
def _reset_admin_throttle():
    admin_throttle.reset()
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def registry(store, clock) -> LimiterRegistry:
    return LimiterRegistry(store, clock=clock, tz="UTC")


def make_address_limiter(store, clock, max_attempts=3, block_ms=HOUR_MS, policy="contact"):
    config = PolicyConfig(max_attempts=max_attempts, block_duration_ms=block_ms)
    return AddressRateLimiter(store, config, policy, tz="UTC", clock=clock)


def make_principal_limiter(store, clock, max_attempts=5, block_ms=24 * HOUR_MS, policy="review"):
    config = PolicyConfig(max_attempts=max_attempts, block_duration_ms=block_ms)
    return PrincipalRateLimiter(store, config, policy, tz="UTC", clock=clock)


def small_policies(contact_max=3, contact_block_ms=HOUR_MS) -> dict:
    """Shipped policy names with a short contact policy for end-to-end scenarios."""
    return {
        "login": PolicySpec("login", KeyedBy.ADDRESS, PolicyConfig(max_attempts=10)),
        "contact": PolicySpec(
            "contact", KeyedBy.ADDRESS,
            PolicyConfig(max_attempts=contact_max, block_duration_ms=contact_block_ms),
        ),
        "review": PolicySpec("review", KeyedBy.PRINCIPAL, PolicyConfig(max_attempts=5)),
        "comment": PolicySpec("comment", KeyedBy.PRINCIPAL, PolicyConfig(max_attempts=10)),
    }
