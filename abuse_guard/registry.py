"""Composition root: one store, one limiter per policy, built once.

``create_app()`` builds a ``LimiterRegistry`` and stores it on
``app.state.limiters``; guards and the admin router receive limiters from it
instead of importing module-level instances.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from abuse_guard.config import MONGODB_URI, RATE_LIMIT_TIMEZONE
from abuse_guard.errors import UnknownPolicy
from abuse_guard.limiters import AddressRateLimiter, PrincipalRateLimiter
from abuse_guard.limiters.base import Clock
from abuse_guard.policies import SHIPPED_POLICIES, KeyedBy, PolicySpec
from abuse_guard.store.base import AttemptStore
from abuse_guard.store.memory import InMemoryAttemptStore
from abuse_guard.timeutils import Tz, utc_now

LOG = logging.getLogger(__name__)

Limiter = Union[AddressRateLimiter, PrincipalRateLimiter]


def build_store(uri: Optional[str] = None) -> AttemptStore:
    """MongoDB store when a URI is configured, in-memory otherwise."""
    uri = uri or MONGODB_URI
    if not uri:
        LOG.warning("MONGODB_URI not configured. Using in-memory attempt store.")
        return InMemoryAttemptStore()

    from abuse_guard.store.mongo import MongoAttemptStore

    store = MongoAttemptStore(uri=uri)
    if not store.is_connected:
        # Guards fail open until the store comes back; it reconnects lazily.
        LOG.error("MongoDB unreachable at startup; rate limits will fail open")
    return store


class LimiterRegistry:
    """Maps policy names to limiters sharing one ``AttemptStore``."""

    def __init__(
        self,
        store: AttemptStore,
        policies: Mapping[str, PolicySpec] = SHIPPED_POLICIES,
        tz: Tz = RATE_LIMIT_TIMEZONE,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.clock = clock
        self.specs: Dict[str, PolicySpec] = dict(policies)
        self._limiters: Dict[str, Limiter] = {}
        for name, spec in self.specs.items():
            cls = AddressRateLimiter if spec.keyed_by is KeyedBy.ADDRESS else PrincipalRateLimiter
            self._limiters[name] = cls(store, spec.config, name, tz=tz, clock=clock)

    def now(self) -> datetime:
        return self.clock()

    def get(self, policy: str) -> Limiter:
        try:
            return self._limiters[policy]
        except KeyError:
            raise UnknownPolicy(policy) from None

    def address(self, policy: str) -> AddressRateLimiter:
        limiter = self.get(policy)
        if not isinstance(limiter, AddressRateLimiter):
            raise TypeError(f"Policy {policy!r} is not keyed by address")
        return limiter

    def principal(self, policy: str) -> PrincipalRateLimiter:
        limiter = self.get(policy)
        if not isinstance(limiter, PrincipalRateLimiter):
            raise TypeError(f"Policy {policy!r} is not keyed by principal")
        return limiter

    def __contains__(self, policy: str) -> bool:
        return policy in self._limiters

    def __iter__(self) -> Iterator[Tuple[str, Limiter]]:
        return iter(self._limiters.items())

    def __len__(self) -> int:
        return len(self._limiters)
