"""Attempt storage: the ``AttemptStore`` contract and its implementations."""

from abuse_guard.store.base import AttemptRecord, AttemptStore
from abuse_guard.store.memory import InMemoryAttemptStore

__all__ = ["AttemptRecord", "AttemptStore", "InMemoryAttemptStore"]
