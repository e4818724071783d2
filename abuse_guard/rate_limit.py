"""Coarse per-IP request throttle for the admin API.

Uses `slowapi` (which wraps `limits`) in memory. This is separate from the
calendar-day lockout engine: it only stops someone hammering the admin
endpoints themselves.

Env vars
--------
ADMIN_RATE_LIMIT : str
    Limit applied to admin routes (e.g. ``"30/minute"``).
"""
from __future__ import annotations

from slowapi import Limiter

from abuse_guard.config import ADMIN_RATE_LIMIT
from abuse_guard.identity import client_address

# Single limiter instance shared by the admin router; keyed like the guards
limiter = Limiter(key_func=client_address)

__all__ = ["limiter", "ADMIN_RATE_LIMIT"]
