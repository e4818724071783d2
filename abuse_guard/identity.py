"""Caller identity helpers.

Authentication itself happens upstream; these only read what it left behind.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Request

from abuse_guard.config import PRINCIPAL_HEADER, TRUST_FORWARDED_FOR

UNKNOWN_ADDRESS = "unknown"


def client_address(request: Request, trust_forwarded: bool = TRUST_FORWARDED_FOR) -> str:
    """First hop of ``X-Forwarded-For`` if trusted, else the socket peer."""
    if trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ADDRESS


def principal_id(request: Request, header: str = PRINCIPAL_HEADER) -> Optional[str]:
    """Authenticated user id set by auth middleware, or the trusted gateway header."""
    value = getattr(request.state, "principal_id", None)
    if value is None:
        value = request.headers.get(header)
    if value is None:
        return None
    value = str(value).strip()
    return value or None
