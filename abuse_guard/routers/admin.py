"""Router for the rate-limit administration endpoints."""

import hmac
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from abuse_guard import config
from abuse_guard.errors import StoreUnavailable, UnknownPolicy
from abuse_guard.limiters import AddressRateLimiter
from abuse_guard.models import (
    BlockedListOut,
    BlockedPrincipalOut,
    PolicyOut,
    PrincipalStatusOut,
    PurgeOut,
    UnblockOut,
)
from abuse_guard.rate_limit import ADMIN_RATE_LIMIT, limiter
from abuse_guard.registry import Limiter, LimiterRegistry

log = logging.getLogger(__name__)


def require_admin(x_api_key: Optional[str] = Header(None)) -> None:
    """Enforce ``ADMIN_API_KEY`` when it is configured."""
    expected = config.ADMIN_API_KEY
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required")


def get_registry(request: Request) -> LimiterRegistry:
    return request.app.state.limiters


router = APIRouter(
    prefix="/admin/rate-limits",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


def _limiter_or_404(registry: LimiterRegistry, policy: str) -> Limiter:
    try:
        return registry.get(policy)
    except UnknownPolicy as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/policies", response_model=list[PolicyOut])
@limiter.limit(ADMIN_RATE_LIMIT)
def list_policies(request: Request, registry: LimiterRegistry = Depends(get_registry)):
    """List every configured policy and its limits."""
    return [
        PolicyOut(
            name=spec.name,
            keyed_by=spec.keyed_by.value,
            max_attempts=spec.config.max_attempts,
            window_ms=spec.config.window_ms,
            block_duration_ms=spec.config.block_duration_ms,
            description=spec.description,
        )
        for spec in registry.specs.values()
    ]


@router.get("/{policy}/blocked", response_model=BlockedListOut)
@limiter.limit(ADMIN_RATE_LIMIT)
def list_blocked(request: Request, policy: str, registry: LimiterRegistry = Depends(get_registry)):
    """Principals currently blocked under ``policy`` today."""
    lim = _limiter_or_404(registry, policy)
    try:
        entries = lim.list_blocked()
    except StoreUnavailable as exc:
        log.error(f"Error getting blocked principals for {policy}: {exc}")
        raise HTTPException(status_code=503, detail="Attempt store unavailable")
    items = [BlockedPrincipalOut(**vars(e)) for e in entries]
    return BlockedListOut(policy=policy, count=len(items), items=items)


@router.get("/{policy}/status/{principal}", response_model=PrincipalStatusOut)
@limiter.limit(ADMIN_RATE_LIMIT)
def principal_status(
    request: Request,
    policy: str,
    principal: str,
    registry: LimiterRegistry = Depends(get_registry),
):
    """Current standing of one principal under ``policy``."""
    lim = _limiter_or_404(registry, policy)
    try:
        if isinstance(lim, AddressRateLimiter):
            block = lim.is_blocked(principal)
            limited = block.blocked
            remaining_time = block.remaining_time
            remaining = 0 if limited else lim.get_remaining_attempts(principal)
        else:
            status = lim.is_rate_limited(principal)
            limited = status.limited
            remaining_time = status.remaining_time
            remaining = status.remaining_attempts
    except StoreUnavailable as exc:
        log.error(f"Error getting {policy} status for {principal}: {exc}")
        raise HTTPException(status_code=503, detail="Attempt store unavailable")

    message = None
    if limited:
        message = f"Limited for another {lim.format_remaining_time(remaining_time or 0)}"
    return PrincipalStatusOut(
        policy=policy,
        principal=principal,
        limited=limited,
        remaining_attempts=remaining,
        remaining_time=remaining_time,
        message=message,
    )


@router.post("/{policy}/unblock/{principal}", response_model=UnblockOut)
@limiter.limit(ADMIN_RATE_LIMIT)
def unblock(
    request: Request,
    policy: str,
    principal: str,
    registry: LimiterRegistry = Depends(get_registry),
):
    """Reset every record of ``principal`` under ``policy``, whatever the day."""
    lim = _limiter_or_404(registry, policy)
    try:
        touched = lim.unblock(principal)
    except StoreUnavailable as exc:
        log.error(f"Error unblocking {principal} for {policy}: {exc}")
        raise HTTPException(status_code=503, detail="Attempt store unavailable")
    if touched == 0:
        raise HTTPException(status_code=404, detail=f"{principal} not found or not blocked")
    return UnblockOut(
        message=f"{principal} has been unblocked",
        policy=policy,
        principal=principal,
        records_reset=touched,
    )


@router.post("/purge", response_model=PurgeOut)
@limiter.limit(ADMIN_RATE_LIMIT)
def purge(
    request: Request,
    older_than_hours: int = Query(config.RECORD_RETENTION_HOURS, ge=1),
    registry: LimiterRegistry = Depends(get_registry),
):
    """Delete records older than ``older_than_hours`` (default: retention window)."""
    cutoff = registry.now() - timedelta(hours=older_than_hours)
    try:
        deleted = registry.store.purge_expired(cutoff)
    except StoreUnavailable as exc:
        log.error(f"Error purging attempt records: {exc}")
        raise HTTPException(status_code=503, detail="Attempt store unavailable")
    return PurgeOut(deleted=deleted, cutoff=cutoff)
