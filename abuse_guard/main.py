"""FastAPI application exposing the rate-limit admin API.

Endpoints:
  GET  /                                            -> service info
  GET  /health                                      -> store connectivity
  GET  /admin/rate-limits/policies                  -> configured policies
  GET  /admin/rate-limits/{policy}/blocked          -> blocked principals today
  GET  /admin/rate-limits/{policy}/status/{id}      -> one principal's standing
  POST /admin/rate-limits/{policy}/unblock/{id}     -> admin unblock
  POST /admin/rate-limits/purge                     -> drop expired records

Host applications mount their own protected routes and guard them with
``PrincipalGuard`` / ``AddressGuard`` built from ``app.state.limiters``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded as SlowAPIRateLimitExceeded

from abuse_guard.guard import install_exception_handlers
from abuse_guard.limiters.base import Clock
from abuse_guard.logging_config import setup_logging
from abuse_guard.rate_limit import limiter
from abuse_guard.registry import LimiterRegistry, build_store
from abuse_guard.routers import admin
from abuse_guard.store.base import AttemptStore
from abuse_guard.timeutils import utc_now

log = logging.getLogger(__name__)


def create_app(
    store: Optional[AttemptStore] = None,
    registry: Optional[LimiterRegistry] = None,
    clock: Clock = utc_now,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the app around a single ``LimiterRegistry``."""
    if configure_logging:
        setup_logging()

    if registry is None:
        if store is None:
            store = build_store()
        registry = LimiterRegistry(store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        disconnect = getattr(app.state.limiters.store, "disconnect", None)
        if disconnect is not None:
            disconnect()

    app = FastAPI(title="Abuse Guard API", lifespan=lifespan)
    app.state.limiters = registry
    app.state.limiter = limiter
    app.add_exception_handler(SlowAPIRateLimitExceeded, _rate_limit_exceeded_handler)
    install_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        log.debug("Incoming request: %s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception as exc:
            log.exception("Error handling request %s %s: %s", request.method, request.url.path, exc)
            raise
        if response.status_code == 429:
            log.info("Rate limited %s %s", request.method, request.url.path)
        return response

    @app.get("/")
    def root():
        """Short service description with links to the main endpoints."""
        return {
            "service": "abuse-guard",
            "policies": [name for name, _ in app.state.limiters],
            "endpoints": [
                {"path": "/health", "method": "GET", "desc": "attempt store connectivity"},
                {"path": "/admin/rate-limits/policies", "method": "GET", "desc": "configured policies"},
                {"path": "/admin/rate-limits/{policy}/blocked", "method": "GET", "desc": "blocked principals"},
                {"path": "/admin/rate-limits/{policy}/status/{principal}", "method": "GET", "desc": "principal standing"},
                {"path": "/admin/rate-limits/{policy}/unblock/{principal}", "method": "POST", "desc": "unblock a principal"},
                {"path": "/admin/rate-limits/purge", "method": "POST", "desc": "delete expired records"},
            ],
        }

    @app.get("/health")
    def health():
        """Report whether the attempt store answers. Guards fail open when it does not."""
        store = app.state.limiters.store
        try:
            reachable = store.ping()
        except Exception as exc:
            log.warning(f"Health check ping failed: {exc}")
            reachable = False
        return {
            "status": "healthy" if reachable else "degraded",
            "checks": {
                "store": {
                    "backend": type(store).__name__,
                    "status": "ok" if reachable else "unreachable",
                },
            },
            "fail_open": not reachable,
        }

    app.include_router(admin.router)
    return app


app = create_app()
