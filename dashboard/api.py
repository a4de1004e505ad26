"""
Dashboard - API.

============================================================
RESPONSIBILITY
============================================================
Read-only REST facade over the signal store.

- Signals, tracking history and kline rows
- Statistics snapshots, overview and comparison
- Health

Every response uses the envelope {code, message, data, timestamp};
errors add {error: {type, details}}.
============================================================
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.clock import ClockProtocol, SystemClock
from dashboard.errors import register_exception_handlers
from dashboard.routers import health, signals, statistics
from storage.repositories.signal_store import SignalStore

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
API_VERSION = "1.0.0"


def create_app(
    store: SignalStore,
    clock: Optional[ClockProtocol] = None,
    cors_origins: Optional[list] = None,
) -> FastAPI:
    """
    Build the FastAPI application bound to a store.

    Args:
        store: Signal store all routes read from
        clock: Time source (defaults to SystemClock)
        cors_origins: Allowed CORS origins (defaults to all)
    """
    app = FastAPI(
        title="Signal Performance API",
        description="Signal lifecycle and strategy performance analytics",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    clock = clock or SystemClock()
    app.state.store = store
    app.state.clock = clock
    app.state.started_at = clock.now()

    register_exception_handlers(app)

    app.include_router(health.router, prefix=API_PREFIX)
    app.include_router(signals.router, prefix=API_PREFIX)
    app.include_router(statistics.router, prefix=API_PREFIX)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {"status": "ok", "message": "Signal Performance API is running"}

    logger.info(f"API application created (prefix {API_PREFIX})")
    return app


__all__ = ["create_app", "API_PREFIX", "API_VERSION"]
