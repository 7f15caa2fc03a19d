"""FastAPI application exposing the unified position engine."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.logging import bind_request_context, clear_request_context, get_logger
from ..config.settings import get_settings
from ..events import EventBus, get_event_bus, setup_default_event_handlers
from ..ledger.database import create_tables
from ..ledger.snapshot import SnapshotStore
from ..ledger.sync import LedgerSyncClient
from ..trading.engine import UnifiedPositionEngine
from ..utils.background import drain_background_tasks
from .dependencies import verify_auth_token
from .exceptions import setup_exception_handlers
from .health import router as health_router
from .models.responses import MessageResponse, StatusResponse
from .routers import account_router, fx_router, spot_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, restore the last snapshot, and save it again on shutdown."""
    logger.info("Starting Meridian position engine API")

    create_tables()

    setup_default_event_handlers(app.state.event_bus)
    logger.info("Event system initialized", event_bus_name=app.state.event_bus.name)

    snapshot = app.state.snapshot_store.load()
    if snapshot is not None:
        app.state.engine.restore(snapshot)

    logger.info("Meridian position engine API started successfully")

    yield

    logger.info("Shutting down Meridian position engine API")

    # let in-flight ledger writes and event handlers finish
    await drain_background_tasks()

    try:
        app.state.snapshot_store.save(app.state.engine.to_snapshot())
    except Exception as e:
        logger.error("Failed to save engine snapshot", error=str(e), exc_info=True)

    logger.info("Meridian position engine API shutdown completed")


async def request_context_middleware(request: Request, call_next):
    """Tag the request with an id that every log line emitted while serving it carries."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    clear_request_context()
    bind_request_context(request_id=request_id, path=request.url.path)

    started = time.perf_counter()
    try:
        response = await call_next(request)
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

    response.headers["X-Request-ID"] = request_id
    logger.info(
        "Request handled",
        method=request.method,
        status_code=response.status_code,
        elapsed_ms=elapsed_ms,
    )
    return response


def create_app(
    engine: Optional[UnifiedPositionEngine] = None,
    snapshot_store: Optional[SnapshotStore] = None,
    event_bus: Optional[EventBus] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    One engine serves the whole process. Handlers run on the event loop
    and engine methods are synchronous, so operations never interleave.
    """
    settings = get_settings()
    hide_docs = settings.is_production()

    app = FastAPI(
        title="Meridian Position Engine API",
        description="""
        Unified position accounting for margined FX, spot stocks and spot crypto.

        ## Features

        * **FX**: open/close margined positions with stop-loss and take-profit
        * **Spot**: weighted-average cost buys and partial or full sells
        * **Shield**: freeze a crypto position's valuation at a snapshot price
        * **Metrics**: equity, used/free margin and margin level after every change
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url=None if hide_docs else "/docs",
        redoc_url=None if hide_docs else "/redoc",
        openapi_url=None if hide_docs else "/openapi.json",
    )

    event_bus = event_bus or get_event_bus()
    app.state.event_bus = event_bus
    app.state.engine = engine or UnifiedPositionEngine(
        ledger=LedgerSyncClient(), event_bus=event_bus
    )
    app.state.snapshot_store = snapshot_store or SnapshotStore()

    app.middleware("http")(request_context_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health & Status"])

    protected = [Depends(verify_auth_token)]
    app.include_router(
        account_router, prefix="/api/v1/account", tags=["Account"], dependencies=protected
    )
    app.include_router(
        fx_router, prefix="/api/v1/fx", tags=["FX Trading"], dependencies=protected
    )
    app.include_router(
        spot_router, prefix="/api/v1/spot", tags=["Spot Trading"], dependencies=protected
    )

    @app.get(
        "/",
        response_model=MessageResponse,
        summary="API Root Endpoint",
    )
    async def root(
        request: Request, token: Optional[str] = Depends(verify_auth_token)
    ) -> MessageResponse:
        return MessageResponse.create(
            message="Meridian is running",
            request_id=request.state.request_id,
        )

    @app.get(
        "/api/v1/status",
        response_model=StatusResponse,
        summary="API Status",
    )
    async def api_status(
        request: Request, token: Optional[str] = Depends(verify_auth_token)
    ) -> StatusResponse:
        return StatusResponse.create(
            data={
                "api_version": __version__,
                "status": "operational",
                "event_bus": app.state.event_bus.get_statistics(),
                "endpoints": {
                    "health": "/api/v1/health",
                    "account": "/api/v1/account",
                    "fx": "/api/v1/fx/positions",
                    "stock": "/api/v1/spot/stock/positions",
                    "crypto": "/api/v1/spot/crypto/positions",
                    "shield": "/api/v1/spot/crypto/shield",
                    "docs": "/docs",
                },
            },
            request_id=request.state.request_id,
        )

    logger.info("FastAPI application created")
    return app


app = create_app()
