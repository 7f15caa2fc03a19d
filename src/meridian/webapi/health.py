"""Liveness and health endpoints."""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable

from fastapi import APIRouter, Request

from .. import __version__
from ..config.logging import get_logger
from ..ledger.database import check_database_health
from .models.responses import HealthResponse, HealthStatus

logger = get_logger(__name__)
router = APIRouter()

_started_at = time.time()

# worst status wins
_SEVERITY = {"healthy": 0, "degraded": 1, "unhealthy": 2}


def _uptime() -> float:
    return time.time() - _started_at


def overall_status(statuses: Iterable[str]) -> str:
    worst = max((_SEVERITY.get(s, 2) for s in statuses), default=0)
    return next(name for name, rank in _SEVERITY.items() if rank == worst)


def check_engine_health(request: Request) -> Dict[str, Any]:
    """An engine that has not been initialized yet is reported as degraded."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return {"status": "unhealthy", "error": "Engine not attached"}

    initialized = bool(engine.user_id)
    return {
        "status": "healthy" if initialized else "degraded",
        "initialized": initialized,
        "fx_positions": len(engine.fx_positions),
        "stock_positions": len(engine.stock_positions),
        "crypto_positions": len(engine.crypto_positions),
    }


@router.get("/health", response_model=HealthResponse, summary="Health Check")
async def health_check(request: Request):
    """Ledger database connectivity, engine state and uptime."""
    try:
        services = {
            "database": check_database_health(),
            "engine": check_engine_health(request),
        }
    except Exception as e:
        logger.error("Health check failed", error=str(e), exc_info=True)
        services = {"health_check": {"status": "unhealthy", "error": str(e)}}

    status = overall_status(s.get("status", "unhealthy") for s in services.values())
    logger.debug("Health check completed", status=status)

    return HealthResponse(
        health=HealthStatus(
            status=status,
            services=services,
            uptime_seconds=_uptime(),
            version=__version__,
        )
    )


@router.get("/health/live", summary="Liveness Probe")
async def liveness_probe():
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": _uptime(),
    }
