"""Account endpoints: initialization, balance, metrics and realized history."""

from fastapi import APIRouter, Depends, Query, Request

from ...config.logging import get_logger, log_audit_event
from ...trading.engine import UnifiedPositionEngine
from ..dependencies import get_engine, get_request_id, to_payload
from ..models.requests import BalanceSyncRequest, InitializeAccountRequest
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


def _account_payload(engine: UnifiedPositionEngine) -> dict:
    return {
        "user_id": engine.user_id,
        "balance": engine.balance,
        "total_equity": engine.get_total_equity(),
        "metrics": to_payload(engine.metrics),
        "risk": to_payload(engine.risk_status()),
        "open_positions": {
            "fx": len(engine.fx_positions),
            "stock": len(engine.stock_positions),
            "crypto": len(engine.crypto_positions),
        },
    }


@router.get(
    "",
    response_model=StatusResponse,
    summary="Get Account",
    description="Cash balance, aggregate metrics and margin risk flags",
)
async def get_account(
    request: Request, engine: UnifiedPositionEngine = Depends(get_engine)
):
    return StatusResponse.create(
        data=_account_payload(engine), request_id=get_request_id(request)
    )


@router.post(
    "/initialize",
    response_model=StatusResponse,
    summary="Initialize Account",
    description="Bind the engine to a user; the balance defaults to the ledger's",
)
async def initialize_account(
    body: InitializeAccountRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    """
    Initialize the engine for a user.

    - **user_id**: Account owner
    - **balance**: Optional starting cash. When omitted the balance of record
      is read from the ledger (0 for an unknown user).
    """
    request_id = get_request_id(request)

    if body.balance is None:
        await engine.initialize_from_ledger(body.user_id)
    else:
        engine.initialize(body.user_id, body.balance)

    log_audit_event(
        "account_initialized",
        user_id=body.user_id,
        balance=engine.balance,
        request_id=request_id,
    )
    return StatusResponse.create(
        data=_account_payload(engine),
        message="Account initialized",
        request_id=request_id,
    )


@router.post(
    "/balance",
    response_model=StatusResponse,
    summary="Sync Balance",
    description="Apply an external balance correction",
)
async def sync_balance(
    body: BalanceSyncRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    previous = engine.balance
    engine.sync_balance(body.balance)
    log_audit_event(
        "balance_synced",
        user_id=engine.user_id,
        previous_balance=previous,
        balance=body.balance,
    )
    return StatusResponse.create(
        data=_account_payload(engine), request_id=get_request_id(request)
    )


@router.get(
    "/history",
    response_model=StatusResponse,
    summary="Realized P&L History",
    description="Most recent realized profit and loss entries, newest last",
)
async def get_history(
    request: Request,
    limit: int = Query(100, ge=1, le=1000, description="Maximum entries to return"),
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    entries = engine.realized_pnl_history[-limit:]
    return StatusResponse.create(
        data={
            "entries": to_payload(entries),
            "count": len(entries),
            "total_realized_pnl": engine.total_realized_pnl,
        },
        request_id=get_request_id(request),
    )


@router.post(
    "/snapshot",
    response_model=StatusResponse,
    summary="Save Snapshot",
    description="Persist engine state for resume after restart",
)
async def save_snapshot(
    request: Request, engine: UnifiedPositionEngine = Depends(get_engine)
):
    snapshot = engine.to_snapshot()
    request.app.state.snapshot_store.save(snapshot)
    return StatusResponse.create(
        data={
            "user_id": snapshot.user_id,
            "fx_positions": len(snapshot.fx_positions),
            "stock_positions": len(snapshot.stock_positions),
            "crypto_positions": len(snapshot.crypto_positions),
            "realized_entries": len(snapshot.realized_pnl_history),
        },
        message="Snapshot saved",
        request_id=get_request_id(request),
    )
