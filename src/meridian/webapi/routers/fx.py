"""FX margin trading endpoints."""

from fastapi import APIRouter, Depends, Request

from ...config.logging import get_logger
from ...trading.engine import UnifiedPositionEngine
from ..dependencies import ensure_success, get_engine, get_request_id, to_payload
from ..exceptions import NotFoundError
from ..models.requests import (
    ClosePositionRequest,
    FXPriceUpdateRequest,
    ModifyFXPositionRequest,
    OpenFXPositionRequest,
)
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


def _position_payload(engine: UnifiedPositionEngine, position) -> dict:
    payload = to_payload(position)
    payload["liquidation_price"] = engine.liquidation_price(position.id)
    return payload


@router.get(
    "/positions",
    response_model=StatusResponse,
    summary="List FX Positions",
)
async def list_positions(
    request: Request, engine: UnifiedPositionEngine = Depends(get_engine)
):
    positions = [_position_payload(engine, p) for p in engine.fx_positions]
    return StatusResponse.create(
        data={"positions": positions, "count": len(positions)},
        request_id=get_request_id(request),
    )


@router.post(
    "/positions",
    response_model=StatusResponse,
    status_code=201,
    summary="Open FX Position",
    description="Open a margined position after a free-margin check",
)
async def open_position(
    body: OpenFXPositionRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    """
    Open a margined FX position.

    Rejected with 400 when the engine is not initialized or free margin
    does not cover the required margin.
    """
    request_id = get_request_id(request)

    result = engine.open_fx_position(
        symbol=body.symbol,
        name=body.name or body.symbol,
        side=body.side,
        lots=body.lots,
        price=body.price,
        leverage=body.leverage,
        stop_loss=body.stop_loss,
        take_profit=body.take_profit,
        spread_cost=body.spread_cost,
    )
    ensure_success(result, "open_fx_position", request_id=request_id)

    return StatusResponse.create(
        data={
            "position": _position_payload(engine, result.position),
            "balance": result.balance,
            "metrics": to_payload(engine.metrics),
        },
        message="Position opened",
        request_id=request_id,
    )


@router.post(
    "/positions/{position_id}/close",
    response_model=StatusResponse,
    summary="Close FX Position",
)
async def close_position(
    position_id: str,
    body: ClosePositionRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    request_id = get_request_id(request)

    result = engine.close_fx_position(position_id, body.price)
    ensure_success(result, "close_fx_position", position_id, request_id)

    return StatusResponse.create(
        data={
            "position_id": position_id,
            "realized_pnl": result.realized_pnl,
            "balance": result.balance,
            "metrics": to_payload(engine.metrics),
        },
        message="Position closed",
        request_id=request_id,
    )


@router.patch(
    "/positions/{position_id}",
    response_model=StatusResponse,
    summary="Modify FX Position",
    description="Edit stop-loss and take-profit levels",
)
async def modify_position(
    position_id: str,
    body: ModifyFXPositionRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    request_id = get_request_id(request)

    # only fields present in the body are changed
    changes = {field: getattr(body, field) for field in body.model_fields_set}
    result = engine.modify_fx_position(position_id, **changes)
    ensure_success(result, "modify_fx_position", position_id, request_id)

    return StatusResponse.create(
        data={"position": _position_payload(engine, result.position)},
        request_id=request_id,
    )


@router.get(
    "/positions/{position_id}",
    response_model=StatusResponse,
    summary="Get FX Position",
)
async def get_position(
    position_id: str,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    request_id = get_request_id(request)

    position = engine.get_position("fx", position_id)
    if position is None:
        raise NotFoundError("Position", position_id, request_id=request_id)

    return StatusResponse.create(
        data={"position": _position_payload(engine, position)},
        request_id=request_id,
    )


@router.post(
    "/prices",
    response_model=StatusResponse,
    summary="Push FX Price",
    description="Apply a bid/ask tick; stop-loss and take-profit run afterwards",
)
async def update_price(
    body: FXPriceUpdateRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    before = {p.id for p in engine.fx_positions}
    engine.update_fx_price(body.symbol, body.bid, body.ask)
    remaining = {p.id for p in engine.fx_positions}

    return StatusResponse.create(
        data={
            "symbol": body.symbol,
            "bid": body.bid,
            "ask": body.ask,
            "closed_positions": sorted(before - remaining),
            "metrics": to_payload(engine.metrics),
        },
        request_id=get_request_id(request),
    )
