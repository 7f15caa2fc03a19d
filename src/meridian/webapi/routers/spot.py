"""Spot trading endpoints shared by stocks and crypto, plus crypto Shield."""

from fastapi import APIRouter, Depends, Request

from ...config.logging import get_logger
from ...trading.engine import UnifiedPositionEngine
from ...trading.models import AssetClass
from ..dependencies import ensure_success, get_engine, get_request_id, to_payload
from ..models.requests import (
    ShieldAllRequest,
    SpotAsset,
    SpotBuyRequest,
    SpotPriceUpdateRequest,
    SpotSellRequest,
)
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


def _positions(engine: UnifiedPositionEngine, asset: SpotAsset):
    if asset is SpotAsset.STOCK:
        return engine.stock_positions
    return engine.crypto_positions


# ==================== Shield ====================


@router.get(
    "/crypto/shield",
    response_model=StatusResponse,
    summary="Shield Summary",
    description="Snapshot versus live valuation of shielded crypto positions",
)
async def get_shield_summary(
    request: Request, engine: UnifiedPositionEngine = Depends(get_engine)
):
    return StatusResponse.create(
        data=to_payload(engine.get_shield_summary()),
        request_id=get_request_id(request),
    )


@router.post(
    "/crypto/shield",
    response_model=StatusResponse,
    summary="Shield All",
    description="Enable or disable Shield on every crypto position",
)
async def set_all_shields(
    body: ShieldAllRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    if body.enabled:
        changed = engine.enable_all_shields()
    else:
        changed = engine.disable_all_shields()

    return StatusResponse.create(
        data={"enabled": body.enabled, "changed": changed},
        request_id=get_request_id(request),
    )


@router.post(
    "/crypto/positions/{position_id}/shield",
    response_model=StatusResponse,
    summary="Toggle Shield",
    description="Freeze or release a crypto position's valuation",
)
async def toggle_shield(
    position_id: str,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    request_id = get_request_id(request)

    result = engine.toggle_crypto_shield(position_id)
    ensure_success(result, "toggle_crypto_shield", position_id, request_id)

    return StatusResponse.create(
        data={"position": to_payload(result.position)},
        message="Shield enabled" if result.position.shield_enabled else "Shield disabled",
        request_id=request_id,
    )


# ==================== Stock / crypto ====================


@router.get(
    "/{asset}/positions",
    response_model=StatusResponse,
    summary="List Spot Positions",
)
async def list_positions(
    asset: SpotAsset,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    positions = _positions(engine, asset)
    return StatusResponse.create(
        data={
            "asset_class": asset.value,
            "positions": to_payload(positions),
            "count": len(positions),
        },
        request_id=get_request_id(request),
    )


@router.post(
    "/{asset}/buy",
    response_model=StatusResponse,
    summary="Buy",
    description="Buy stock or crypto; repeated buys average into one position",
)
async def buy(
    asset: SpotAsset,
    body: SpotBuyRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    request_id = get_request_id(request)
    name = body.name or body.symbol

    if asset is SpotAsset.STOCK:
        result = engine.buy_stock(body.symbol, name, body.quantity, body.price, body.fee)
    else:
        result = engine.buy_crypto(body.symbol, name, body.quantity, body.price, body.fee)
    ensure_success(result, f"buy_{asset.value}", request_id=request_id)

    return StatusResponse.create(
        data={
            "position": to_payload(result.position),
            "balance": result.balance,
            "metrics": to_payload(engine.metrics),
        },
        request_id=request_id,
    )


@router.post(
    "/{asset}/positions/{position_id}/sell",
    response_model=StatusResponse,
    summary="Sell",
    description="Sell part or all of a holding at the unchanged average price",
)
async def sell(
    asset: SpotAsset,
    position_id: str,
    body: SpotSellRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    request_id = get_request_id(request)

    if asset is SpotAsset.STOCK:
        result = engine.sell_stock(position_id, body.quantity, body.price, body.fee)
    else:
        result = engine.sell_crypto(position_id, body.quantity, body.price, body.fee)
    ensure_success(result, f"sell_{asset.value}", position_id, request_id)

    return StatusResponse.create(
        data={
            "position": to_payload(result.position),
            "position_closed": result.position is None,
            "realized_pnl": result.realized_pnl,
            "balance": result.balance,
            "metrics": to_payload(engine.metrics),
        },
        request_id=request_id,
    )


@router.post(
    "/{asset}/prices",
    response_model=StatusResponse,
    summary="Push Spot Prices",
)
async def update_prices(
    asset: SpotAsset,
    body: SpotPriceUpdateRequest,
    request: Request,
    engine: UnifiedPositionEngine = Depends(get_engine),
):
    engine.update_prices(AssetClass(asset.value), body.prices)

    return StatusResponse.create(
        data={
            "asset_class": asset.value,
            "updated": sorted(body.prices),
            "metrics": to_payload(engine.metrics),
        },
        request_id=get_request_id(request),
    )
