"""Request and response models for the Meridian API."""

from .requests import (
    BalanceSyncRequest,
    ClosePositionRequest,
    FXPriceUpdateRequest,
    InitializeAccountRequest,
    ModifyFXPositionRequest,
    OpenFXPositionRequest,
    ShieldAllRequest,
    SpotAsset,
    SpotBuyRequest,
    SpotPriceUpdateRequest,
    SpotSellRequest,
)
from .responses import (
    BaseResponse,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    MessageResponse,
    StatusResponse,
    SuccessResponse,
)

__all__ = [
    # Requests
    "BalanceSyncRequest",
    "ClosePositionRequest",
    "FXPriceUpdateRequest",
    "InitializeAccountRequest",
    "ModifyFXPositionRequest",
    "OpenFXPositionRequest",
    "ShieldAllRequest",
    "SpotAsset",
    "SpotBuyRequest",
    "SpotPriceUpdateRequest",
    "SpotSellRequest",
    # Responses
    "BaseResponse",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    "MessageResponse",
    "StatusResponse",
    "SuccessResponse",
]
