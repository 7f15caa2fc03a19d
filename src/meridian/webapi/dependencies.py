"""Shared FastAPI dependencies: authentication, engine access, result mapping."""

from typing import Any, Optional

from fastapi import HTTPException, Request, Security
from fastapi.encoders import jsonable_encoder
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..trading.engine import POSITION_NOT_FOUND, UnifiedPositionEngine
from ..trading.models import TradeResult
from .exceptions import NotFoundError, TradeRejectedError

logger = get_logger(__name__)

# Security scheme for Bearer token authentication
security = HTTPBearer(auto_error=False)


def verify_auth_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Optional[str]:
    """
    Verify the bearer token when one is configured.

    Returns:
        The token if valid, or None when authentication is disabled

    Raises:
        HTTPException: If the token is missing or invalid
    """
    expected_token = get_settings().endpoint_auth_token
    if not expected_token:
        return None

    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials.credentials != expected_token:
        logger.warning(
            "Invalid authentication attempt",
            provided_token_length=len(credentials.credentials),
        )
        raise HTTPException(status_code=401, detail="Invalid authentication token")

    return credentials.credentials


def get_engine(request: Request) -> UnifiedPositionEngine:
    """The process-wide engine held on application state."""
    return request.app.state.engine


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def ensure_success(
    result: TradeResult,
    operation: str,
    position_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> TradeResult:
    """Turn a failed engine result into the matching API exception."""
    if result.success:
        return result

    if result.error == POSITION_NOT_FOUND and position_id is not None:
        raise NotFoundError("Position", position_id, request_id=request_id)

    raise TradeRejectedError(operation, result.error or "Rejected", request_id=request_id)


def to_payload(value: Any) -> Any:
    """JSON-ready form of engine dataclasses."""
    return jsonable_encoder(value)
