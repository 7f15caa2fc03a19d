"""API exceptions and the handlers that render them as error envelopes."""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config.logging import get_logger
from ..trading.engine import NOT_INITIALIZED, QUANTITY_EXCEEDS_POSITION
from .models.responses import ErrorResponse

logger = get_logger(__name__)

# Engine rejection messages with a stable machine-readable code
REJECTION_CODES = {
    NOT_INITIALIZED: "not_initialized",
    QUANTITY_EXCEEDS_POSITION: "quantity_exceeds_position",
}


class MeridianException(Exception):
    """Base class for errors the API reports to clients."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.request_id = request_id


class NotFoundError(MeridianException):
    status_code = 404

    def __init__(self, resource: str, identifier: str, request_id: Optional[str] = None):
        super().__init__(
            f"{resource} with identifier '{identifier}' not found",
            details={"resource": resource, "identifier": identifier},
            request_id=request_id,
        )


class TradeRejectedError(MeridianException):
    """A trading operation was refused by the engine's business rules."""

    status_code = 400

    def __init__(self, operation: str, reason: str, request_id: Optional[str] = None):
        details = {"operation": operation}
        code = _rejection_code(reason)
        if code:
            details["code"] = code
        super().__init__(reason, details=details, request_id=request_id)


def _rejection_code(reason: str) -> Optional[str]:
    if reason in REJECTION_CODES:
        return REJECTION_CODES[reason]
    if reason.startswith("Insufficient"):
        return "insufficient_funds"
    return None


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse.build(
        error_type=error_type,
        message=message,
        status_code=status_code,
        details=details,
        request_id=_request_id(request),
    )
    return JSONResponse(
        status_code=status_code, content=body.model_dump(mode="json"), headers=headers
    )


async def meridian_exception_handler(
    request: Request, exc: MeridianException
) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request rejected",
        exception_type=type(exc).__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        method=request.method,
    )
    return _error_response(
        request, exc.status_code, type(exc).__name__, exc.message, exc.details
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed bodies and parameters field by field."""
    field_errors = {
        ".".join(str(part) for part in error["loc"]): error["msg"]
        for error in exc.errors()
    }

    logger.warning("Request validation failed", field_errors=field_errors)
    return _error_response(
        request,
        422,
        "ValidationError",
        "Request validation failed",
        {"field_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTP error", status_code=exc.status_code, detail=exc.detail)
    return _error_response(
        request,
        exc.status_code,
        "HTTPException",
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure in full; the client only sees a generic message."""
    logger.error(
        "Unhandled exception",
        exception_type=type(exc).__name__,
        message=str(exc),
        method=request.method,
        exc_info=True,
    )
    return _error_response(
        request, 500, "InternalServerError", "An unexpected error occurred"
    )


def setup_exception_handlers(app):
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(MeridianException, meridian_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
