"""Response envelopes for the Meridian API."""

from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_serializer

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseResponse(BaseModel):
    """Fields shared by every envelope."""

    success: bool = Field(..., description="Whether the request was successful")
    timestamp: datetime = Field(default_factory=_utcnow)
    request_id: Optional[str] = Field(None, description="Correlates with server logs")

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: datetime) -> str:
        return dt.isoformat()


class SuccessResponse(BaseResponse, Generic[T]):
    success: bool = True
    data: T
    message: Optional[str] = None


class ErrorDetail(BaseModel):
    type: str = Field(..., description="Exception class or error category")
    message: str
    status_code: int
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseResponse):
    success: bool = False
    error: ErrorDetail

    @classmethod
    def build(
        cls,
        error_type: str,
        message: str,
        status_code: int,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "ErrorResponse":
        return cls(
            error=ErrorDetail(
                type=error_type,
                message=message,
                status_code=status_code,
                details=details or {},
            ),
            request_id=request_id,
        )


class HealthStatus(BaseModel):
    status: str = Field(..., description="healthy, degraded or unhealthy")
    services: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    uptime_seconds: float
    version: Optional[str] = None


class HealthResponse(BaseResponse):
    success: bool = True
    health: HealthStatus


class MessageResponse(SuccessResponse[Dict[str, str]]):
    @classmethod
    def create(cls, message: str, request_id: Optional[str] = None) -> "MessageResponse":
        return cls(data={"message": message}, message=message, request_id=request_id)


class StatusResponse(SuccessResponse[Dict[str, Any]]):
    """Envelope for engine state: positions, metrics and trade results."""

    @classmethod
    def create(
        cls,
        data: Dict[str, Any],
        message: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "StatusResponse":
        return cls(data=data, message=message, request_id=request_id)
