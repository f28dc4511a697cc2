"""Error handling and structured error responses."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from documentdb_tunnel.core.metrics import metrics

logger = logging.getLogger(__name__)


class ErrorCode:
    """Stable error codes for connection failures."""

    # Configuration
    OPTIONS_INVALID = "OPTIONS_INVALID"

    # Tunnel
    TUNNEL_FAILED = "TUNNEL_FAILED"

    # Connection/Database
    DB_CONNECT_FAILED = "DB_CONNECT_FAILED"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorCategory:
    """Error categories for classification."""

    VALIDATION = "validation"
    INTERNAL = "internal"
    UPSTREAM = "upstream"


class APIError(BaseModel):
    """Structured error response model."""

    code: str
    category: str
    message: str
    details: Optional[Dict[str, Any]] = None
    request_id: str
    timestamp: str
    retryable: bool = False


class APIException(Exception):
    """Base exception for connector errors."""

    def __init__(
        self,
        code: str,
        message: str,
        category: str = ErrorCategory.INTERNAL,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None,
    ):
        self.code = code
        self.message = message
        self.category = category
        self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable
        self.cause = cause
        super().__init__(message)


class OptionsValidationError(APIException):
    """Raised (or returned) when remote connection options fail the schema.

    Only the first violation makes up the message; all of them are kept
    under ``details["errors"]``.
    """

    def __init__(self, field: str, reason: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.field = field
        self.reason = reason
        super().__init__(
            code=ErrorCode.OPTIONS_INVALID,
            message=f"{field}: {reason}" if field else reason,
            category=ErrorCategory.VALIDATION,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field, "errors": errors or []},
        )


class TunnelError(APIException):
    """Raised when the SSH forwarding session cannot be opened."""

    def __init__(self, cause: BaseException, options: Dict[str, Any]):
        super().__init__(
            code=ErrorCode.TUNNEL_FAILED,
            message="Error. Could not create SSH tunnel.",
            category=ErrorCategory.UPSTREAM,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"error": describe_cause(cause), "options": options},
            retryable=True,
            cause=cause,
        )


class ConnectError(APIException):
    """Raised when the database handshake or authentication fails."""

    def __init__(
        self,
        message: str,
        cause: BaseException,
        uri: str,
        options: Dict[str, Any],
    ):
        super().__init__(
            code=ErrorCode.DB_CONNECT_FAILED,
            message=message,
            category=ErrorCategory.UPSTREAM,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"error": describe_cause(cause), "uri": uri, "options": options},
            retryable=True,
            cause=cause,
        )


def describe_cause(cause: BaseException) -> str:
    """Render an underlying exception for the details payload."""
    text = str(cause)
    name = type(cause).__name__
    return f"{name}: {text}" if text else name


def create_error_response(
    request: Request,
    code: str,
    message: str,
    category: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    retryable: bool = False,
) -> JSONResponse:
    """Create a structured error response."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    error = APIError(
        code=code,
        category=category,
        message=message,
        details=details,
        request_id=request_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        retryable=retryable,
    )

    logger.error(
        f"API Error: {code} - {message}",
        extra={
            "error_code": code,
            "error_category": category,
            "request_id": request_id,
            "status_code": status_code,
        },
    )

    return JSONResponse(
        status_code=status_code,
        content={"error": error.model_dump()},
    )


async def error_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle APIException instances."""
    return create_error_response(
        request=request,
        code=exc.code,
        message=exc.message,
        category=exc.category,
        status_code=exc.status_code,
        details=exc.details,
        retryable=exc.retryable,
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register connector error handlers with a FastAPI app."""
    app.add_exception_handler(APIException, error_handler)


def record_failure(exc: APIException) -> None:
    """Count a connector failure in the error metrics."""
    metrics.record_error(exc.code, exc.category)
