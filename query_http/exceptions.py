"""
Standardized error handling framework for the query HTTP adapter.

This module provides the exception hierarchy shared by the adapter, error
response formatting, and request ID generation.

Error Categories:
- BaseAPIError: Base class for all adapter errors
- ConfigurationError: Missing or malformed adapter configuration (setup time)
- ArgumentCountError: Adapter constructed with the wrong number of arguments
- HttpQueryError: Structured execution failure with status code and headers;
  the only error the adapter turns into an HTTP response itself
- ResponseClosedError: Write attempted on a connection that is already gone
- InternalServerError: Unexpected server-side errors

Example usage:
    from query_http.exceptions import HttpQueryError

    async def execute(request):
        if not request.query:
            raise HttpQueryError(400, "Must provide query string.")
"""

import hashlib
import json
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Union


class ErrorSeverity(Enum):
    """
    Error severity levels for categorizing error impact.

    Used for alerting, monitoring, and error handling prioritization.
    """
    LOW = "low"          # Minor issues, degraded functionality
    MEDIUM = "medium"    # Significant issues, some functionality unavailable
    HIGH = "high"        # Major issues, core functionality affected
    CRITICAL = "critical" # System-wide issues, service unavailable


class ErrorCategory(Enum):
    """Error categories for grouping related errors."""
    CLIENT_ERROR = "client_error"      # 4xx errors - client-side issues
    SERVER_ERROR = "server_error"      # 5xx errors - server-side issues
    CONFIGURATION_ERROR = "configuration_error"
    TRANSPORT_ERROR = "transport_error"


class ErrorCodes:
    """Standardized error codes for all components."""

    # Setup
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    ARGUMENT_COUNT_ERROR = "ARGUMENT_COUNT_ERROR"

    # Execution
    HTTP_QUERY_ERROR = "HTTP_QUERY_ERROR"
    INVALID_OPTIONS = "INVALID_OPTIONS"

    # Transport
    RESPONSE_CLOSED = "RESPONSE_CLOSED"

    # System
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


# Thread-safe request ID cache to prevent duplicates within short time windows
_request_id_cache: Set[str] = set()
_cache_lock = threading.RLock()


def generate_request_id(prefix: str = "req") -> str:
    """
    Generate unique request ID for tracking with collision detection.

    Args:
        prefix: Prefix for request ID (default: "req")

    Returns:
        Unique request ID string with format: prefix-uuid4

    Example:
        >>> generate_request_id()
        'req-12345678-1234-5678-9abc-123456789abc'
    """
    max_attempts = 10

    for _ in range(max_attempts):
        request_id = f"{prefix}-{uuid.uuid4()}"

        with _cache_lock:
            if request_id not in _request_id_cache:
                _request_id_cache.add(request_id)
                # Keep cache size manageable (last 1000 IDs)
                if len(_request_id_cache) > 1000:
                    _request_id_cache.clear()
                    _request_id_cache.add(request_id)
                return request_id

    timestamp = int(datetime.now().timestamp() * 1000000)
    return f"{prefix}-{uuid.uuid4()}-{timestamp}"


class BaseAPIError(Exception):
    """
    Base exception class for adapter errors with comprehensive metadata.

    Attributes:
        message: Technical error message for developers/logs
        error_code: Machine-readable error code for client handling
        request_id: Unique identifier for request tracking and debugging
        http_status: HTTP status code for the error response
        details: Additional structured error context (optional)
        severity: Error severity level for alerting and monitoring
        category: Error category for grouping and analysis
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        request_id: Optional[str] = None,
        http_status: int = 500,
        details: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SERVER_ERROR
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.request_id = request_id or generate_request_id()
        self.http_status = http_status
        self.details = details or {}
        self.severity = severity
        self.category = category
        self.timestamp = datetime.now(timezone.utc)

    def get_context_hash(self) -> str:
        """
        Generate hash of error context for deduplication and grouping.

        Returns:
            SHA256 hash of error code, message, and key details
        """
        context = f"{self.error_code}:{self.message}"
        if self.details:
            filtered_details = {k: v for k, v in self.details.items()
                               if k not in ['request_id', 'timestamp', 'duration_ms']}
            context += f":{json.dumps(filtered_details, sort_keys=True, default=str)}"

        return hashlib.sha256(context.encode()).hexdigest()[:16]


class ConfigurationError(BaseAPIError):
    """
    Adapter configuration fault.

    Raised while wiring the adapter, never while serving a request.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCodes.CONFIGURATION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            http_status=500,
            details=details,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION_ERROR
        )


class ArgumentCountError(ConfigurationError):
    """Adapter construction received more than one configuration argument."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            message=f"Query server expects exactly {_count_word(expected)} argument, got {actual}",
            error_code=ErrorCodes.ARGUMENT_COUNT_ERROR,
            details={"expected": expected, "actual": actual}
        )
        self.expected = expected
        self.actual = actual


def _count_word(count: int) -> str:
    return "one" if count == 1 else str(count)


class HttpQueryError(BaseAPIError):
    """
    Structured execution failure raised by a query engine.

    Carries the status code, message and optional headers the adapter writes
    back verbatim. Any other exception raised during execution is forwarded
    to the next error handler instead of being rendered.

    Attributes:
        status_code: HTTP status to respond with
        headers: Headers to set before the body is written
        is_query_error: True when the message is already a serialized
            query-language error document
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        is_query_error: bool = False,
        headers: Optional[Mapping[str, str]] = None,
        request_id: Optional[str] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCodes.HTTP_QUERY_ERROR,
            request_id=request_id,
            http_status=status_code,
            severity=ErrorSeverity.LOW if status_code < 500 else ErrorSeverity.HIGH,
            category=ErrorCategory.CLIENT_ERROR if status_code < 500 else ErrorCategory.SERVER_ERROR
        )
        self.status_code = status_code
        self.is_query_error = is_query_error
        self.headers = dict(headers) if headers else None

    @classmethod
    def invalid_options(cls, reason: str) -> "HttpQueryError":
        """Create the error reported when execution options cannot be resolved."""
        body = json.dumps(
            {"errors": [{"message": f"Invalid options provided to the query server: {reason}"}]}
        )
        error = cls(
            500,
            body,
            is_query_error=True,
            headers={"Content-Type": "application/json"}
        )
        error.error_code = ErrorCodes.INVALID_OPTIONS
        return error


class ResponseClosedError(BaseAPIError):
    """The outbound connection was closed before the response finished."""

    def __init__(self, message: str = "Response connection closed", cause: Optional[BaseException] = None):
        super().__init__(
            message=message,
            error_code=ErrorCodes.RESPONSE_CLOSED,
            http_status=499,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.TRANSPORT_ERROR
        )
        self.cause = cause


class InternalServerError(BaseAPIError):
    """Unexpected server-side error."""

    def __init__(
        self,
        message: str = "Internal Server Error",
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCodes.INTERNAL_SERVER_ERROR,
            request_id=request_id,
            http_status=500,
            details=details
        )


class ErrorResponse:
    """
    Structured error response container.

    Provides consistent error response format for forwarded errors.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        request_id: str,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ):
        self.error_code = error_code
        self.message = message
        self.request_id = request_id
        self.details = details
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error response to dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat().replace('+00:00', 'Z')
        }

        if self.details:
            try:
                json.dumps(self.details)
                result["details"] = self.details
            except (TypeError, ValueError, RecursionError):
                result["details"] = {"error": "Details contain circular references or non-serializable data"}

        return result


def format_error_response(
    error: Union[BaseAPIError, Exception],
    message_override: Optional[str] = None,
    request_id: Optional[str] = None
) -> ErrorResponse:
    """
    Format exception into structured error response.

    Args:
        error: Exception to format
        message_override: Override error message
        request_id: Request ID (generated if not provided)

    Returns:
        Structured error response
    """
    if isinstance(error, BaseAPIError):
        error_code = error.error_code
        message = message_override or error.message
        req_id = error.request_id or request_id or generate_request_id()
        details = error.details
    else:
        error_code = ErrorCodes.INTERNAL_SERVER_ERROR
        message = message_override or str(error)
        req_id = request_id or generate_request_id()
        details = None

    # Truncate extremely long messages
    if len(message) > 5000:
        message = message[:4997] + "..."

    return ErrorResponse(
        error_code=error_code,
        message=message,
        request_id=req_id,
        details=details
    )
