"""
Request context and last-resort error handling for the query HTTP adapter.

- request_context: request-scoped ID and metadata, safe under asyncio
- ErrorSanitizer: strips credentials and paths from messages in production
- ErrorHandlerMiddleware: renders errors forwarded by the adapter into a
  structured JSON body with a matching HTTP status

Example usage:
    middleware = ErrorHandlerMiddleware(debug=False)

    with request_context(metadata={"method": "POST"}) as ctx:
        result = await handler(request, response)
        if result.forwarded:
            http_response = middleware.to_http_response(result.error)
"""

import json
import re
import time
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Optional, Union

from .exceptions import (
    BaseAPIError,
    ErrorResponse,
    InternalServerError,
    format_error_response,
    generate_request_id
)
from .logging_config import get_logger


class ErrorSanitizer:
    """
    Security-focused error message sanitization.

    Removes sensitive information from error messages to prevent
    information disclosure in production environments.
    """

    def __init__(self, production: bool = False):
        self.production = production
        self._sensitive_patterns = [
            re.compile(r'(password|pwd|pass|secret|key|token)=[\w\-\.]+', re.IGNORECASE),
            re.compile(r'(api[_\-]?key|access[_\-]?token|bearer)\s*[:=]\s*[\w\-\.]+', re.IGNORECASE),
            re.compile(r'[/\\][\w\-\./\\]+', re.IGNORECASE),
            re.compile(r'\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}'),
            re.compile(r'[\w\.-]+@[\w\.-]+\.\w+'),
        ]

    def sanitize_message(self, message: str) -> str:
        if not self.production:
            return message

        sanitized = message
        for pattern in self._sensitive_patterns:
            sanitized = pattern.sub('[REDACTED]', sanitized)

        return sanitized

    def sanitize_details(self, details: Dict[str, Any]) -> Dict[str, Any]:
        if not self.production:
            return details

        sanitized = {}
        sensitive_keys = {
            'password', 'pwd', 'pass', 'secret', 'key', 'token',
            'api_key', 'access_token', 'bearer', 'auth', 'authorization'
        }

        for key, value in details.items():
            if key.lower() in sensitive_keys:
                sanitized[key] = '[REDACTED]'
            elif isinstance(value, str):
                sanitized[key] = self.sanitize_message(value)
            elif isinstance(value, dict):
                sanitized[key] = self.sanitize_details(value)
            else:
                sanitized[key] = value

        return sanitized


class RequestContext:
    """Request ID, start time and metadata for one inbound call."""

    def __init__(self, request_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
        self.request_id = request_id or generate_request_id()
        self.start_time = time.perf_counter()
        self.metadata = metadata or {}

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value


_current_context: ContextVar[Optional[RequestContext]] = ContextVar("query_http_request_context", default=None)


@contextmanager
def request_context(request_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
    """
    Request context manager.

    Each asyncio task sees its own context; nested contexts restore the outer
    one on exit.

    Yields:
        RequestContext instance
    """
    ctx = RequestContext(request_id=request_id, metadata=metadata)
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def get_current_request_id() -> Optional[str]:
    """Current request ID, or None outside a request context."""
    current = _current_context.get()
    return current.request_id if current else None


@dataclass
class HTTPResponse:
    """Rendered error response."""

    status_code: int
    content_type: str
    body: str


class ErrorHandlerMiddleware:
    """
    Last-resort handler for errors the adapter forwards.

    Features:
    - Converts arbitrary exceptions into structured error responses
    - Security-focused message sanitization outside debug mode
    - Error deduplication to keep repeated failures out of the logs
    - Structured logging with request context
    """

    def __init__(
        self,
        logger=None,
        sanitizer: Optional[ErrorSanitizer] = None,
        debug: bool = False,
        enable_deduplication: bool = True,
        max_error_message_length: int = 2000
    ):
        self.logger = logger or get_logger("query_http.error_handler")
        self.sanitizer = sanitizer or ErrorSanitizer(production=not debug)
        self.debug = debug
        self.enable_deduplication = enable_deduplication
        self.max_error_message_length = max_error_message_length

        # error_hash -> last occurrence
        self._error_cache: Dict[str, float] = {}
        self._cache_lock = RLock()
        self._dedup_window = 300.0

    def _should_deduplicate(self, error: BaseAPIError) -> bool:
        if not self.enable_deduplication:
            return False

        error_hash = error.get_context_hash()
        now = time.time()

        with self._cache_lock:
            last_occurrence = self._error_cache.get(error_hash)
            if last_occurrence and (now - last_occurrence) < self._dedup_window:
                return True

            self._error_cache[error_hash] = now

            cutoff = now - self._dedup_window
            self._error_cache = {k: v for k, v in self._error_cache.items() if v > cutoff}

            return False

    def _enhance_error_context(self, error: Union[BaseAPIError, BaseException]) -> BaseAPIError:
        if isinstance(error, BaseAPIError):
            enhanced_error = error
        else:
            enhanced_error = InternalServerError(
                message=str(error) or type(error).__name__,
                request_id=get_current_request_id(),
                details={
                    "exception_type": type(error).__name__,
                    "exception_module": type(error).__module__,
                }
            )

        current = _current_context.get()
        if current:
            enhanced_error.details.update({
                "request_context": {
                    "request_id": current.request_id,
                    "metadata": current.metadata,
                    "duration_ms": int((time.perf_counter() - current.start_time) * 1000)
                }
            })

        return enhanced_error

    def process_error(self, error: Union[BaseAPIError, BaseException]) -> Dict[str, Any]:
        """
        Convert an error into a JSON-serializable error document.

        Args:
            error: Exception to process

        Returns:
            Dictionary response suitable for JSON serialization
        """
        start_time = time.perf_counter()

        enhanced_error = self._enhance_error_context(error)
        is_duplicate = self._should_deduplicate(enhanced_error)

        response = format_error_response(enhanced_error)

        response.message = self.sanitizer.sanitize_message(response.message)
        if response.details:
            response.details = self.sanitizer.sanitize_details(response.details)

        if len(response.message) > self.max_error_message_length:
            response.message = response.message[:self.max_error_message_length - 3] + "..."

        if self.debug and not isinstance(error, BaseAPIError):
            if response.details is None:
                response.details = {}
            response.details["traceback"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        if is_duplicate:
            response.details = response.details or {}
            response.details["is_duplicate"] = True
        else:
            self._log_error(enhanced_error, response, start_time)

        return response.to_dict()

    def to_http_response(self, error: Union[BaseAPIError, BaseException]) -> HTTPResponse:
        response_data = self.process_error(error)

        status_code = 500
        if isinstance(error, BaseAPIError):
            status_code = error.http_status

        return HTTPResponse(
            status_code=status_code,
            content_type="application/json",
            body=json.dumps(response_data)
        )

    def _log_error(self, error: BaseAPIError, response: ErrorResponse, start_time: float) -> None:
        duration_ms = int((time.perf_counter() - start_time) * 1000)
        self.logger.error(
            f"Error processed: {response.message}",
            extra={
                "request_id": response.request_id,
                "error_code": response.error_code,
                "duration_ms": duration_ms
            }
        )
