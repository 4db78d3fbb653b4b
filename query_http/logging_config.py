"""
Structured JSON logging for the query HTTP adapter.

One JSON object per line: timestamp, level, component and message, then any
fields handed over through ``extra`` (request_id, outcome, parts, ...).
Records below ERROR are written to stdout, ERROR and above to stderr, so a
process supervisor can split the two streams.

Example usage:
    from query_http.logging_config import configure_from_dict, get_logger

    configure_from_dict({"level": "INFO", "format_json": True})
    logger = get_logger("query_http.dispatcher")
    logger.debug("Streamed response finished", extra={"parts": 3})
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else on a record came from ``extra``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class LogLevel(Enum):
    """Levels accepted in the ``logging.level`` config key."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_string(cls, level_str: str) -> 'LogLevel':
        """
        Parse a level name case-insensitively.

        Args:
            level_str: Level name such as "debug" or "INFO"

        Returns:
            Matching LogLevel

        Raises:
            ValueError: If level_str names no known level
        """
        try:
            return cls(level_str.upper())
        except ValueError:
            valid_levels = [level.value for level in cls]
            raise ValueError(f"Invalid log level '{level_str}'. Valid levels: {valid_levels}")

    def to_logging_level(self) -> int:
        return getattr(logging, self.value)


class _ExtraEncoder(json.JSONEncoder):
    """Renders values the json module cannot: bytes as text, the rest via str()."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (bytes, bytearray)):
            return bytes(obj).decode("utf-8", errors="replace")
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        return str(obj)


class JSONFormatter(logging.Formatter):
    """
    Formats each record as a compact single-line JSON document.

    Example output:
        {"timestamp":"2026-01-01T10:00:00.120000Z","level":"INFO",
         "component":"query_http.handler","message":"Completed query request",
         "method":"POST","outcome":"streamed","duration_ms":12}
    """

    def __init__(self, include_source_location: bool = False):
        """
        Args:
            include_source_location: Add file, line and function fields
        """
        super().__init__()
        self.include_source_location = include_source_location
        self._encoder = _ExtraEncoder(separators=(',', ':'), ensure_ascii=False)

    def format(self, record: logging.LogRecord) -> str:
        """
        Render ``record`` as JSON.

        Args:
            record: Record emitted by any logger in the process

        Returns:
            JSON text; if encoding fails a plain text line carrying the
            encoding error is returned instead so the record is never lost
        """
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace('+00:00', 'Z')
        document: Dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if self.include_source_location:
            document["file"] = record.filename
            document["line"] = record.lineno
            document["function"] = record.funcName

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES:
                document[key] = value

        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        try:
            return self._encoder.encode(document)
        except (TypeError, ValueError) as error:
            return f"{timestamp} {record.levelname} {record.name} {document['message']} [JSON_FORMAT_ERROR: {error}]"


class LoggingFilter(logging.Filter):
    """
    Keeps records strictly below a level.

    Installed on the stdout handler so errors are only written to stderr.

    Args:
        max_level: First level that is filtered out (e.g. logging.ERROR)
    """

    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.max_level


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    include_source_location: bool = False,
    format_json: bool = True
) -> None:
    """
    Replace the root logger's handlers with the stdout/stderr pair.

    Args:
        level: Minimum level written (default: INFO)
        include_source_location: Include file/line info in JSON output
        format_json: JSON output when True, plain text otherwise
    """
    if format_json:
        formatter: logging.Formatter = JSONFormatter(include_source_location=include_source_location)
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s', datefmt='%Y-%m-%dT%H:%M:%S')

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level.to_logging_level())
    stdout_handler.addFilter(LoggingFilter(logging.ERROR))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.to_logging_level())
    for handler in (stdout_handler, stderr_handler):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # uvicorn logs one access line per request; only keep it when debugging
    access_level = logging.INFO if level == LogLevel.DEBUG else logging.WARNING
    logging.getLogger('uvicorn.access').setLevel(access_level)
    for name in ('httpx', 'httpcore'):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(component: str) -> logging.Logger:
    """Logger for a dotted component name such as 'query_http.dispatcher'."""
    return logging.getLogger(component)


def configure_from_dict(config: Dict[str, Any]) -> None:
    """
    Configure logging from the ``logging`` section of config.yaml.

    An unknown level falls back to INFO rather than failing startup.

    Example config:
        {"level": "INFO", "include_source_location": false, "format_json": true}
    """
    try:
        level = LogLevel.from_string(config.get('level', 'INFO'))
    except ValueError:
        level = LogLevel.INFO

    setup_logging(
        level=level,
        include_source_location=config.get('include_source_location', False),
        format_json=config.get('format_json', True)
    )


class PerformanceLogger:
    """
    Context manager timing one operation.

    Logs "Completed <operation>" at INFO or "Failed <operation>" at ERROR
    with ``duration_ms`` and the accumulated context. Exceptions propagate.

    Example:
        with PerformanceLogger(logger, "query request", method="POST") as perf:
            ...
            perf.add_context(outcome="single")
    """

    def __init__(self, logger: logging.Logger, operation: str, **context):
        """
        Args:
            logger: Logger receiving the start and completion records
            operation: Human readable operation name used in messages
            **context: Fields attached to every record
        """
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> 'PerformanceLogger':
        self.start_time = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def add_context(self, **context) -> None:
        """Attach fields discovered while the operation runs."""
        self.context.update(context)

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return
        log_context = {
            **self.context,
            "operation": self.operation,
            "duration_ms": int((time.perf_counter() - self.start_time) * 1000),
        }
        if exc_type is None:
            self.logger.info(f"Completed {self.operation}", extra=log_context)
        else:
            log_context["error_type"] = exc_type.__name__
            self.logger.error(f"Failed {self.operation}", extra=log_context)
