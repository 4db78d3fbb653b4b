"""HTTP adapter serving a query engine on a single endpoint."""

__version__ = "0.1.0"

from .dispatcher import ResponseDispatcher
from .exceptions import (
    ArgumentCountError,
    BaseAPIError,
    ConfigurationError,
    HttpQueryError,
    ResponseClosedError,
)
from .handler import QueryEngine, QueryHandler, query_handler
from .logging_config import LogLevel, get_logger, setup_logging
from .models import (
    ExecutionRequest,
    Forwarded,
    Handled,
    NormalizedRequest,
    QueryFailure,
    ResponseInit,
    SingleResult,
    StreamedResult,
)
from .options import CallableOptions, OptionsResolver, StaticOptions

__all__ = [
    "__version__",
    "ResponseDispatcher",
    "ArgumentCountError",
    "BaseAPIError",
    "ConfigurationError",
    "HttpQueryError",
    "ResponseClosedError",
    "QueryEngine",
    "QueryHandler",
    "query_handler",
    "LogLevel",
    "get_logger",
    "setup_logging",
    "ExecutionRequest",
    "Forwarded",
    "Handled",
    "NormalizedRequest",
    "QueryFailure",
    "ResponseInit",
    "SingleResult",
    "StreamedResult",
    "CallableOptions",
    "OptionsResolver",
    "StaticOptions",
]
