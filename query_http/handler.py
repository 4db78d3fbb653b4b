"""
Query handler construction and per-request orchestration.

``query_handler(options, engine=...)`` validates its configuration once, at
wiring time, and returns a ``QueryHandler``. Each call of the handler:

1. resolves the execution options for this request,
2. normalizes the inbound request into an ``ExecutionRequest``,
3. awaits the query engine (nothing is written before it settles),
4. hands the outcome to the ``ResponseDispatcher``,
5. passes forwarded errors to ``next_handler`` when one is given.

Example usage:
    handler = query_handler({"schema": schema}, engine=engine)
    result = await handler(request, response, next_handler=on_error)
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from .dispatcher import ResponseDispatcher
from .exceptions import ArgumentCountError, ConfigurationError, HttpQueryError
from .logging_config import PerformanceLogger, get_logger
from .middleware import request_context
from .models import (
    DispatchResult,
    ExecutionOutcome,
    ExecutionRequest,
    QueryFailure,
    SingleResult,
    StreamedResult,
)
from .normalizer import build_execution_request
from .options import OptionsResolver, as_options_resolver
from .transport import InboundRequest, ResponseWriter

__all__ = ["QueryEngine", "QueryHandler", "NextHandler", "query_handler"]

NextHandler = Callable[[BaseException], Union[None, Awaitable[None]]]


class QueryEngine(Protocol):
    """External engine executing one query.

    Returns a ``SingleResult`` or ``StreamedResult``; signals a structured
    failure by raising (or returning a ``QueryFailure`` wrapping)
    ``HttpQueryError``. Any other exception is forwarded untouched.
    """

    async def execute(self, request: ExecutionRequest) -> ExecutionOutcome: ...


class QueryHandler:
    """Serves one query request per call against a fixed engine and options."""

    def __init__(
        self,
        options: OptionsResolver,
        engine: QueryEngine,
        dispatcher: Optional[ResponseDispatcher] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.options = options
        self.engine = engine
        self.dispatcher = dispatcher or ResponseDispatcher()
        self.logger = logger or get_logger("query_http.handler")

    async def __call__(
        self,
        request: InboundRequest,
        response: ResponseWriter,
        next_handler: Optional[NextHandler] = None
    ) -> DispatchResult:
        method = request.method.upper()
        with request_context(metadata={"method": method}) as ctx:
            with PerformanceLogger(self.logger, "query request", method=method, request_id=ctx.request_id) as perf:
                outcome = await self.execute(request, response)
                ctx.add_metadata("outcome", outcome.kind)
                result = await self.dispatcher.dispatch(outcome, response)
                perf.add_context(outcome=outcome.kind, forwarded=result.forwarded)

            # next_handler still runs inside the request context
            if result.forwarded and next_handler is not None:
                forwarded = next_handler(result.error)
                if inspect.isawaitable(forwarded):
                    await forwarded
        return result

    async def execute(self, request: InboundRequest, response: ResponseWriter) -> ExecutionOutcome:
        """Run the engine and capture its settled outcome, errors included."""
        try:
            options = await self._resolve_options(request, response)
            execution_request = build_execution_request(request, options)
            outcome = await self.engine.execute(execution_request)
        except Exception as error:
            return QueryFailure(error)

        if not isinstance(outcome, (SingleResult, StreamedResult, QueryFailure)):
            return QueryFailure(
                TypeError(f"Query engine returned unsupported outcome: {type(outcome).__name__}")
            )
        return outcome

    async def _resolve_options(self, request: InboundRequest, response: ResponseWriter) -> Any:
        try:
            options = await self.options.resolve(request, response)
        except HttpQueryError:
            raise
        except Exception as error:
            raise HttpQueryError.invalid_options(str(error) or type(error).__name__) from error

        if options is None:
            raise HttpQueryError.invalid_options("options resolved to None")
        return options


def query_handler(*args: Any, engine: QueryEngine) -> QueryHandler:
    """
    Build a query handler from exactly one options argument.

    Args:
        *args: The execution options, either a value or a function of
            ``(request, response)`` returning one (directly or awaitable)
        engine: Query engine executing each request

    Returns:
        QueryHandler ready to serve requests

    Raises:
        ConfigurationError: If options are missing
        ArgumentCountError: If more than one positional argument is given
    """
    if not args or args[0] is None:
        raise ConfigurationError("Query server requires options.")

    if len(args) > 1:
        raise ArgumentCountError(expected=1, actual=len(args))

    if engine is None:
        raise ConfigurationError("Query server requires an engine.")

    return QueryHandler(as_options_resolver(args[0]), engine)
