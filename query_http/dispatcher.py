"""
Response dispatcher.

Writes exactly one complete response per execution outcome:

- SingleResult: replay headers, write the body in one go, terminate.
- StreamedResult: replay headers, switch to multipart framing, write one part
  per chunk as it arrives, write the terminating boundary, terminate.
- QueryFailure: a recognized ``HttpQueryError`` is rendered with its status,
  headers and message, labelled as plain text when it names no Content-Type.
  Anything else is returned as ``Forwarded`` without touching the response.

Success results carry only the headers the engine set.

Streaming is strictly sequential: each chunk is awaited and written before
the next one is requested, and there is no timeout at this layer.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .exceptions import HttpQueryError, ResponseClosedError
from .logging_config import get_logger
from .models import (
    DispatchResult,
    ExecutionOutcome,
    Forwarded,
    Handled,
    QueryFailure,
    SingleResult,
    StreamedResult,
)
from .multipart import MULTIPART_CONTENT_TYPE, encode_part, encode_terminator
from .transport import BodyData, ResponseWriter

__all__ = ["ResponseDispatcher", "replay_headers", "send_body", "ERROR_CONTENT_TYPE"]

ERROR_CONTENT_TYPE = "text/plain; charset=utf-8"


def replay_headers(response: ResponseWriter, headers: Optional[Mapping[str, str]]) -> None:
    """Set each header on the response, in collection order."""
    if not headers:
        return
    for name, value in headers.items():
        response.set_header(name, value)


async def send_body(response: ResponseWriter, body: BodyData) -> None:
    """Write a complete body and terminate.

    Buffered ``send`` is preferred when the transport has one; ``end`` produces
    the same bytes on the wire.
    """
    send = getattr(response, "send", None)
    if callable(send):
        await send(body)
    else:
        await response.end(body)


class ResponseDispatcher:
    """Encodes an ExecutionOutcome onto a ResponseWriter."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("query_http.dispatcher")

    async def dispatch(self, outcome: ExecutionOutcome, response: ResponseWriter) -> DispatchResult:
        """
        Write the response for ``outcome``.

        Args:
            outcome: Settled result of the query engine
            response: Outbound transport

        Returns:
            Handled when a response was written, Forwarded when the outcome is
            an unrecognized error that the next handler must deal with
        """
        if isinstance(outcome, SingleResult):
            await self._send_single(outcome, response)
            return Handled(outcome.kind)
        if isinstance(outcome, StreamedResult):
            await self._send_streamed(outcome, response)
            return Handled(outcome.kind)
        if isinstance(outcome, QueryFailure):
            if not outcome.recognized:
                self.logger.debug(
                    "Forwarding unrecognized error",
                    extra={"error_type": type(outcome.error).__name__}
                )
                return Forwarded(outcome.error)
            await self._send_error(outcome.error, response)
            return Handled(outcome.kind)
        raise TypeError(f"Unsupported execution outcome: {type(outcome).__name__}")

    async def _send_single(self, outcome: SingleResult, response: ResponseWriter) -> None:
        replay_headers(response, outcome.headers)
        if outcome.response_init.status is not None:
            response.status_code = outcome.response_init.status
        await send_body(response, outcome.body)

    async def _send_streamed(self, outcome: StreamedResult, response: ResponseWriter) -> None:
        replay_headers(response, outcome.headers)
        if outcome.response_init.status is not None:
            response.status_code = outcome.response_init.status
        response.set_header("Content-Type", MULTIPART_CONTENT_TYPE)

        parts = 0
        iterator = outcome.responses.__aiter__()
        try:
            async for chunk in iterator:
                await response.write(encode_part(chunk))
                parts += 1

            await response.write(encode_terminator())
            await response.end()
        except ResponseClosedError:
            # Client went away mid-stream; stop pulling chunks.
            self.logger.debug("Connection closed during streamed response", extra={"parts": parts})
            await _close_iterator(iterator)
            return

        self.logger.debug("Streamed response finished", extra={"parts": parts})

    async def _send_error(self, error: HttpQueryError, response: ResponseWriter) -> None:
        replay_headers(response, error.headers)
        if not any(name.lower() == "content-type" for name in (error.headers or {})):
            response.set_header("Content-Type", ERROR_CONTENT_TYPE)
        response.status_code = error.status_code
        await send_body(response, error.message)


async def _close_iterator(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if callable(aclose):
        await aclose()
