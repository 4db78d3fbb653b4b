"""
FastAPI / Starlette binding for the query handler.

The handler writes through ``ASGIResponseWriter``, which talks to the raw ASGI
``send`` callable so streamed parts reach the client as soon as they are
written. ``QueryEndpoint`` is mounted as a plain ASGI app on the route and
re-raises forwarded errors so the application's exception handlers see them.

Example usage:
    app = create_app({"schema": schema}, engine=engine, path="/graphql")
    uvicorn.run(app, host="127.0.0.1", port=4000)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .exceptions import HttpQueryError, ResponseClosedError
from .handler import QueryEngine, QueryHandler, query_handler
from .logging_config import get_logger
from .middleware import ErrorHandlerMiddleware
from .transport import BodyData

__all__ = [
    "ASGIResponseWriter",
    "StarletteInboundRequest",
    "QueryEndpoint",
    "create_app",
    "DEFAULT_PATH",
    "encode_header",
]

DEFAULT_PATH = "/graphql"


def encode_header(name: str, value: Any) -> Tuple[bytes, bytes]:
    """Encode a header pair for the wire.

    Raises:
        ValueError: If the name is not ASCII, the value is not latin-1, or
            either contains a line break
    """
    text = str(value)
    if any(ch in "\r\n" for ch in name + text):
        raise ValueError(f"Header {name!r} contains a line break")
    try:
        raw_name = name.lower().encode("ascii")
    except UnicodeEncodeError as error:
        raise ValueError(f"Header name {name!r} is not ASCII") from error
    try:
        raw_value = text.encode("latin-1")
    except UnicodeEncodeError as error:
        raise ValueError(f"Value of header {name!r} is not latin-1 encodable: {text!r}") from error
    return raw_name, raw_value


def _to_bytes(data: Optional[BodyData]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, bytes):
        return data
    return str(data).encode("utf-8")


class ASGIResponseWriter:
    """ResponseWriter over an ASGI ``send`` callable.

    Status and headers are buffered until the first body message. Headers are
    case-insensitive; setting one twice keeps the last value. Values are
    checked when set, so an unencodable header fails before anything is sent.
    """

    def __init__(self, send: Send):
        self._send = send
        self.status_code = 200
        self._headers: Dict[str, Tuple[str, bytes, bytes]] = {}
        self.headers_sent = False
        self.finished = False

    def set_header(self, name: str, value: str) -> None:
        if self.headers_sent:
            raise RuntimeError(f"Cannot set header {name!r} after headers were sent")
        raw_name, raw_value = encode_header(name, value)
        self._headers[name.lower()] = (str(value), raw_name, raw_value)

    def get_header(self, name: str) -> Optional[str]:
        entry = self._headers.get(name.lower())
        return entry[0] if entry else None

    @property
    def raw_headers(self) -> List[Tuple[bytes, bytes]]:
        return [(raw_name, raw_value) for _, raw_name, raw_value in self._headers.values()]

    async def write(self, data: BodyData) -> None:
        if self.finished:
            raise ResponseClosedError("Write after response end")
        await self._start()
        await self._emit({"type": "http.response.body", "body": _to_bytes(data), "more_body": True})

    async def end(self, data: Optional[BodyData] = None) -> None:
        if self.finished:
            return
        await self._start()
        await self._emit({"type": "http.response.body", "body": _to_bytes(data), "more_body": False})
        self.finished = True

    async def send(self, body: BodyData) -> None:
        """Buffered write of a complete body with Content-Length.

        Only Content-Length is added; every other header is the caller's.
        """
        data = _to_bytes(body)
        if not self.headers_sent:
            self.set_header("Content-Length", str(len(data)))
        await self.end(data)

    async def _start(self) -> None:
        if self.headers_sent:
            return
        await self._emit({
            "type": "http.response.start",
            "status": self.status_code,
            "headers": self.raw_headers,
        })
        self.headers_sent = True

    async def _emit(self, message: Dict[str, Any]) -> None:
        try:
            await self._send(message)
        except OSError as error:
            self.finished = True
            raise ResponseClosedError(cause=error) from error


class StarletteInboundRequest:
    """InboundRequest over a Starlette request with its body already read."""

    def __init__(self, request: Request, raw_body: bytes = b""):
        self.method = request.method
        self.url = str(request.url)
        self.headers: Mapping[str, str] = dict(request.headers)
        self.query_params = request.query_params
        self._raw_body = raw_body

    def query_items(self) -> List[Tuple[str, str]]:
        return self.query_params.multi_items()

    @classmethod
    async def from_request(cls, request: Request) -> "StarletteInboundRequest":
        raw_body = await request.body() if request.method.upper() == "POST" else b""
        return cls(request, raw_body)

    @property
    def body(self) -> Any:
        """Parsed JSON body; None when the body is empty."""
        if not self._raw_body.strip():
            return None
        try:
            return json.loads(self._raw_body)
        except ValueError as error:
            raise HttpQueryError(400, "POST body sent invalid JSON.") from error


class QueryEndpoint:
    """ASGI app serving one query handler."""

    def __init__(self, handler: QueryHandler, logger: Optional[logging.Logger] = None):
        self.handler = handler
        self.logger = logger or get_logger("query_http.asgi")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        inbound = await StarletteInboundRequest.from_request(request)
        writer = ASGIResponseWriter(send)

        result = await self.handler(inbound, writer)
        if result.forwarded:
            self.logger.debug(
                "Passing forwarded error to application error handlers",
                extra={"error_type": type(result.error).__name__}
            )
            raise result.error


def create_app(
    options: Any,
    engine: QueryEngine,
    path: str = DEFAULT_PATH,
    debug: bool = False,
    error_handler: Optional[ErrorHandlerMiddleware] = None
) -> FastAPI:
    """
    Build a FastAPI application serving GET and POST queries on ``path``.

    Forwarded errors end up in an exception handler that renders them with
    ``ErrorHandlerMiddleware`` as a JSON 500 response.
    """
    handler = query_handler(options, engine=engine)
    renderer = error_handler or ErrorHandlerMiddleware(debug=debug)

    app = FastAPI()
    app.state.query_handler = handler
    app.add_route(path, QueryEndpoint(handler), methods=["GET", "POST"])

    async def render_forwarded_error(request: Request, exc: Exception) -> Response:
        rendered = renderer.to_http_response(exc)
        return Response(
            content=rendered.body,
            status_code=rendered.status_code,
            media_type=rendered.content_type,
        )

    app.add_exception_handler(Exception, render_forwarded_error)
    return app
