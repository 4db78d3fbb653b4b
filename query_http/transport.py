"""Transport protocols the adapter reads from and writes to.

The adapter never talks to a web framework directly. Bindings (see
``query_http.asgi``) provide objects satisfying these protocols.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Protocol, Tuple, Union

__all__ = ["InboundRequest", "ResponseWriter", "BodyData"]

BodyData = Union[str, bytes]


class InboundRequest(Protocol):
    """Minimal view of an inbound HTTP request.

    ``body`` is the parsed request body and is only read for POST requests.
    ``query_items`` yields query-string pairs in order, one pair per
    occurrence, so repeated keys are not collapsed.
    """

    method: str
    url: str
    headers: Mapping[str, str]

    def query_items(self) -> Iterable[Tuple[str, str]]: ...

    @property
    def body(self) -> Any: ...


class ResponseWriter(Protocol):
    """Outbound response channel.

    Headers and status must be set before the first ``write``. A transport may
    additionally offer ``async send(body)`` which writes a complete buffered
    body and terminates the response; the dispatcher prefers it when present.
    Writes on a closed connection raise ``ResponseClosedError``.
    """

    status_code: int

    def set_header(self, name: str, value: str) -> None: ...

    async def write(self, data: BodyData) -> None: ...

    async def end(self, data: Optional[BodyData] = None) -> None: ...
