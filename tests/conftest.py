"""Shared pytest fixtures for query HTTP adapter tests."""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import pytest

from query_http.exceptions import ResponseClosedError
from query_http.models import ExecutionRequest


class RecordingResponse:
    """In-memory ResponseWriter recording every call in order."""

    def __init__(self) -> None:
        self.status_code = 200
        self.headers: Dict[str, str] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.chunks: List[bytes] = []
        self.ended = False

    def set_header(self, name: str, value: str) -> None:
        self.calls.append(("set_header", (name, value)))
        self.headers[name] = value

    async def write(self, data: Union[str, bytes]) -> None:
        self.calls.append(("write", data))
        self.chunks.append(data if isinstance(data, bytes) else data.encode("utf-8"))

    async def end(self, data: Optional[Union[str, bytes]] = None) -> None:
        self.calls.append(("end", data))
        if data is not None:
            self.chunks.append(data if isinstance(data, bytes) else data.encode("utf-8"))
        self.ended = True

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)

    @property
    def written(self) -> bool:
        return bool(self.calls)


class SendingResponse(RecordingResponse):
    """RecordingResponse that also offers a buffered ``send``."""

    async def send(self, body: Union[str, bytes]) -> None:
        self.calls.append(("send", body))
        self.chunks.append(body if isinstance(body, bytes) else body.encode("utf-8"))
        self.ended = True


class ClosingResponse(RecordingResponse):
    """Fails every write after ``writes_allowed`` successful ones."""

    def __init__(self, writes_allowed: int) -> None:
        super().__init__()
        self.writes_allowed = writes_allowed

    async def write(self, data: Union[str, bytes]) -> None:
        if self.writes_allowed <= 0:
            raise ResponseClosedError()
        self.writes_allowed -= 1
        await super().write(data)


class FakeInboundRequest:
    def __init__(
        self,
        method: str = "POST",
        body: Any = None,
        query_params: Union[Dict[str, Any], List[Tuple[str, str]], None] = None,
        url: str = "http://testserver/graphql",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.method = method
        self.body = body
        self.query_params = query_params or {}
        self.url = url
        self.headers = headers or {"content-type": "application/json"}

    def query_items(self) -> List[Tuple[str, str]]:
        """Pairs in order; a list value in a dict expands to repeated keys."""
        if isinstance(self.query_params, list):
            return list(self.query_params)
        items = []
        for key, value in self.query_params.items():
            values = value if isinstance(value, list) else [value]
            items.extend((key, item) for item in values)
        return items


class FakeEngine:
    """Query engine returning a fixed outcome or raising a fixed error."""

    def __init__(self, outcome: Any = None, error: Optional[BaseException] = None) -> None:
        self.outcome = outcome
        self.error = error
        self.requests: List[ExecutionRequest] = []

    async def execute(self, request: ExecutionRequest) -> Any:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.outcome


async def chunks_of(*items: str) -> AsyncIterator[str]:
    for item in items:
        yield item


@pytest.fixture
def response() -> RecordingResponse:
    return RecordingResponse()


@pytest.fixture
def sending_response() -> SendingResponse:
    return SendingResponse()
