"""Data model shared by the normalizer, the handler and the dispatcher.

- ``NormalizedRequest`` and ``ExecutionRequest`` are immutable pydantic models
  built once per inbound call.
- ``ExecutionOutcome`` is a sum type: exactly one of ``SingleResult``,
  ``StreamedResult`` or ``QueryFailure``.
- ``DispatchResult`` is the dispatcher's return channel: ``Handled`` when a
  response was written, ``Forwarded`` when an error is passed on untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterable, ClassVar, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import HttpQueryError

__all__ = [
    "NormalizedRequest",
    "ExecutionRequest",
    "ResponseInit",
    "SingleResult",
    "StreamedResult",
    "QueryFailure",
    "ExecutionOutcome",
    "Handled",
    "Forwarded",
    "DispatchResult",
]


class NormalizedRequest(BaseModel):
    """Protocol-neutral view of the inbound HTTP request."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)


class ExecutionRequest(BaseModel):
    """Everything the query engine receives for one call.

    ``query`` is the parsed POST body or the query-string parameters,
    ``options`` the already-resolved execution configuration.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: str
    query: Any = None
    options: Any
    request: NormalizedRequest


class ResponseInit(BaseModel):
    """Status and headers an engine attaches to a successful result."""

    model_config = ConfigDict(frozen=True)

    status: Optional[int] = None
    headers: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class SingleResult:
    """Complete serialized result, written as the whole body."""

    kind: ClassVar[Literal["single"]] = "single"

    body: str
    response_init: ResponseInit = field(default_factory=ResponseInit)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return self.response_init.headers


@dataclass(frozen=True)
class StreamedResult:
    """Progressively produced results, written as multipart parts.

    ``responses`` is consumed exactly once, in order.
    """

    kind: ClassVar[Literal["streamed"]] = "streamed"

    responses: AsyncIterable[str]
    response_init: ResponseInit = field(default_factory=ResponseInit)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return self.response_init.headers


@dataclass(frozen=True)
class QueryFailure:
    """Execution failed; ``error`` is either recognized or forwarded."""

    kind: ClassVar[Literal["failure"]] = "failure"

    error: BaseException

    @property
    def recognized(self) -> bool:
        return isinstance(self.error, HttpQueryError)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        if isinstance(self.error, HttpQueryError):
            return self.error.headers
        return None


ExecutionOutcome = Union[SingleResult, StreamedResult, QueryFailure]


@dataclass(frozen=True)
class Handled:
    """A complete response was written for the given outcome kind."""

    kind: str
    forwarded: ClassVar[bool] = False


@dataclass(frozen=True)
class Forwarded:
    """Nothing was written; ``error`` belongs to the next error handler."""

    error: BaseException
    forwarded: ClassVar[bool] = True


DispatchResult = Union[Handled, Forwarded]
