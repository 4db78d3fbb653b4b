"""Request normalization.

There is exactly one way to carry a query per method: POST puts it in the
body, every other method in the query string.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Tuple

from .models import ExecutionRequest, NormalizedRequest
from .transport import InboundRequest

__all__ = [
    "normalize_request",
    "collect_query_params",
    "select_query_payload",
    "build_execution_request",
]


def normalize_request(inbound: InboundRequest) -> NormalizedRequest:
    return NormalizedRequest(
        method=inbound.method.upper(),
        url=str(inbound.url),
        headers={str(k): str(v) for k, v in inbound.headers.items()},
    )


def collect_query_params(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """Fold query-string pairs into a mapping.

    A key seen once maps to its value; a repeated key maps to the list of its
    values in order of appearance.
    """
    params: Dict[str, Any] = {}
    repeated = set()
    for key, value in items:
        if key not in params:
            params[key] = value
        elif key in repeated:
            params[key].append(value)
        else:
            params[key] = [params[key], value]
            repeated.add(key)
    return params


def select_query_payload(inbound: InboundRequest) -> Any:
    """Parsed body for POST, query-string parameters otherwise."""
    if inbound.method.upper() == "POST":
        return inbound.body
    return collect_query_params(inbound.query_items())


def build_execution_request(inbound: InboundRequest, options: Any) -> ExecutionRequest:
    """Project an inbound request and resolved options into an ExecutionRequest."""
    return ExecutionRequest(
        method=inbound.method.upper(),
        query=select_query_payload(inbound),
        options=options,
        request=normalize_request(inbound),
    )
