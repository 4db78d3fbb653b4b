"""Execution options resolution.

Options are either a constant or a function of ``(request, response)``
returning the options directly or through an awaitable. Both shapes are
wrapped in an ``OptionsResolver`` so the handler resolves them the same way,
once per call.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

__all__ = [
    "OptionsResolver",
    "StaticOptions",
    "CallableOptions",
    "OptionsFunction",
    "as_options_resolver",
]

OptionsFunction = Callable[[Any, Any], Union[Any, Awaitable[Any]]]


class OptionsResolver(ABC):
    """Produces the execution options for one inbound call."""

    @abstractmethod
    async def resolve(self, request: Any, response: Any) -> Any:
        ...


class StaticOptions(OptionsResolver):
    def __init__(self, value: Any) -> None:
        self.value = value

    async def resolve(self, request: Any, response: Any) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"StaticOptions({self.value!r})"


class CallableOptions(OptionsResolver):
    """Calls ``func(request, response)``, awaiting the result when needed."""

    def __init__(self, func: OptionsFunction) -> None:
        self.func = func

    async def resolve(self, request: Any, response: Any) -> Any:
        value = self.func(request, response)
        if inspect.isawaitable(value):
            value = await value
        return value

    def __repr__(self) -> str:
        return f"CallableOptions({getattr(self.func, '__qualname__', self.func)!r})"


def as_options_resolver(options: Any) -> OptionsResolver:
    """Wrap raw options; resolvers pass through unchanged."""
    if isinstance(options, OptionsResolver):
        return options
    if callable(options):
        return CallableOptions(options)
    return StaticOptions(options)
