"""
Helpers for handlers that may be plain functions or coroutines.
"""

import inspect
from typing import Any, Callable


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def handler_name(handler: Callable) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))
