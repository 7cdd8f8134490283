from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


# continue delegate handed to a behavior; awaiting it runs the rest of the chain
Next = Callable[[], Awaitable[T]]


async def maybe_await(value: Any) -> Any:
    """
    Stages may be plain functions or coroutine functions.
    """
    if hasattr(value, "__await__"):
        return await value
    return value
