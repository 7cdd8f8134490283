from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from ..runtime.context import CancellationToken
    from ..middleware.types import Next

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")
TNotification = TypeVar("TNotification")


@dataclass(frozen=True)
class Unit:
    """
    Response of requests that have nothing to return.
    """

    def __repr__(self) -> str:
        return "()"


UNIT = Unit()


class Request(Generic[TResponse]):
    """
    Marker base for payloads expecting exactly one handler and one response.

    Subclassing is optional, any object can be sent. It lets bootstrapping
    and envelope naming tell requests apart from notifications.

    Example:
        @dataclass(frozen=True)
        class GetWeatherQuery(Request[WeatherResult]):
            city: str
    """


class Notification:
    """
    Marker base for payloads delivered to zero or more handlers.
    """


class RequestHandler(Generic[TRequest, TResponse]):
    """
    Handles one request type and produces its response.

    MUST NOT:
    - keep per-call state on the instance unless its lifetime is transient
    """

    async def handle(self, request: TRequest, cancellation: "CancellationToken") -> TResponse:
        raise NotImplementedError


class NotificationHandler(Generic[TNotification]):
    async def handle(self, notification: TNotification, cancellation: "CancellationToken") -> None:
        raise NotImplementedError


class PipelineBehavior(Generic[TRequest, TResponse]):
    """
    Wraps the handler of a request type.

    Call `nxt()` to continue down the chain; not calling it short-circuits
    the remaining behaviors and the handler.
    A behavior bound to a type variable (not a concrete class) applies to
    every request type.
    """

    async def handle(
        self,
        request: TRequest,
        nxt: "Next[TResponse]",
        cancellation: "CancellationToken",
    ) -> TResponse:
        raise NotImplementedError


class RequestPreProcessor(Generic[TRequest]):
    async def process(self, request: TRequest, cancellation: "CancellationToken") -> None:
        raise NotImplementedError


class RequestPostProcessor(Generic[TRequest, TResponse]):
    async def process(
        self,
        request: TRequest,
        response: TResponse,
        cancellation: "CancellationToken",
    ) -> None:
        raise NotImplementedError


def type_name(t: Any) -> str:
    return getattr(t, "__qualname__", None) or getattr(t, "__name__", None) or repr(t)
