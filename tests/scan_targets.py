"""Module scanned by MediatorBuilder.add_handlers_from_module in the bootstrap tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, TypeVar

from cloudmediator.contracts.messages import (
    Notification,
    NotificationHandler,
    PipelineBehavior,
    Request,
    RequestHandler,
    RequestPreProcessor,
)

# imported handlers belong to their own module and are skipped by the scan
from sample_messages import PingHandler  # noqa: F401

TNotification = TypeVar("TNotification")
TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")

CALLS: List[str] = []


@dataclass(frozen=True)
class Echo(Request[str]):
    text: str


@dataclass(frozen=True)
class UserRegistered(Notification):
    name: str


class EchoHandler(RequestHandler[Echo, str]):
    async def handle(self, request, cancellation):
        CALLS.append("echo")
        return request.text


class EchoPreProcessor(RequestPreProcessor[Echo]):
    def process(self, request, cancellation):
        CALLS.append("echo-pre")


class EchoBehavior(PipelineBehavior[Echo, str]):
    async def handle(self, request, nxt, cancellation):
        CALLS.append("echo-behavior")
        return await nxt()


class BaseListener(NotificationHandler[TNotification]):
    """Open base class; not routable on its own."""

    async def handle(self, notification, cancellation):
        CALLS.append(f"{type(self).__name__}:{notification.name}")


class WelcomeMailer(BaseListener[UserRegistered]):
    pass


class AuditBehaviorBase(PipelineBehavior[TRequest, TResponse]):
    """Meant for subclassing; keeps the base handle."""

    audit_label = "base"


class ThrottleBehavior(PipelineBehavior[TRequest, TResponse]):
    def __init__(self, limit: int) -> None:
        self.limit = limit

    async def handle(self, request, nxt, cancellation):
        CALLS.append("throttle")
        return await nxt()


class Helper:
    pass
