from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List

from cloudmediator.contracts.messages import (
    UNIT,
    Notification,
    NotificationHandler,
    PipelineBehavior,
    Request,
    RequestHandler,
    RequestPostProcessor,
    RequestPreProcessor,
    Unit,
)
from cloudmediator.runtime.context import CancellationToken, current_envelope

# shared call trace, cleared before every test (see conftest.py)
TRACE: List[str] = []


@dataclass(frozen=True)
class Ping(Request[str]):
    message: str


@dataclass(frozen=True)
class GetWeatherQuery(Request[int]):
    city: str


@dataclass(frozen=True)
class UpdateSettingsCommand(Request[Unit]):
    name: str
    value: str


@dataclass(frozen=True)
class Unregistered(Request[int]):
    pass


class PingHandler(RequestHandler[Ping, str]):
    async def handle(self, request: Ping, cancellation: CancellationToken) -> str:
        TRACE.append("handler")
        return f"pong:{request.message}"


class LoudPingHandler(RequestHandler[Ping, str]):
    async def handle(self, request: Ping, cancellation: CancellationToken) -> str:
        TRACE.append("loud-handler")
        return f"PONG:{request.message.upper()}"


class GetWeatherHandler(RequestHandler[GetWeatherQuery, int]):
    def handle(self, request: GetWeatherQuery, cancellation: CancellationToken) -> int:
        # plain function handlers are awaited only when they return an awaitable
        TRACE.append(f"weather:{request.city}")
        return 72


class UpdateSettingsHandler(RequestHandler[UpdateSettingsCommand, Unit]):
    async def handle(self, request: UpdateSettingsCommand, cancellation: CancellationToken) -> Unit:
        TRACE.append(f"settings:{request.name}={request.value}")
        return UNIT


class FirstBehavior(PipelineBehavior[Ping, str]):
    async def handle(self, request, nxt, cancellation):
        TRACE.append("first-before")
        res = await nxt()
        TRACE.append("first-after")
        return res


class SecondBehavior(PipelineBehavior[Ping, str]):
    async def handle(self, request, nxt, cancellation):
        TRACE.append("second-before")
        res = await nxt()
        TRACE.append("second-after")
        return res


class ThirdBehavior(PipelineBehavior[Ping, str]):
    async def handle(self, request, nxt, cancellation):
        TRACE.append("third-before")
        res = await nxt()
        TRACE.append("third-after")
        return res


class ShortCircuitBehavior(PipelineBehavior[Ping, str]):
    async def handle(self, request, nxt, cancellation):
        TRACE.append("short-circuit")
        return "cached"


class FailingBehavior(PipelineBehavior[Ping, str]):
    async def handle(self, request, nxt, cancellation):
        TRACE.append("failing-behavior")
        raise RuntimeError("behavior failed")


class PingPreProcessor(RequestPreProcessor[Ping]):
    async def process(self, request: Ping, cancellation: CancellationToken) -> None:
        TRACE.append("pre")


class SecondPingPreProcessor(RequestPreProcessor[Ping]):
    async def process(self, request: Ping, cancellation: CancellationToken) -> None:
        TRACE.append("pre-2")


class FailingPreProcessor(RequestPreProcessor[Ping]):
    async def process(self, request: Ping, cancellation: CancellationToken) -> None:
        TRACE.append("failing-pre")
        raise ValueError("invalid ping")


class PingPostProcessor(RequestPostProcessor[Ping, str]):
    async def process(self, request: Ping, response: str, cancellation: CancellationToken) -> None:
        TRACE.append(f"post:{response}")


class FailingPostProcessor(RequestPostProcessor[Ping, str]):
    async def process(self, request: Ping, response: str, cancellation: CancellationToken) -> None:
        TRACE.append("failing-post")
        raise RuntimeError("post failed")


@dataclass(frozen=True)
class OrderCreated(Notification):
    order_id: int


@dataclass(frozen=True)
class NobodyListens(Notification):
    pass


class EmailOrderHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        TRACE.append(f"email:{notification.order_id}")


class AuditOrderHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        TRACE.append(f"audit:{notification.order_id}")


class FailingOrderHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        TRACE.append("failing")
        raise RuntimeError(f"cannot handle order {notification.order_id}")


class SecondFailingOrderHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        TRACE.append("failing-2")
        raise KeyError("missing")


class CancellingOrderHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        TRACE.append("cancelling")
        cancellation.raise_if_cancelled()


class SlowOrderHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        await asyncio.sleep(0.02)
        TRACE.append(f"slow:{notification.order_id}")


class EnvelopeRecordingHandler(NotificationHandler[OrderCreated]):
    async def handle(self, notification: OrderCreated, cancellation: CancellationToken) -> None:
        envelope = current_envelope()
        TRACE.append(envelope.id if envelope else "no-envelope")
