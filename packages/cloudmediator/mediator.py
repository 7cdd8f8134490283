from __future__ import annotations

import logging
from typing import Any, TypeVar, overload

from .config.loader import MediatorConfig
from .contracts.envelope import EnvelopeFactory
from .contracts.errors import DispatchError
from .contracts.messages import Request, type_name
from .events.fanout import FanOutController
from .events.types import PublishStrategy
from .registry.handlers import HandlerRegistry
from .registry.services import ServiceResolver
from .runtime.context import CancellationToken

logger = logging.getLogger(__name__)

TResponse = TypeVar("TResponse")


class NullRequest(DispatchError, ValueError):
    def __init__(self) -> None:
        super().__init__("request must not be None")


class NullNotification(DispatchError, ValueError):
    def __init__(self) -> None:
        super().__init__("notification must not be None")


class Mediator:
    """
    Public dispatch API.

    send:    request -> exactly one handler -> response
    publish: notification -> 0..N handlers, delivered per PublishStrategy
    """

    def __init__(
        self,
        *,
        registry: HandlerRegistry,
        resolver: ServiceResolver,
        envelopes: EnvelopeFactory,
        config: MediatorConfig | None = None,
        fanout: FanOutController | None = None,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._envelopes = envelopes
        self._config = config or MediatorConfig()
        self._fanout = fanout or FanOutController()

    @overload
    async def send(self, request: Request[TResponse], cancellation: CancellationToken | None = None) -> TResponse:
        ...

    @overload
    async def send(self, request: Any, cancellation: CancellationToken | None = None) -> Any:
        ...

    async def send(self, request: Any, cancellation: CancellationToken | None = None) -> Any:
        if request is None:
            raise NullRequest()

        invoker = self._registry.lookup_request(type(request))
        envelope = self._envelopes.create_envelope(request)

        return await invoker.invoke(request, envelope, self._resolver, cancellation or CancellationToken())

    async def publish(
        self,
        notification: Any,
        strategy: PublishStrategy | str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        if notification is None:
            raise NullNotification()

        if strategy is None:
            strategy = self._config.default_publish_strategy
        try:
            strategy = PublishStrategy(strategy)
        except ValueError:
            raise ValueError(f"Invalid publish strategy: {strategy!r}") from None

        envelope = self._envelopes.create_envelope(notification)
        invokers = self._registry.lookup_notifications(type(notification))

        if not invokers:
            logger.debug("No handlers for notification %s", type_name(type(notification)))
            return

        await self._fanout.dispatch(
            invokers,
            notification,
            envelope,
            self._resolver,
            cancellation or CancellationToken(),
            strategy,
        )

    def with_resolver(self, resolver: ServiceResolver) -> "Mediator":
        """
        Same registry, envelopes and fan-out, instances from another resolver
        (usually a ServiceScope).
        """
        return Mediator(
            registry=self._registry,
            resolver=resolver,
            envelopes=self._envelopes,
            config=self._config,
            fanout=self._fanout,
        )

    async def drain(self) -> None:
        await self._fanout.drain()

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def pending_background(self) -> int:
        return self._fanout.pending

    def __repr__(self) -> str:
        return (
            f"Mediator(requests={len(self._registry.request_types())}, "
            f"notifications={len(self._registry.notification_types())})"
        )
