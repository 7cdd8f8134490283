from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Sequence, Set

from ..contracts.envelope import Envelope
from ..contracts.errors import DispatchError
from ..contracts.messages import type_name
from ..handlers.invokers import NotificationInvoker
from ..registry.services import ServiceResolver
from ..runtime.context import CancellationToken
from .types import PublishStrategy

logger = logging.getLogger(__name__)


class NotificationPublishError(DispatchError):
    """
    One or more notification handlers failed.
    `errors` keeps every collected failure in handler order.
    """

    def __init__(self, notification_type: type, errors: Sequence[BaseException]) -> None:
        super().__init__(
            f"{len(errors)} notification handler(s) failed for '{type_name(notification_type)}': "
            + "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        )
        self.notification_type = notification_type
        self.errors = tuple(errors)


Delivery = Callable[
    [Sequence[NotificationInvoker], Any, Envelope, ServiceResolver, CancellationToken],
    Awaitable[None],
]


class FanOutController:
    """
    Delivers one notification to its invokers per PublishStrategy.

    Fire-and-forget tasks are tracked so they are not garbage collected
    mid-flight and can be drained on shutdown.
    """

    def __init__(self) -> None:
        self._background: Set["asyncio.Task[None]"] = set()
        self._strategies: Dict[PublishStrategy, Delivery] = {
            PublishStrategy.SEQUENTIAL_CONTINUE: self._sequential_continue,
            PublishStrategy.SEQUENTIAL_STOP: self._sequential_stop,
            PublishStrategy.CONCURRENT_WAIT: self._concurrent_wait,
            PublishStrategy.CONCURRENT_NO_WAIT: self._concurrent_no_wait,
        }

    async def dispatch(
        self,
        invokers: Sequence[NotificationInvoker],
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
        strategy: PublishStrategy,
    ) -> None:
        try:
            delivery = self._strategies[PublishStrategy(strategy)]
        except (KeyError, ValueError):
            raise ValueError(f"Invalid publish strategy: {strategy!r}") from None

        if not invokers:
            return

        await delivery(invokers, notification, envelope, resolver, cancellation)

    @property
    def pending(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """
        Wait for outstanding fire-and-forget deliveries. Never raises their failures.
        """
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _sequential_continue(
        self,
        invokers: Sequence[NotificationInvoker],
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> None:
        errors: List[BaseException] = []

        for invoker in invokers:
            try:
                await invoker.invoke(notification, envelope, resolver, cancellation)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug("Handler %s failed for %s: %r", invoker.handler_name, envelope.type, exc)
                errors.append(exc)

        if errors:
            raise NotificationPublishError(type(notification), errors)

    async def _sequential_stop(
        self,
        invokers: Sequence[NotificationInvoker],
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> None:
        for invoker in invokers:
            await invoker.invoke(notification, envelope, resolver, cancellation)

    async def _concurrent_wait(
        self,
        invokers: Sequence[NotificationInvoker],
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> None:
        results = await asyncio.gather(
            *(invoker.invoke(notification, envelope, resolver, cancellation) for invoker in invokers),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException) and not isinstance(r, asyncio.CancelledError)]
        if errors:
            raise NotificationPublishError(type(notification), errors)

        # cancellation surfaces only when no handler actually failed
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                raise result

    async def _concurrent_no_wait(
        self,
        invokers: Sequence[NotificationInvoker],
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> None:
        loop = asyncio.get_running_loop()
        for invoker in invokers:
            task = loop.create_task(self._detached(invoker, notification, envelope, resolver, cancellation))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    @staticmethod
    async def _detached(
        invoker: NotificationInvoker,
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> None:
        try:
            await invoker.invoke(notification, envelope, resolver, cancellation)
        except asyncio.CancelledError:
            logger.debug("Detached handler %s cancelled", invoker.handler_name)
        except Exception:
            # fire and forget: the caller is gone, log and discard
            logger.exception(
                "Error in detached handler=%s for event=%s id=%s",
                invoker.handler_name,
                envelope.type,
                envelope.id,
            )
