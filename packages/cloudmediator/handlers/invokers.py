from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from ..contracts.envelope import Envelope
from ..contracts.messages import (
    PipelineBehavior,
    RequestPostProcessor,
    RequestPreProcessor,
    type_name,
)
from ..middleware.chain import BehaviorChain
from ..middleware.types import maybe_await
from ..registry.services import ServiceKey, ServiceResolver, capability_key
from ..runtime.context import CancellationToken, envelope_scope

HandlerFactory = Callable[[ServiceResolver], Any]
CollectionFactory = Callable[[ServiceResolver], Sequence[Any]]


def _resolve_many(factory: Optional[CollectionFactory], resolver: ServiceResolver) -> Sequence[Any]:
    if factory is None:
        return ()
    return factory(resolver)


@dataclass(frozen=True)
class RequestInvoker:
    """
    Pre-built pipeline for one request type.

    Holds factories only; handler, behaviors and processors are resolved
    from the resolver on every call so scoped lifetimes are respected.
    """
    request_type: type
    handler_factory: HandlerFactory
    behaviors_factory: Optional[CollectionFactory] = None
    pre_processors_factory: Optional[CollectionFactory] = None
    post_processors_factory: Optional[CollectionFactory] = None

    async def invoke(
        self,
        request: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> Any:
        with envelope_scope(envelope):
            for pre in _resolve_many(self.pre_processors_factory, resolver):
                await maybe_await(pre.process(request, cancellation))

            async def terminal() -> Any:
                handler = self.handler_factory(resolver)
                return await maybe_await(handler.handle(request, cancellation))

            behaviors: List[PipelineBehavior[Any, Any]] = list(_resolve_many(self.behaviors_factory, resolver))
            if behaviors:
                response = await BehaviorChain(behaviors).run(request, terminal, cancellation)
            else:
                response = await terminal()

            # a post-processor failure fails the whole call; the response is dropped
            for post in _resolve_many(self.post_processors_factory, resolver):
                await maybe_await(post.process(request, response, cancellation))

            return response

    def __repr__(self) -> str:
        return f"RequestInvoker({type_name(self.request_type)})"


@dataclass(frozen=True)
class NotificationInvoker:
    """
    Pre-built call of one handler for one notification type.
    """
    notification_type: type
    handler_key: ServiceKey
    handler_factory: HandlerFactory

    async def invoke(
        self,
        notification: Any,
        envelope: Envelope,
        resolver: ServiceResolver,
        cancellation: CancellationToken,
    ) -> None:
        with envelope_scope(envelope):
            handler = self.handler_factory(resolver)
            await maybe_await(handler.handle(notification, cancellation))

    @property
    def handler_name(self) -> str:
        return type_name(self.handler_key)

    def __repr__(self) -> str:
        return f"NotificationInvoker({type_name(self.notification_type)} -> {self.handler_name})"


def build_request_invoker(request_type: type, handler_key: ServiceKey) -> RequestInvoker:
    """
    Compile the invoker of a request type. Keys are computed here, once,
    so the hot path is plain factory calls.
    """
    behaviors = capability_key(PipelineBehavior, request_type)
    pre = capability_key(RequestPreProcessor, request_type)
    post = capability_key(RequestPostProcessor, request_type)

    return RequestInvoker(
        request_type=request_type,
        handler_factory=lambda resolver: resolver.resolve(handler_key),
        behaviors_factory=lambda resolver: resolver.resolve_all(behaviors),
        pre_processors_factory=lambda resolver: resolver.resolve_all(pre),
        post_processors_factory=lambda resolver: resolver.resolve_all(post),
    )


def build_notification_invoker(notification_type: type, handler_key: ServiceKey) -> NotificationInvoker:
    return NotificationInvoker(
        notification_type=notification_type,
        handler_key=handler_key,
        handler_factory=lambda resolver: resolver.resolve(handler_key),
    )

