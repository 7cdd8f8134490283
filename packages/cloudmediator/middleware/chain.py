from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, TypeVar

from ..contracts.messages import PipelineBehavior
from ..runtime.context import CancellationToken
from .types import Next, maybe_await

T = TypeVar("T")


@dataclass
class BehaviorChain(Generic[T]):
    """
    Behaviors around a terminal operation, first-registered outermost.
    """
    behaviors: List[PipelineBehavior[Any, T]] = field(default_factory=list)

    def add(self, behavior: PipelineBehavior[Any, T]) -> None:
        self.behaviors.append(behavior)

    def build(self, request: Any, terminal: Next[T], cancellation: CancellationToken) -> Next[T]:
        """
        Wrap terminal from the last-registered behavior inward, so the
        first-registered one ends up outermost.
        """
        pipeline = terminal
        for behavior in reversed(self.behaviors):
            pipeline = _link(behavior, request, pipeline, cancellation)
        return pipeline

    async def run(self, request: Any, terminal: Next[T], cancellation: CancellationToken) -> T:
        return await self.build(request, terminal, cancellation)()


def _link(
    behavior: PipelineBehavior[Any, T],
    request: Any,
    nxt: Next[T],
    cancellation: CancellationToken,
) -> Next[T]:
    async def call() -> T:
        return await maybe_await(behavior.handle(request, nxt, cancellation))

    return call
