from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

from ..contracts.errors import DispatchError
from ..contracts.messages import PipelineBehavior
from ..runtime.context import CancellationToken
from .idempotency_store import IdempotencyStore
from .types import Next

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")


class IdempotencyInProgress(DispatchError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Operation with idempotency key '{key}' is in progress")
        self.key = key


def default_idempotency_key(request: Any) -> Optional[str]:
    return getattr(request, "idempotency_key", None)


class IdempotencyBehavior(PipelineBehavior[TRequest, TResponse]):
    """
    Replays the stored response for a repeated idempotency key instead of
    running the handler again. Requests without a key pass through.
    """

    def __init__(
        self,
        store: IdempotencyStore[Any],
        *,
        key_fn: Callable[[Any], Optional[str]] = default_idempotency_key,
        ttl_seconds: int = 300,
        lock_ttl_seconds: int = 30,
    ) -> None:
        self._store = store
        self._key_fn = key_fn
        self._ttl = ttl_seconds
        self._lock_ttl = lock_ttl_seconds

    async def handle(self, request: TRequest, nxt: Next[TResponse], cancellation: CancellationToken) -> TResponse:
        key = self._key_fn(request)
        if not key:
            return await nxt()

        found, cached = await self._store.get(key)
        if found:
            return cached

        acquired = await self._store.lock(key, ttl_seconds=self._lock_ttl)
        if not acquired:
            # someone else is working on it; retryable from the caller side
            raise IdempotencyInProgress(key)

        try:
            res = await nxt()
            await self._store.put(key, res, ttl_seconds=self._ttl)
            return res
        finally:
            await self._store.unlock(key)
