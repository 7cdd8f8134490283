from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, Protocol, Tuple, TypeVar

T = TypeVar("T")


class IdempotencyStore(Protocol, Generic[T]):
    """
    Responses by idempotency key.

    A response may itself be None, so `get` reports a hit separately:
    (True, response) on a hit, (False, None) on a miss.
    `lock`/`unlock` guard against two calls doing the same work at once.
    """

    async def get(self, key: str) -> Tuple[bool, Optional[T]]:
        ...

    async def put(self, key: str, response: T, *, ttl_seconds: int) -> None:
        ...

    async def lock(self, key: str, *, ttl_seconds: int) -> bool:
        ...

    async def unlock(self, key: str) -> None:
        ...


@dataclass(frozen=True)
class _Stored(Generic[T]):
    response: T
    expires_at: float


class InMemoryIdempotencyStore(Generic[T]):
    """
    Process-local store for tests and single-process apps.
    Expired entries and locks are swept on every write.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._responses: Dict[str, _Stored[T]] = {}
        self._lock_deadlines: Dict[str, float] = {}
        self._guard = asyncio.Lock()

    async def get(self, key: str) -> Tuple[bool, Optional[T]]:
        async with self._guard:
            stored = self._responses.get(key)
            if stored is None:
                return False, None
            if self._clock() >= stored.expires_at:
                del self._responses[key]
                return False, None
            return True, stored.response

    async def put(self, key: str, response: T, *, ttl_seconds: int) -> None:
        async with self._guard:
            now = self._clock()
            self._sweep(now)
            self._responses[key] = _Stored(response=response, expires_at=now + ttl_seconds)

    async def lock(self, key: str, *, ttl_seconds: int) -> bool:
        """
        False while another holder's lock has not expired.
        """
        async with self._guard:
            now = self._clock()
            self._sweep(now)
            deadline = self._lock_deadlines.get(key)
            if deadline is not None and now < deadline:
                return False
            self._lock_deadlines[key] = now + ttl_seconds
            return True

    async def unlock(self, key: str) -> None:
        async with self._guard:
            self._lock_deadlines.pop(key, None)

    @property
    def size(self) -> int:
        return len(self._responses) + len(self._lock_deadlines)

    def _sweep(self, now: float) -> None:
        # caller holds _guard
        for key in [k for k, s in self._responses.items() if now >= s.expires_at]:
            del self._responses[key]
        for key in [k for k, d in self._lock_deadlines.items() if now >= d]:
            del self._lock_deadlines[key]
