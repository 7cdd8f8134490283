from __future__ import annotations

import asyncio
import logging
from typing import Tuple, Type, TypeVar

from ..contracts.messages import PipelineBehavior
from ..runtime.context import CancellationToken
from .types import Next

logger = logging.getLogger(__name__)

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")


class TimeoutBehavior(PipelineBehavior[TRequest, TResponse]):
    """
    Fails with asyncio.TimeoutError when the rest of the chain is too slow.
    The inner work is cancelled by asyncio.wait_for.
    """

    def __init__(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("timeout must be positive")
        self._seconds = seconds

    async def handle(self, request: TRequest, nxt: Next[TResponse], cancellation: CancellationToken) -> TResponse:
        return await asyncio.wait_for(nxt(), timeout=self._seconds)


class RetryBehavior(PipelineBehavior[TRequest, TResponse]):
    """
    Re-runs the rest of the chain on failure.

    - only exceptions matching retry_on are retried
    - cancellation is never retried
    - stops early once the token is cancelled
    """

    def __init__(
        self,
        max_attempts: int = 2,
        *,
        delay_seconds: float = 0.0,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts
        self._delay = delay_seconds
        self._retry_on = retry_on

    async def handle(self, request: TRequest, nxt: Next[TResponse], cancellation: CancellationToken) -> TResponse:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await nxt()
            except asyncio.CancelledError:
                raise
            except self._retry_on as exc:
                if attempt >= self._max_attempts or cancellation.cancelled:
                    raise
                logger.warning(
                    "Attempt %s/%s of %s failed: %r",
                    attempt,
                    self._max_attempts,
                    type(request).__name__,
                    exc,
                )

            if self._delay:
                await asyncio.sleep(self._delay)

        raise AssertionError("unreachable")  # pragma: no cover
