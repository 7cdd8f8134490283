from __future__ import annotations

import asyncio
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

from ..contracts.envelope import Envelope


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class OperationCancelled(asyncio.CancelledError):
    """
    Raised by `CancellationToken.raise_if_cancelled()`.

    Being a CancelledError it is never collected with handler failures and
    asyncio treats it as task cancellation.
    """


class CancellationToken:
    """
    Advisory cancellation signal threaded through every stage and handler.

    The engine only forwards it; handlers decide when to observe it.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason or "operation cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


# Ambient envelope of the dispatch call running in the current task.
# Every asyncio task gets its own copy, so this carries the same
# information as passing the envelope explicitly down the call chain.
_current_envelope: ContextVar[Optional[Envelope]] = ContextVar("cloudmediator_envelope", default=None)


def current_envelope() -> Optional[Envelope]:
    return _current_envelope.get()


@contextmanager
def envelope_scope(envelope: Envelope) -> Iterator[Envelope]:
    token = _current_envelope.set(envelope)
    try:
        yield envelope
    finally:
        _current_envelope.reset(token)
