from __future__ import annotations

import logging
import time
from typing import TypeVar

from ..contracts.messages import PipelineBehavior
from ..runtime.context import CancellationToken, current_envelope
from .types import Next

logger = logging.getLogger(__name__)

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")


class LoggingBehavior(PipelineBehavior[TRequest, TResponse]):
    """
    Open behavior: logs start/end of every request it wraps.
    """

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def handle(self, request: TRequest, nxt: Next[TResponse], cancellation: CancellationToken) -> TResponse:
        envelope = current_envelope()
        event_id = envelope.id if envelope else None
        event_type = envelope.type if envelope else type(request).__name__

        started = time.monotonic()
        logger.log(self._level, "start %s id=%s", event_type, event_id)

        try:
            res = await nxt()
        except Exception as exc:
            dur = int((time.monotonic() - started) * 1000)
            logger.log(self._level, "fail %s id=%s ms=%s error=%s", event_type, event_id, dur, type(exc).__name__)
            raise

        dur = int((time.monotonic() - started) * 1000)
        logger.log(self._level, "end %s id=%s ms=%s response=%s", event_type, event_id, dur, type(res).__name__)
        return res
