from __future__ import annotations

from enum import Enum


class PublishStrategy(str, Enum):
    """
    How one notification is delivered to its handlers.

    - SEQUENTIAL_CONTINUE: one at a time, every failure collected, raised together at the end
    - SEQUENTIAL_STOP: one at a time, first failure aborts the rest
    - CONCURRENT_WAIT: all started together, caller waits, failures raised together
    - CONCURRENT_NO_WAIT: all started together, caller never waits, failures discarded
    """
    SEQUENTIAL_CONTINUE = "sequential_continue"
    SEQUENTIAL_STOP = "sequential_stop"
    CONCURRENT_WAIT = "concurrent_wait"
    CONCURRENT_NO_WAIT = "concurrent_no_wait"
