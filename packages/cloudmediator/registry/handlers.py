from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Tuple

from ..contracts.errors import DispatchError
from ..contracts.messages import type_name
from ..handlers.invokers import NotificationInvoker, RequestInvoker

logger = logging.getLogger(__name__)


class HandlerNotFound(DispatchError):
    """
    Configuration error: nothing is registered for a request type.
    Retrying will not help.
    """

    def __init__(self, request_type: type) -> None:
        super().__init__(
            f"No handler registered for request type '{type_name(request_type)}'. "
            f"Register one on the MediatorBuilder before build()."
        )
        self.request_type = request_type


class RegistryFrozen(DispatchError):
    pass


class HandlerRegistry:
    """
    Compiled cache: message type -> pre-built invoker(s).

    - written during setup only, under a lock
    - frozen before dispatch starts; reads never lock
    - request types: first registration wins
    - notification types: append-only, registration order kept
    """

    def __init__(self) -> None:
        self._requests: Dict[type, RequestInvoker] = {}
        self._notifications: Dict[type, Tuple[NotificationInvoker, ...]] = {}
        self._lock = threading.Lock()
        self._frozen = False

    def register_request_invoker(self, request_type: type, builder: Callable[[], RequestInvoker]) -> bool:
        """
        Returns False (and builds nothing) when the type already has an invoker.
        """
        with self._lock:
            self._ensure_writable()
            if request_type in self._requests:
                logger.debug("Request type %s already has a handler, ignoring", type_name(request_type))
                return False

            self._requests[request_type] = builder()

        logger.debug("Registered request invoker for %s", type_name(request_type))
        return True

    def register_notification_invoker(
        self,
        notification_type: type,
        builder: Callable[[], NotificationInvoker],
    ) -> None:
        with self._lock:
            self._ensure_writable()
            invoker = builder()
            # copy-on-write so readers always see a complete tuple
            self._notifications[notification_type] = self._notifications.get(notification_type, ()) + (invoker,)

        logger.debug("Registered %r", invoker)

    def lookup_request(self, request_type: type) -> RequestInvoker:
        invoker = self._requests.get(request_type)
        if invoker is None:
            raise HandlerNotFound(request_type)
        return invoker

    def lookup_notifications(self, notification_type: type) -> Tuple[NotificationInvoker, ...]:
        return self._notifications.get(notification_type, ())

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def request_types(self) -> Tuple[type, ...]:
        return tuple(self._requests)

    def notification_types(self) -> Tuple[type, ...]:
        return tuple(self._notifications)

    def _ensure_writable(self) -> None:
        if self._frozen:
            raise RegistryFrozen("Handler registry is frozen; register handlers before dispatching")
