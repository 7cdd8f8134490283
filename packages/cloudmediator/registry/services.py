from __future__ import annotations

import inspect
import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Protocol, Tuple, Type, TypeVar, cast

from ..contracts.errors import DispatchError
from ..contracts.messages import type_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A key is either a type (exact match) or a (capability, type) pair.
# Pair keys also match registrations made for a base class of the type.
ServiceKey = Hashable


class ServiceNotRegistered(DispatchError):
    def __init__(self, key: ServiceKey) -> None:
        super().__init__(f"No service registered for '{describe_key(key)}'")
        self.key = key


class Lifetime(str, Enum):
    TRANSIENT = "transient"
    SCOPED = "scoped"
    SINGLETON = "singleton"


class ServiceResolver(Protocol):
    """
    Capability lookup used by the dispatch engine.
    Core does not assume how instances are built or how long they live.
    """

    def resolve(self, key: ServiceKey) -> Any:
        ...

    def resolve_all(self, key: ServiceKey) -> List[Any]:
        ...


Provider = Callable[[ServiceResolver], Any]


@dataclass(frozen=True)
class ServiceBinding:
    """
    Binding: key -> provider + lifetime.
    Example: (PipelineBehavior, object) -> LoggingBehavior, transient
    """
    key: ServiceKey
    provider: Provider
    lifetime: Lifetime
    order: int


def capability_key(capability: type, target: type) -> Tuple[type, type]:
    return (capability, target)


def describe_key(key: ServiceKey) -> str:
    if isinstance(key, tuple):
        return "[" + ", ".join(type_name(k) for k in key) + "]"
    return type_name(key)


def _matches(requested: ServiceKey, registered: ServiceKey) -> bool:
    if requested == registered:
        return True
    if not (isinstance(requested, tuple) and isinstance(registered, tuple)):
        return False
    if len(requested) != 2 or len(registered) != 2 or requested[0] is not registered[0]:
        return False
    target, bound = requested[1], registered[1]
    return inspect.isclass(target) and inspect.isclass(bound) and issubclass(target, bound)


def _as_provider(provider: Any) -> Provider:
    if inspect.isclass(provider):
        cls = provider
        return lambda _resolver: cls()
    if not callable(provider):
        raise TypeError(f"Provider must be a class or a callable, got {provider!r}")
    return cast(Provider, provider)


class ServiceScope:
    """
    Resolution scope: scoped instances live as long as the scope object.
    """

    def __init__(self, container: "ServiceContainer") -> None:
        self._container = container
        self._instances: Dict[int, Any] = {}
        self._lock = threading.RLock()

    def resolve(self, key: ServiceKey) -> Any:
        bindings = self._container.bindings_for(key)
        if not bindings:
            raise ServiceNotRegistered(key)
        return self._instantiate(bindings[-1])

    def resolve_all(self, key: ServiceKey) -> List[Any]:
        return [self._instantiate(b) for b in self._container.bindings_for(key)]

    def _instantiate(self, binding: ServiceBinding) -> Any:
        if binding.lifetime is Lifetime.TRANSIENT:
            return binding.provider(self)

        if binding.lifetime is Lifetime.SINGLETON:
            return self._container._singleton(binding)

        with self._lock:
            if binding.order not in self._instances:
                self._instances[binding.order] = binding.provider(self)
            return self._instances[binding.order]


class ServiceContainer(ServiceScope):
    """
    In-memory capability lookup service.

    - registration order is preserved for resolve_all
    - resolve returns the last registration that matches
    - the container itself is the root scope
    """

    def __init__(self) -> None:
        super().__init__(self)
        self._bindings: List[ServiceBinding] = []
        self._match_cache: Dict[ServiceKey, Tuple[ServiceBinding, ...]] = {}
        self._singletons: Dict[int, Any] = {}
        self._singleton_lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._order = itertools.count()

    def add(self, key: ServiceKey, provider: Any, *, lifetime: Lifetime = Lifetime.TRANSIENT) -> ServiceBinding:
        """
        Register a provider: a class (instantiated without arguments) or a
        callable receiving the resolver of the current scope.
        """
        binding = ServiceBinding(
            key=key,
            provider=_as_provider(provider),
            lifetime=Lifetime(lifetime),
            order=next(self._order),
        )
        with self._write_lock:
            self._bindings.append(binding)
            self._match_cache = {}

        logger.debug("Registered service key=%s lifetime=%s", describe_key(key), binding.lifetime.value)
        return binding

    def add_instance(self, key: ServiceKey, instance: Any) -> ServiceBinding:
        binding = self.add(key, lambda _resolver: instance, lifetime=Lifetime.SINGLETON)
        with self._singleton_lock:
            self._singletons[binding.order] = instance
        return binding

    def is_registered(self, key: ServiceKey) -> bool:
        return bool(self.bindings_for(key))

    def bindings_for(self, key: ServiceKey) -> Tuple[ServiceBinding, ...]:
        cached = self._match_cache.get(key)
        if cached is not None:
            return cached

        with self._write_lock:
            found = tuple(b for b in self._bindings if _matches(key, b.key))
            self._match_cache[key] = found
        return found

    def create_scope(self) -> ServiceScope:
        return ServiceScope(self)

    def _singleton(self, binding: ServiceBinding) -> Any:
        with self._singleton_lock:
            if binding.order not in self._singletons:
                self._singletons[binding.order] = binding.provider(self)
            return self._singletons[binding.order]


def resolve_typed(resolver: ServiceResolver, proto: Type[T]) -> T:
    return cast(T, resolver.resolve(proto))
