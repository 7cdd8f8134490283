from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Callable, List, Optional, Tuple, get_args, get_origin

from .config.loader import MediatorConfig
from .contracts.envelope import EnvelopeFactory
from .contracts.messages import (
    NotificationHandler,
    PipelineBehavior,
    RequestHandler,
    RequestPostProcessor,
    RequestPreProcessor,
    type_name,
)
from .handlers.invokers import build_notification_invoker, build_request_invoker
from .mediator import Mediator
from .registry.handlers import HandlerRegistry
from .registry.services import Lifetime, ServiceContainer, ServiceResolver, capability_key
from .runtime.envelopes import CloudEventEnvelopeFactory

logger = logging.getLogger(__name__)

_STAGES = (PipelineBehavior, RequestPreProcessor, RequestPostProcessor)


@dataclass(frozen=True)
class MediatorApp:
    """
    Built dispatch runtime (no IO/framework dependencies).
    """
    config: MediatorConfig
    container: ServiceContainer
    registry: HandlerRegistry
    mediator: Mediator

    def scoped(self) -> Mediator:
        """
        Mediator resolving scoped instances from a fresh scope.
        """
        return self.mediator.with_resolver(self.container.create_scope())


def _bound_types(cls: type, base: type) -> List[type]:
    """
    First type argument of every `base[...]` in the class hierarchy.
    Unbound type variables come back as `object`.
    Reflection happens here, at setup, never on the dispatch path.
    """
    found: List[type] = []
    for klass in cls.__mro__:
        for orig in klass.__dict__.get("__orig_bases__", ()):
            origin = get_origin(orig)
            if not (inspect.isclass(origin) and issubclass(origin, base)):
                continue
            args = get_args(orig)
            bound = args[0] if args and inspect.isclass(args[0]) else object
            if bound not in found:
                found.append(bound)
        if found:
            break
    return found


def _routable(cls: type, base: type) -> bool:
    bound = _bound_types(cls, base)
    return bool(bound) and object not in bound


# method each contract requires its implementations to override
_ENTRY_POINTS = {
    RequestHandler: "handle",
    NotificationHandler: "handle",
    PipelineBehavior: "handle",
    RequestPreProcessor: "process",
    RequestPostProcessor: "process",
}


def _buildable(cls: type, base: type) -> bool:
    """
    True when a scanned class can serve as `base` with no further setup:
    it overrides the entry point and needs no constructor arguments.
    """
    method = _ENTRY_POINTS[base]
    if getattr(cls, method, None) is getattr(base, method):
        return False

    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return True
    return all(
        p.default is not p.empty or p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        for p in signature.parameters.values()
    )


class MediatorBuilder:
    """
    Collects handler registrations, then compiles them into a frozen registry.

    Handlers use `config.handler_lifetime`; behaviors and processors are
    transient, or singletons when registered as instances.
    """

    def __init__(
        self,
        config: MediatorConfig | None = None,
        *,
        container: ServiceContainer | None = None,
        envelopes: EnvelopeFactory | None = None,
    ) -> None:
        self.config = config or MediatorConfig()
        self.container = container or ServiceContainer()
        self._envelopes = envelopes
        # (message type, handler class) in registration order
        self._requests: List[Tuple[type, type]] = []
        self._notifications: List[Tuple[type, type]] = []

    def add_request_handler(
        self,
        handler_cls: type,
        request_type: type | None = None,
        *,
        provider: Callable[[ServiceResolver], Any] | None = None,
        lifetime: Lifetime | None = None,
    ) -> "MediatorBuilder":
        targets = self._targets(handler_cls, RequestHandler, request_type)
        self._add_handler_service(handler_cls, provider, lifetime)
        for target in targets:
            self._requests.append((target, handler_cls))
        return self

    def add_notification_handler(
        self,
        handler_cls: type,
        notification_type: type | None = None,
        *,
        provider: Callable[[ServiceResolver], Any] | None = None,
        lifetime: Lifetime | None = None,
    ) -> "MediatorBuilder":
        targets = self._targets(handler_cls, NotificationHandler, notification_type)
        self._add_handler_service(handler_cls, provider, lifetime)
        for target in targets:
            self._notifications.append((target, handler_cls))
        return self

    def add_behavior(
        self,
        behavior: Any,
        request_type: type | None = None,
        *,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> "MediatorBuilder":
        """
        Class or instance. Without request_type it applies to what the
        generic base says; an unbound type variable means every request.
        """
        return self._add_stage(PipelineBehavior, behavior, request_type, lifetime)

    def add_pre_processor(
        self,
        processor: Any,
        request_type: type | None = None,
        *,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> "MediatorBuilder":
        return self._add_stage(RequestPreProcessor, processor, request_type, lifetime)

    def add_post_processor(
        self,
        processor: Any,
        request_type: type | None = None,
        *,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> "MediatorBuilder":
        return self._add_stage(RequestPostProcessor, processor, request_type, lifetime)

    def add_handlers(self, *classes: type) -> "MediatorBuilder":
        for cls in classes:
            if not self._register_class(cls, strict=True):
                raise TypeError(f"{type_name(cls)} is not a handler, behavior or processor")
        return self

    def add_handlers_from_module(self, module: ModuleType) -> "MediatorBuilder":
        """
        Register every concrete handler/behavior/processor class defined in
        the module, in definition order. Classes that keep the base `handle`/
        `process` or need constructor arguments are skipped; register those
        explicitly (with a provider or an instance).
        """
        count = 0
        for obj in list(vars(module).values()):
            if inspect.isclass(obj) and obj.__module__ == module.__name__:
                if self._register_class(obj, strict=False):
                    count += 1

        logger.debug("Registered %s classes from module %s", count, module.__name__)
        return self

    def build(self) -> MediatorApp:
        registry = HandlerRegistry()

        for request_type, handler_cls in self._requests:
            registry.register_request_invoker(
                request_type,
                lambda rt=request_type, h=handler_cls: build_request_invoker(rt, h),
            )

        for notification_type, handler_cls in self._notifications:
            registry.register_notification_invoker(
                notification_type,
                lambda nt=notification_type, h=handler_cls: build_notification_invoker(nt, h),
            )

        registry.freeze()

        mediator = Mediator(
            registry=registry,
            resolver=self.container,
            envelopes=self._envelopes or CloudEventEnvelopeFactory(self.config),
            config=self.config,
        )
        self.container.add_instance(Mediator, mediator)

        logger.debug(
            "Mediator built: %s request types, %s notification types",
            len(registry.request_types()),
            len(registry.notification_types()),
        )
        return MediatorApp(config=self.config, container=self.container, registry=registry, mediator=mediator)

    def _register_class(self, cls: type, *, strict: bool) -> bool:
        if inspect.isabstract(cls) or cls in (RequestHandler, NotificationHandler) + _STAGES:
            return False

        registered = False
        if issubclass(cls, RequestHandler):
            if strict or (_routable(cls, RequestHandler) and _buildable(cls, RequestHandler)):
                self.add_request_handler(cls)
                registered = True
        if issubclass(cls, NotificationHandler):
            if strict or (_routable(cls, NotificationHandler) and _buildable(cls, NotificationHandler)):
                self.add_notification_handler(cls)
                registered = True
        for stage in _STAGES:
            if issubclass(cls, stage) and (strict or _buildable(cls, stage)):
                self._add_stage(stage, cls, None, Lifetime.TRANSIENT)
                registered = True
        return registered

    def _targets(self, handler_cls: type, base: type, explicit: Optional[type]) -> List[type]:
        if not inspect.isclass(handler_cls):
            raise TypeError(f"Handler must be a class, got {handler_cls!r}")
        if explicit is not None:
            return [explicit]

        targets = _bound_types(handler_cls, base)
        if not targets or object in targets:
            raise TypeError(
                f"Cannot infer the message type handled by {type_name(handler_cls)}; "
                f"subclass {base.__name__}[...] with a concrete type or pass it explicitly"
            )
        return targets

    def _add_handler_service(
        self,
        handler_cls: type,
        provider: Optional[Callable[[ServiceResolver], Any]],
        lifetime: Optional[Lifetime],
    ) -> None:
        if provider is None and self.container.is_registered(handler_cls):
            return
        self.container.add(handler_cls, provider or handler_cls, lifetime=lifetime or self.config.handler_lifetime)

    def _add_stage(self, stage: type, obj: Any, request_type: Optional[type], lifetime: Lifetime) -> "MediatorBuilder":
        cls = obj if inspect.isclass(obj) else type(obj)
        if request_type is None:
            bound = _bound_types(cls, stage)
            request_type = bound[0] if bound else object

        key = capability_key(stage, request_type)
        if inspect.isclass(obj):
            self.container.add(key, obj, lifetime=lifetime)
        else:
            self.container.add_instance(key, obj)
        return self


def build_mediator(*classes: type, config: MediatorConfig | None = None) -> MediatorApp:
    """
    Build a mediator from handler/behavior/processor classes.
    Finer control (instances, providers, lifetimes) goes through MediatorBuilder.
    """
    return MediatorBuilder(config).add_handlers(*classes).build()
