from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

from jinja2 import Environment, StrictUndefined, Template
from jinja2.exceptions import TemplateError

from ..config.loader import MediatorConfig
from ..contracts.envelope import Envelope, EnvelopeExtensions
from ..contracts.errors import DispatchError
from ..contracts.messages import Notification, Request
from .context import current_envelope, new_id, now_utc

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=type)

_ATTRIBUTE = "__cloud_event__"


class EnvelopeError(DispatchError):
    pass


@dataclass(frozen=True)
class CloudEventAttributes:
    type: Optional[str] = None
    source: Optional[str] = None
    subject: Optional[str] = None


def cloud_event(
    *,
    type: str | None = None,
    source: str | None = None,
    subject: str | None = None,
) -> Callable[[C], C]:
    """
    Override envelope metadata for one class (subclasses do not inherit it).

    `subject` is a Jinja2 template rendered against the payload fields:

        @cloud_event(type="com.example.order.created", subject="/orders/{{ order_id }}")
        @dataclass(frozen=True)
        class OrderCreated(Notification):
            order_id: int
    """
    def decorate(cls: C) -> C:
        setattr(cls, _ATTRIBUTE, CloudEventAttributes(type=type, source=source, subject=subject))
        return cls

    return decorate


@dataclass(frozen=True)
class EnvelopeMetadata:
    type: str
    source: str
    subject: Optional[Template] = None


def _category(cls: type) -> str:
    if issubclass(cls, Notification):
        return "events"
    if issubclass(cls, Request):
        if cls.__name__.lower().endswith("query"):
            return "queries"
        return "commands"
    return "messages"


def default_type_name(cls: type) -> str:
    root = (cls.__module__ or "app").split(".")[0].lower().replace("_", "-")
    return f"com.{root}.{_category(cls)}.{cls.__name__.lower()}"


def _template_vars(payload: Any) -> Mapping[str, Any]:
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        variables = {f.name: getattr(payload, f.name) for f in dataclasses.fields(payload)}
    else:
        variables = dict(getattr(payload, "__dict__", {}))
    variables["payload"] = payload
    return variables


class CloudEventEnvelopeFactory:
    """
    Default envelope factory.

    - metadata is derived once per runtime type and cached
    - extensions are chained from the ambient envelope (nested dispatch)
    """

    def __init__(self, config: MediatorConfig | None = None) -> None:
        self._config = config or MediatorConfig()
        self._metadata: Dict[type, EnvelopeMetadata] = {}
        self._lock = threading.Lock()
        self._env = Environment(undefined=StrictUndefined, autoescape=False)

    def create_envelope(self, payload: Any) -> Envelope:
        metadata = self.metadata_for(type(payload))

        subject: Optional[str] = None
        if metadata.subject is not None:
            try:
                subject = metadata.subject.render(**_template_vars(payload))
            except TemplateError as exc:
                raise EnvelopeError(
                    f"Cannot render envelope subject for {type(payload).__name__}: {exc}"
                ) from exc

        return Envelope(
            id=new_id(),
            source=metadata.source,
            type=metadata.type,
            time=now_utc(),
            subject=subject,
            extensions=self._extensions(),
        )

    def metadata_for(self, cls: type) -> EnvelopeMetadata:
        cached = self._metadata.get(cls)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._metadata.get(cls)
            if cached is None:
                cached = self._build_metadata(cls)
                self._metadata[cls] = cached
        return cached

    def _build_metadata(self, cls: type) -> EnvelopeMetadata:
        attrs = cls.__dict__.get(_ATTRIBUTE) or CloudEventAttributes()

        if attrs.type:
            event_type = attrs.type
        elif self._config.type_name_convention is not None:
            event_type = self._config.type_name_convention(cls)
        else:
            event_type = default_type_name(cls)

        subject = None
        if attrs.subject:
            try:
                subject = self._env.from_string(attrs.subject)
            except TemplateError as exc:
                raise EnvelopeError(f"Invalid subject template on {cls.__name__}: {exc}") from exc

        logger.debug("Envelope metadata for %s: type=%s", cls.__name__, event_type)
        return EnvelopeMetadata(
            type=event_type,
            source=attrs.source or self._config.default_source,
            subject=subject,
        )

    @staticmethod
    def _extensions() -> EnvelopeExtensions:
        parent = current_envelope()
        if parent is None:
            return EnvelopeExtensions()

        return EnvelopeExtensions(
            correlation_id=parent.extensions.correlation_id or parent.id,
            causation_id=parent.id,
            user_id=parent.extensions.user_id,
            tenant_id=parent.extensions.tenant_id,
        )
