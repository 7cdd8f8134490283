from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol


@dataclass(frozen=True)
class EnvelopeExtensions:
    # correlation to the dispatch call chain this one belongs to
    correlation_id: Optional[str] = None
    causation_id: Optional[str] = None

    user_id: Optional[str] = None
    tenant_id: Optional[str] = None

    # arbitrary, safe metadata (no secrets)
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Envelope:
    """
    Per-call metadata (CloudEvents attribute set) for one send/publish.

    Created fresh for every dispatch call, visible to handler code through
    `current_envelope()` for the duration of that call, then discarded.
    """
    id: str
    source: str
    type: str

    time: Optional[datetime] = None
    subject: Optional[str] = None

    extensions: EnvelopeExtensions = field(default_factory=EnvelopeExtensions)

    def with_extensions(self, **changes: Any) -> "Envelope":
        return replace(self, extensions=replace(self.extensions, **changes))


class EnvelopeFactory(Protocol):
    """
    Produces the envelope for a payload. The engine forwards the result
    into ambient context and never inspects it.
    """

    def create_envelope(self, payload: Any) -> Envelope:
        ...
