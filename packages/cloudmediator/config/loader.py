from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Mapping, Optional

from ..events.types import PublishStrategy
from ..registry.services import Lifetime


@dataclass(frozen=True)
class MediatorConfig:
    # source attribute of envelopes whose class does not set one
    default_source: str = "cloudmediator"

    # cls -> envelope type; None keeps the com.{module}.{category}.{name} convention
    type_name_convention: Optional[Callable[[type], str]] = None

    handler_lifetime: Lifetime = Lifetime.TRANSIENT
    default_publish_strategy: PublishStrategy = PublishStrategy.SEQUENTIAL_CONTINUE

    @staticmethod
    def from_mapping(data: Mapping[str, Any]) -> "MediatorConfig":
        """
        Build config from a plain mapping (parsed file, env dump, etc).
        Enum fields accept their string values.
        """
        known = {f.name for f in fields(MediatorConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown mediator config keys: {', '.join(unknown)}")

        values = dict(data)
        if "handler_lifetime" in values:
            values["handler_lifetime"] = Lifetime(values["handler_lifetime"])
        if "default_publish_strategy" in values:
            values["default_publish_strategy"] = PublishStrategy(values["default_publish_strategy"])
        if "default_source" in values and not values["default_source"]:
            raise ValueError("default_source must be a non-empty string")

        return MediatorConfig(**values)
