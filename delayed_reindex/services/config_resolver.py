"""Per resource type strategy resolution (type override, else global default)."""
from __future__ import annotations

import threading
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from delayed_reindex.config import DELAYED_REINDEX_SETTINGS
from delayed_reindex.errors import ConfigurationError
from delayed_reindex.models.schemas import StrategyConfig
from delayed_reindex.services.timechunks import type_name

STRATEGY_FIELDS = ("latency", "margin", "ttl", "queue")


class ConfigResolver:
    """Resolve ``StrategyConfig`` for a resource type.

    Defaults and overrides are snapshotted at construction, so a resolver hands
    out the same immutable config for a type for its whole lifetime.
    """

    def __init__(
        self,
        defaults: Optional[Mapping[str, Any]] = None,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        source = DELAYED_REINDEX_SETTINGS if defaults is None else defaults
        self._defaults = {k: source[k] for k in STRATEGY_FIELDS if k in source}
        raw_overrides = DELAYED_REINDEX_SETTINGS.get("type_overrides", {}) if overrides is None else overrides
        self._overrides = {type_name(t): dict(v or {}) for t, v in (raw_overrides or {}).items()}
        for resource_type, values in self._overrides.items():
            unknown = set(values) - set(STRATEGY_FIELDS)
            if unknown:
                raise ConfigurationError(f"Unknown strategy settings for {resource_type}: {sorted(unknown)}")
        self._cache: dict[str, StrategyConfig] = {}
        self._lock = threading.Lock()
        # Fail fast on bad global defaults rather than on the first postpone
        self._validate(None, self._defaults)

    def resolve(self, resource_type: Any) -> StrategyConfig:
        resource_type = type_name(resource_type)
        cached = self._cache.get(resource_type)
        if cached is not None:
            return cached
        values = {**self._defaults, **self._overrides.get(resource_type, {})}
        config = self._validate(resource_type, values)
        with self._lock:
            return self._cache.setdefault(resource_type, config)

    @staticmethod
    def _validate(resource_type: Optional[str], values: Mapping[str, Any]) -> StrategyConfig:
        try:
            return StrategyConfig(**values)
        except ValidationError as e:
            target = resource_type or "global defaults"
            raise ConfigurationError(f"Invalid delayed reindex settings for {target}: {e}") from e


__all__ = ["ConfigResolver", "STRATEGY_FIELDS"]
