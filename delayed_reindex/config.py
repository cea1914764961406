"""Core configuration & tunables for delayed reindexing.

Everything that may need tuning per deployment (bucketing window, job margin,
key TTLs, queue naming, Redis connectivity) is centralized here. Values can be
overridden through environment variables; tests monkeypatch the dicts directly.
Per resource type overrides live under ``DELAYED_REINDEX_SETTINGS["type_overrides"]``
and are resolved by ``delayed_reindex.services.config_resolver``.
"""
from __future__ import annotations

import os
from typing import Any


def _env_int(name: str, default: int) -> int:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return int(raw)


# --------------------------- Delayed reindexing --------------------------- #
DELAYED_REINDEX_SETTINGS: dict[str, Any] = {
	# Width of a bucketing window in seconds. Must be a positive integer.
	"latency": _env_int("DELAYED_REINDEX_LATENCY", 10),
	# Extra delay after the bucket boundary before the job may run.
	"margin": _env_int("DELAYED_REINDEX_MARGIN", 2),
	# Expiry of bucket sets and the discovery index, refreshed on each write.
	"ttl": _env_int("DELAYED_REINDEX_TTL", 60 * 60 * 24),
	"queue": os.getenv("DELAYED_REINDEX_QUEUE", "chewy"),
	"key_prefix": os.getenv("DELAYED_REINDEX_KEY_PREFIX", "chewy:delayed_sidekiq"),
	# "lua" (server-side script) or "watch" (WATCH/MULTI/EXEC, for EVAL-less deployments)
	"registrar": os.getenv("DELAYED_REINDEX_REGISTRAR", "lua"),
	"registrar_max_watch_retries": 50,
	# resource type -> partial {latency, margin, ttl, queue}
	"type_overrides": {},
}

# --------------------------------- Queue ---------------------------------- #
QUEUE_SETTINGS: dict[str, Any] = {
	"warn_depth": 1000,
	"max_in_memory": 5000,
	"use_redis": os.getenv("DELAYED_REINDEX_QUEUE_USE_REDIS", "").lower() in ("true", "1", "yes"),
	"redis_url": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
	"redis_key_prefix": "delayed_reindex:queue",
	"redis_health_check_timeout": 2.0,
}

# --------------------------------- Redis ---------------------------------- #
REDIS_SETTINGS: dict[str, Any] = {
	"url": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
	"socket_connect_timeout": 2.0,
}

# -------------------------------- Logging --------------------------------- #
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE: str | None = os.getenv("LOG_FILE") or None

__all__ = [
	"DELAYED_REINDEX_SETTINGS",
	"QUEUE_SETTINGS",
	"REDIS_SETTINGS",
	"LOG_LEVEL",
	"LOG_FILE",
]
