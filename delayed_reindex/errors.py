"""Exceptions raised by the delayed reindex core."""
from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid tunable (e.g. non-positive latency). Raised before any store call."""


class RegistrationContentionError(RuntimeError):
    """The optimistic registrar gave up after too many concurrent modifications."""

    def __init__(self, bucket_key: str, attempts: int):
        super().__init__(f"Could not register {bucket_key} after {attempts} attempts")
        self.bucket_key = bucket_key
        self.attempts = attempts


__all__ = ["ConfigurationError", "RegistrationContentionError"]
