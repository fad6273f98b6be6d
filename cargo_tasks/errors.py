"""Exception types shared across the orchestration layer."""
from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised before any task runs when the requested work cannot be planned."""


__all__ = ["ConfigurationError"]
