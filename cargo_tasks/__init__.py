"""Build-task orchestration for Cargo workspaces."""

from .cli import main
from .errors import ConfigurationError

__all__ = ["ConfigurationError", "main"]
