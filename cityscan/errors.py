"""Typed error categories for cityscan.

Every exported operation fails with one of these. Errors carry human text in
``message`` and machine-readable fields in ``metadata`` so adapters can fold
them into a Result instead of aborting sibling runs.
"""

from typing import Any


class CityscanError(Exception):
    """Base class for all cityscan errors."""

    category = "error"

    def __init__(self, message: str, metadata: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.metadata = dict(metadata or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialize for embedding in Result metadata."""
        return {
            "type": self.category,
            "message": self.message,
            "metadata": dict(self.metadata),
        }


class ToolUnavailableError(CityscanError):
    """Version probe failed. The adapter is skipped, never fatal."""

    category = "tool_unavailable"


class UnsafeArgumentError(CityscanError):
    """An argv element failed the whitelist. Never retried."""

    category = "unsafe_argument"


class ToolTimeoutError(CityscanError, TimeoutError):
    """Hard deadline expired before the tool exited."""

    category = "timeout"


class OutputExceededError(CityscanError):
    """stdout or stderr grew past the configured byte budget."""

    category = "output_exceeded"


class SchemaError(CityscanError, ValueError):
    """A unified record violates a model invariant."""

    category = "schema"


class ParseError(CityscanError):
    """Tool output could not be decoded."""

    category = "parse"


class CancelledError(CityscanError):
    """The caller's cancellation token fired."""

    category = "cancelled"


__all__ = [
    "CityscanError",
    "ToolUnavailableError",
    "UnsafeArgumentError",
    "ToolTimeoutError",
    "OutputExceededError",
    "SchemaError",
    "ParseError",
    "CancelledError",
]
