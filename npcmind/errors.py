"""Error taxonomy for the agent core.

No error in this package is fatal to the host process. Each class marks the
layer it came from so callers can decide how far it may travel:

- TransportError: network/HTTP failure talking to the reasoning or sentiment
  service. Caught by the agent runtime; the turn becomes a no-op.
- ProtocolError: a response did not have the expected shape. Normalized to
  ``None`` (reasoning) or a neutral label (sentiment).
- ToolValidationError: unknown tool or bad arguments. Only that tool call is
  skipped.
- ToolExecutionError: a tool raised while mutating the world. Logged per tool.
- PersistenceError: storage read/write failure. In-memory state stays
  authoritative for the session.
"""

from __future__ import annotations


class NPCMindError(Exception):
    """Base class for every error raised by npcmind."""


class TransportError(NPCMindError):
    """Raised when an HTTP request to an external service fails."""

    def __init__(self, message: str, *, status: int | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class ProtocolError(NPCMindError):
    """Raised when a service response is missing expected fields."""


class CandidatesShapeError(ProtocolError):
    """Raised when a ``candidates`` response cannot be normalized."""


class DirectShapeError(ProtocolError):
    """Raised when a direct ``{text, toolCalls}`` response cannot be normalized."""


class ToolValidationError(NPCMindError):
    """Raised when a tool call fails validation before dispatch."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class UnknownToolError(ToolValidationError):
    """Raised when a tool call names a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, "unknown tool")


class ToolExecutionError(NPCMindError):
    """Raised when a tool fails while acting on the world."""

    def __init__(self, tool_name: str, underlying: Exception) -> None:
        super().__init__(f"{tool_name} failed: {underlying}")
        self.tool_name = tool_name
        self.underlying = underlying


class PersistenceError(NPCMindError):
    """Raised when a storage backend cannot read or write a record."""


__all__ = [
    "NPCMindError",
    "TransportError",
    "ProtocolError",
    "CandidatesShapeError",
    "DirectShapeError",
    "ToolValidationError",
    "UnknownToolError",
    "ToolExecutionError",
    "PersistenceError",
]
