"""Tool catalog, argument validation, and dispatch."""

from .dispatcher import (
    LAMP_INTERACTION_RANGE,
    NO_ROCKS_MESSAGE,
    ROCK_PICKUP_RANGE,
    THROW_SPEED,
    ToolDispatcher,
    ToolOutcome,
    speech_duration_ms,
)
from .schemas import TOOL_CATALOG, TOOL_NAMES, ToolInvocation, validate_tool_call

__all__ = [
    "LAMP_INTERACTION_RANGE",
    "NO_ROCKS_MESSAGE",
    "ROCK_PICKUP_RANGE",
    "THROW_SPEED",
    "TOOL_CATALOG",
    "TOOL_NAMES",
    "ToolDispatcher",
    "ToolInvocation",
    "ToolOutcome",
    "speech_duration_ms",
    "validate_tool_call",
]
