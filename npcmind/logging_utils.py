"""Logging utilities for npcmind agents.

Provides color-coded output to distinguish deterministic work, reasoning-service
calls, and failures. Every agent-scoped line carries an ``[NPC <id>]`` prefix so
interleaved output from concurrent agents stays readable.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (memory, tools, world)
    YELLOW = "\033[93m"    # Reasoning/sentiment service calls
    RED = "\033[91m"       # Errors and retries
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_LLM = "[AI]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if NPCMIND_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("NPCMIND_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def agent_prefix(agent_id: str | None) -> str:
    """Return the ``[NPC <id>]`` prefix used by agent-scoped log lines."""
    return f"[NPC {agent_id}] " if agent_id is not None else ""


def log_deterministic(message: str, agent_id: str | None = None) -> None:
    """Log a deterministic operation (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {agent_prefix(agent_id)}{message}", Color.BLUE))


def log_llm(message: str, agent_id: str | None = None) -> None:
    """Log a reasoning-service operation (yellow)."""
    print(colored(f"{LOG_TAG_LLM} {agent_prefix(agent_id)}{message}", Color.YELLOW))


def log_error(message: str, agent_id: str | None = None) -> None:
    """Log an error or retry (red)."""
    print(colored(f"{LOG_TAG_ERROR} {agent_prefix(agent_id)}{message}", Color.RED))


def log_success(message: str, agent_id: str | None = None) -> None:
    """Log a success (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {agent_prefix(agent_id)}{message}", Color.GREEN))


def log_info(message: str, agent_id: str | None = None) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {agent_prefix(agent_id)}{message}", Color.CYAN))


def debug_llm_enabled() -> bool:
    """Return True when DEBUG_LLM asks for prompt/response dumps."""
    return os.getenv("DEBUG_LLM", "").lower() in ("1", "true", "yes")


def preview(text: str, limit: int = 80) -> str:
    """Shorten text for single-line log output."""
    return text if len(text) <= limit else text[: limit - 3] + "..."
