"""
npcmind Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Reasoning service (function-calling generateContent endpoint)
    REASONING_BASE_URL: str = os.getenv(
        "REASONING_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/models"
    )
    REASONING_MODEL: str = os.getenv("REASONING_MODEL", "gemini-2.0-flash-lite")
    REASONING_API_KEY: str | None = os.getenv("REASONING_API_KEY")
    # "query" appends ?key=<credential>, "bearer" sends an Authorization header
    REASONING_AUTH_MODE: str = os.getenv("REASONING_AUTH_MODE", "query")
    REASONING_TIMEOUT_SECONDS: float = float(os.getenv("REASONING_TIMEOUT_SECONDS", "30"))
    REASONING_MAX_ATTEMPTS: int = int(os.getenv("REASONING_MAX_ATTEMPTS", "2"))

    # Sentiment service (OpenAI-compatible chat completions)
    SENTIMENT_BASE_URL: str = os.getenv("SENTIMENT_BASE_URL", "https://api.groq.com/openai/v1")
    SENTIMENT_MODEL: str = os.getenv("SENTIMENT_MODEL", "llama-3.1-8b-instant")
    # Without a key the classifier runs on keyword heuristics only
    SENTIMENT_API_KEY: str | None = os.getenv("SENTIMENT_API_KEY")
    SENTIMENT_TIMEOUT_SECONDS: float = float(os.getenv("SENTIMENT_TIMEOUT_SECONDS", "15"))

    # Memory persistence
    MEMORY_BACKEND: str = os.getenv("MEMORY_BACKEND", "json")
    MEMORY_DIR: Path = Path(os.getenv("MEMORY_DIR", "npc_memory"))
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/npcmind")

    # Tools
    TRAVEL_DELAY_SECONDS: float = float(os.getenv("TRAVEL_DELAY_SECONDS", "2.0"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    SUPPORTED_BACKENDS = ("memory", "json", "postgres")
    SUPPORTED_AUTH_MODES = ("query", "bearer")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.MEMORY_BACKEND not in cls.SUPPORTED_BACKENDS:
            raise ValueError(
                f"MEMORY_BACKEND must be one of {', '.join(cls.SUPPORTED_BACKENDS)} "
                f"(got '{cls.MEMORY_BACKEND}')"
            )

        if cls.REASONING_AUTH_MODE not in cls.SUPPORTED_AUTH_MODES:
            raise ValueError(
                f"REASONING_AUTH_MODE must be 'query' or 'bearer' (got '{cls.REASONING_AUTH_MODE}')"
            )

        if not cls.REASONING_API_KEY:
            raise ValueError(
                "REASONING_API_KEY is required to call the reasoning service. "
                "Set it in the environment or in a .env file."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "npcmind Configuration:",
            f"  Reasoning: {cls.REASONING_MODEL} @ {cls.REASONING_BASE_URL} (auth={cls.REASONING_AUTH_MODE})",
            f"  Sentiment: {cls.SENTIMENT_MODEL} @ {cls.SENTIMENT_BASE_URL}"
            + ("" if cls.SENTIMENT_API_KEY else " (heuristics only)"),
            f"  Memory backend: {cls.MEMORY_BACKEND}",
            f"  Travel delay: {cls.TRAVEL_DELAY_SECONDS}s",
            f"  Log level: {cls.LOG_LEVEL}",
        ]
        return "\n".join(lines)
