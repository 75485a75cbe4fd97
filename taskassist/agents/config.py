"""
Agent Configuration - Centralized tuning for the assistant engine.
"""
import os
from dataclasses import dataclass


@dataclass
class AgentConfig:
    """Configuration for the deterministic assistant pipeline."""

    # Date windows
    DUE_SOON_DAYS: int = 3  # "due soon" = today .. today + N days (inclusive)

    # Bulk task generation
    DEFAULT_GENERATION_COUNT: int = 3
    MAX_GENERATION_COUNT: int = 10  # Never above GENERATION_COUNT_LIMIT in command_schema

    # Answer formatting
    LIST_DETAIL_LIMIT: int = 10  # Tasks rendered with full detail lines before IDs-only tail
    FALLBACK_ANSWER_MAX_CHARS: int = 800

    # Conversation context
    REFERENT_HISTORY_WINDOW: int = 10  # Only the last N turns are scanned for referents

    # LLM fallback
    ENABLE_LLM_FALLBACK: bool = True

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load configuration from environment variables."""
        return cls(
            DUE_SOON_DAYS=int(os.getenv("ASSISTANT_DUE_SOON_DAYS", "3")),
            DEFAULT_GENERATION_COUNT=int(os.getenv("ASSISTANT_DEFAULT_GENERATION_COUNT", "3")),
            LIST_DETAIL_LIMIT=int(os.getenv("ASSISTANT_LIST_DETAIL_LIMIT", "10")),
            FALLBACK_ANSWER_MAX_CHARS=int(os.getenv("ASSISTANT_FALLBACK_ANSWER_MAX_CHARS", "800")),
            REFERENT_HISTORY_WINDOW=int(os.getenv("ASSISTANT_REFERENT_HISTORY_WINDOW", "10")),
            ENABLE_LLM_FALLBACK=os.getenv("ASSISTANT_ENABLE_LLM_FALLBACK", "true").lower() == "true",
        )


# Global config instance
agent_config = AgentConfig.from_env()
