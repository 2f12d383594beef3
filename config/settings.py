"""Middleware settings."""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Tutor middleware configuration settings."""

    # Conversation memory
    max_turns: int = 100
    recent_window_size: int = 20
    topic_count: int = 5

    # Retrieval settings
    relevance_max_results: int = 5

    # Learning style
    dominant_style_threshold: float = 0.3

    # Validation settings
    math_epsilon: float = 1e-9
    fallback_threshold: int = 2  # Corrections needed before the fallback menu replaces the reply
    min_turns_for_rejection: int = 2
    fuzzy_match_threshold: float = 90.0  # rapidfuzz ratio, 0-100

    # Rule tables (defaults to data/middleware_policy.yaml)
    policy_path: Optional[str] = None

    # Opt-in profile persistence
    profile_db_path: str = "data/profiles.db"

    # LLM Provider settings
    llm_provider: str = "openai"  # "openai" or "anthropic"
    llm_model: Optional[str] = None

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load provider and API keys from environment if not provided
        if data.get("llm_provider") is None and os.environ.get("TUTOR_LLM_PROVIDER"):
            data["llm_provider"] = os.environ["TUTOR_LLM_PROVIDER"]

        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        super().__init__(**{k: v for k, v in data.items() if v is not None})

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
