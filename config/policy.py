"""Rule-table policy loaded from YAML."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).parent.parent / "data" / "middleware_policy.yaml"


class MiddlewarePolicy(BaseModel):
    """Lookup tables driving keyword extraction, recall detection, style and claim rules."""
    stop_words: list[str] = Field(default_factory=list)
    recall_triggers: list[str] = Field(default_factory=list)
    style_indicators: dict[str, list[str]] = Field(default_factory=dict)
    depth_indicators: dict[str, list[str]] = Field(default_factory=dict)
    memory_claim_patterns: list[str] = Field(default_factory=list)
    subject_terminators: list[str] = Field(default_factory=list)


def load_policy(path: Optional[str] = None) -> MiddlewarePolicy:
    """
    Load the middleware policy.

    Args:
        path: Path to a policy YAML file (defaults to data/middleware_policy.yaml)

    Returns:
        Parsed MiddlewarePolicy
    """
    return _load_policy(str(path or DEFAULT_POLICY_PATH))


@lru_cache(maxsize=8)
def _load_policy(path: str) -> MiddlewarePolicy:
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    policy = MiddlewarePolicy(**raw)
    logger.info(
        f"Loaded middleware policy from {path}: "
        f"{len(policy.stop_words)} stop words, "
        f"{len(policy.recall_triggers)} recall triggers, "
        f"{len(policy.memory_claim_patterns)} claim patterns"
    )
    return policy
