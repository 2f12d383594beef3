"""Conversation memory schemas."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Author of a turn."""
    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """A single message in a conversation. Immutable once appended."""
    model_config = ConfigDict(frozen=True)

    turn_id: str
    sequence: int = 0  # Position in the conversation, assigned by the store
    role: Role
    text: str
    created_at: datetime = Field(default_factory=datetime.now)
    keywords: frozenset[str] = Field(default_factory=frozenset)


class TopicRecord(BaseModel):
    """Frequency and recency of a keyword across the conversation."""
    topic: str
    mention_count: int = 0
    last_mention_at: datetime
    weight: float = 0.0
    sample: str = ""  # Start of the turn that introduced the topic


class TaggedTurn(BaseModel):
    """A turn with its relative-age label."""
    turn: Turn
    age_label: str


class ScoredTurn(BaseModel):
    """A turn ranked by relevance to a query."""
    turn: Turn
    score: float
    matched_keywords: list[str] = Field(default_factory=list)
