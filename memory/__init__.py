"""Conversation memory for the tutor middleware."""

from .keywords import extract_keywords, tokenize, relative_age
from .store import ConversationMemoryStore
from .registry import ConversationSession, ConversationRegistry
from .profile_store import ProfileStore, InMemoryProfileStore, SQLiteProfileStore

__all__ = [
    "extract_keywords",
    "tokenize",
    "relative_age",
    "ConversationMemoryStore",
    "ConversationSession",
    "ConversationRegistry",
    "ProfileStore",
    "InMemoryProfileStore",
    "SQLiteProfileStore",
]
