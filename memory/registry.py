"""Per-conversation sessions: one owned store per conversation id."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from schemas.responses import TurnPhase
from .store import ConversationMemoryStore

logger = logging.getLogger(__name__)


class ConversationSession:
    """Everything the middleware keeps for one live conversation."""

    def __init__(self, conversation_id: str, store: ConversationMemoryStore, style: Any = None):
        self.conversation_id = conversation_id
        self.store = store
        self.style = style
        self.lock = asyncio.Lock()
        self.phase = TurnPhase.IDLE
        self.profile_restored = False
        self.created_at = datetime.now()


class ConversationRegistry:
    """Maps conversation ids to sessions. Creation and discard are caller-driven."""

    def __init__(
        self,
        store_factory: Optional[Callable[[str], ConversationMemoryStore]] = None,
        style_factory: Optional[Callable[[], Any]] = None
    ):
        """
        Initialize registry.

        Args:
            store_factory: Builds a store for a conversation id
            style_factory: Builds a per-conversation style classifier
        """
        self._store_factory = store_factory or ConversationMemoryStore
        self._style_factory = style_factory
        self._sessions: dict[str, ConversationSession] = {}

    def new_conversation(self, conversation_id: str) -> ConversationSession:
        """Create a fresh session, replacing any existing one with the same id."""
        if conversation_id in self._sessions:
            logger.info(f"Replacing existing conversation: {conversation_id}")

        session = ConversationSession(
            conversation_id=conversation_id,
            store=self._store_factory(conversation_id),
            style=self._style_factory() if self._style_factory else None,
        )
        self._sessions[conversation_id] = session
        logger.info(f"Created new conversation: {conversation_id}")
        return session

    def get(self, conversation_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(conversation_id)

    def get_or_create(self, conversation_id: str) -> ConversationSession:
        session = self._sessions.get(conversation_id)
        if session is None:
            session = self.new_conversation(conversation_id)
        return session

    def clear(self, conversation_id: str) -> bool:
        """
        Empty a conversation's memory and style estimate, keeping the session.

        Returns:
            False if the conversation does not exist
        """
        session = self._sessions.get(conversation_id)
        if session is None:
            return False

        session.store.clear()
        if session.style is not None:
            session.style.reset()
        session.profile_restored = False
        session.phase = TurnPhase.IDLE
        return True

    def discard(self, conversation_id: str) -> bool:
        """Drop a conversation entirely."""
        session = self._sessions.pop(conversation_id, None)
        if session is None:
            return False
        logger.info(f"Discarded conversation: {conversation_id}")
        return True

    def conversation_ids(self) -> list[str]:
        return list(self._sessions)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
