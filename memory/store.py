"""Bounded in-process memory of one conversation."""

import logging
from collections import deque
from datetime import datetime
from typing import Callable, Iterable, Optional

from schemas.memory import Role, Turn, TopicRecord, TaggedTurn
from .keywords import default_stop_words, extract_keywords, relative_age

logger = logging.getLogger(__name__)

SAMPLE_LENGTH = 100


class ConversationMemoryStore:
    """Append-only turn log with FIFO eviction plus a topic-frequency table."""

    DEFAULT_MAX_TURNS = 100

    def __init__(
        self,
        conversation_id: str,
        max_turns: int = DEFAULT_MAX_TURNS,
        stop_words: Optional[Iterable[str]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize an empty store.

        Args:
            conversation_id: Conversation this store belongs to
            max_turns: Capacity before the oldest turn is evicted
            stop_words: Words ignored by keyword extraction
            clock: Time source (defaults to datetime.now)
        """
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")

        self.conversation_id = conversation_id
        self.max_turns = max_turns
        self._stop_words = default_stop_words() if stop_words is None else frozenset(stop_words)
        self._clock = clock or datetime.now

        self._turns: deque[Turn] = deque()
        self._topics: dict[str, TopicRecord] = {}
        self._sequence = 0
        self._evicted = 0
        self.started_at = self._clock()

    def now(self) -> datetime:
        """Current time according to the store's clock."""
        return self._clock()

    def append(self, turn: Turn) -> Turn:
        """
        Add a turn, update topics, and evict the oldest turn when over capacity.

        Args:
            turn: Turn to store (its keywords and sequence are assigned here)

        Returns:
            The stored turn
        """
        self._sequence += 1
        stored = turn.model_copy(update={
            "keywords": extract_keywords(turn.text, self._stop_words),
            "sequence": self._sequence,
        })
        self._turns.append(stored)
        self._track_topics(stored)

        while len(self._turns) > self.max_turns:
            evicted = self._turns.popleft()
            self._evicted += 1
            logger.info(
                f"Conversation {self.conversation_id} at capacity ({self.max_turns}); "
                f"evicted turn {evicted.turn_id}"
            )

        logger.debug(
            f"Turn {stored.turn_id} added to {self.conversation_id}. Total: {len(self._turns)}"
        )
        return stored

    def record(self, role: Role, text: str) -> Turn:
        """Build a turn stamped with the store clock and append it."""
        turn = Turn(
            turn_id=f"{self.conversation_id}:{self._sequence + 1}",
            role=role,
            text=text,
            created_at=self._clock(),
        )
        return self.append(turn)

    def _track_topics(self, turn: Turn):
        """Bump topic records for every keyword of a new turn."""
        for keyword in turn.keywords:
            existing = self._topics.get(keyword)
            if existing is None:
                self._topics[keyword] = TopicRecord(
                    topic=keyword,
                    mention_count=1,
                    last_mention_at=turn.created_at,
                    weight=1.0,
                    sample=turn.text[:SAMPLE_LENGTH],
                )
            else:
                existing.mention_count += 1
                existing.weight += 1.0
                existing.last_mention_at = max(existing.last_mention_at, turn.created_at)

    def recent_window(self, k: int = 20) -> list[TaggedTurn]:
        """
        Get the last k turns, oldest first, with relative-age labels.

        Args:
            k: Maximum number of turns

        Returns:
            List of TaggedTurn objects in chronological order
        """
        if k <= 0:
            return []
        now = self._clock()
        window = list(self._turns)[-k:]
        return [
            TaggedTurn(turn=turn, age_label=relative_age(turn.created_at, now))
            for turn in window
        ]

    def top_topics(self, k: int = 5) -> list[TopicRecord]:
        """Topics ranked by weight, ties broken by most recent mention."""
        ranked = sorted(
            self._topics.values(),
            key=lambda r: (-r.weight, -r.last_mention_at.timestamp(), r.topic)
        )
        return [record.model_copy() for record in ranked[:max(k, 0)]]

    def vocabulary(self) -> set[str]:
        """Every keyword the conversation has produced, including evicted turns' topics."""
        words = set(self._topics)
        for turn in self._turns:
            words.update(turn.keywords)
        return words

    def clear(self):
        """Forget all turns and topics."""
        self._turns.clear()
        self._topics.clear()
        logger.info(f"Conversation memory cleared: {self.conversation_id}")

    @property
    def stop_words(self) -> frozenset[str]:
        return self._stop_words

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def topics(self) -> dict[str, TopicRecord]:
        return {name: record.model_copy() for name, record in self._topics.items()}

    @property
    def total_appended(self) -> int:
        return self._sequence

    @property
    def evicted_count(self) -> int:
        return self._evicted

    def __len__(self) -> int:
        return len(self._turns)

    def stats(self) -> dict:
        """Get store statistics."""
        return {
            "conversation_id": self.conversation_id,
            "turn_count": len(self._turns),
            "topic_count": len(self._topics),
            "total_appended": self._sequence,
            "evicted_count": self._evicted,
            "max_turns": self.max_turns,
            "started_at": self.started_at.isoformat(),
            "duration_minutes": int((self._clock() - self.started_at).total_seconds() // 60),
        }
