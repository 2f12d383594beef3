"""Lexical relevance search over a conversation's stored turns."""

import logging
from typing import Iterable, Optional

from memory.keywords import extract_keywords, tokenize
from memory.store import ConversationMemoryStore
from schemas.memory import ScoredTurn

logger = logging.getLogger(__name__)


class RelevanceSearchEngine:
    """Ranks every retained turn of a store against a query."""

    SUBSTRING_SCORE = 1.0
    EXACT_TOKEN_BONUS = 0.5
    RECENCY_WEIGHT = 0.3  # Small enough that recency only breaks ties

    def __init__(self, store: ConversationMemoryStore):
        """
        Initialize search engine.

        Args:
            store: Conversation store to search
        """
        self.store = store

    def find_relevant(
        self,
        query: str,
        max_results: int = 5,
        exclude: Optional[Iterable[str]] = None
    ) -> list[ScoredTurn]:
        """
        Find the stored turns most relevant to a query.

        Args:
            query: Current user utterance
            max_results: Maximum number of results
            exclude: Turn ids to leave out

        Returns:
            Scored turns, best first, earliest first among equal scores
        """
        keywords = sorted(extract_keywords(query, self.store.stop_words))
        if not keywords or max_results <= 0:
            return []

        excluded = set(exclude or ())
        now = self.store.now()
        scored = []

        for turn in self.store.turns:
            if turn.turn_id in excluded:
                continue
            text_lower = turn.text.lower()
            tokens = set(tokenize(turn.text))
            keyword_score = 0.0
            matched = []

            for keyword in keywords:
                if keyword in text_lower:
                    keyword_score += self.SUBSTRING_SCORE
                    matched.append(keyword)
                    if keyword in tokens:
                        keyword_score += self.EXACT_TOKEN_BONUS

            # Zero-score turns never qualify on recency alone
            if keyword_score == 0:
                continue

            age_minutes = max((now - turn.created_at).total_seconds(), 0.0) / 60.0
            recency_bonus = self.RECENCY_WEIGHT / (1.0 + age_minutes / 60.0)

            scored.append(ScoredTurn(
                turn=turn,
                score=keyword_score + recency_bonus,
                matched_keywords=matched,
            ))

        scored.sort(key=lambda s: (-s.score, s.turn.sequence))
        logger.debug(
            f"Relevance search in {self.store.conversation_id}: "
            f"{len(scored)} of {len(self.store)} turns matched {keywords}"
        )
        return scored[:max_results]
