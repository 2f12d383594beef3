"""Prompt context builder for the generator."""

import re
import logging
from typing import Optional

from config.policy import MiddlewarePolicy, load_policy
from memory.store import ConversationMemoryStore
from retrieval.relevance_search import RelevanceSearchEngine
from schemas.memory import Role
from schemas.responses import PromptBundle
from schemas.style import StyleProfile
from .style_classifier import LearningStyleClassifier

logger = logging.getLogger(__name__)

RECALL_INSTRUCTION = (
    "When the student asks about something from earlier in this conversation, "
    "answer from the context above rather than from assumption. "
    "If the context does not contain it, say you don't have a record of it. "
    "Never claim the two of you discussed something that is not shown above."
)

SNIPPET_LENGTH = 200


class PromptContextBuilder:
    """Assembles recent history, topics and recall context into a PromptBundle."""

    def __init__(
        self,
        store: ConversationMemoryStore,
        search_engine: Optional[RelevanceSearchEngine] = None,
        policy: Optional[MiddlewarePolicy] = None,
        window_size: int = 20,
        topic_count: int = 5,
        max_results: int = 5,
        style_threshold: float = 0.3
    ):
        """
        Initialize context builder.

        Args:
            store: Conversation store to read from
            search_engine: Relevance search over the same store
            policy: Rule tables (recall triggers)
            window_size: Number of recent turns shown
            topic_count: Number of topics summarized
            max_results: Number of relevant past turns for recall queries
            style_threshold: Confidence needed before a style gets guidance
        """
        self.store = store
        self.search_engine = search_engine or RelevanceSearchEngine(store)
        self.policy = policy or load_policy()
        self.window_size = window_size
        self.topic_count = topic_count
        self.max_results = max_results
        self.style_threshold = style_threshold
        self._recall_patterns = [
            re.compile(r"(?<!\w)" + re.escape(trigger.lower()) + r"(?!\w)")
            for trigger in self.policy.recall_triggers
        ]

    def is_recall_query(self, query: str) -> bool:
        """Check whether a query refers back to earlier conversation."""
        query_lower = query.lower()
        return any(p.search(query_lower) for p in self._recall_patterns)

    def build(
        self,
        query: str,
        style_profile: Optional[StyleProfile] = None,
        current_turn_id: Optional[str] = None
    ) -> PromptBundle:
        """
        Build the generator context for a query.

        Args:
            query: Current user message
            style_profile: Style estimate to turn into guidance, if any
            current_turn_id: Stored id of the query itself, kept out of recall results

        Returns:
            PromptBundle ready for the generator
        """
        recall = self.is_recall_query(query)
        relevant_past = self._format_relevant(query, current_turn_id) if recall else ""

        style_guidance = []
        if style_profile is not None:
            style_guidance = LearningStyleClassifier.recommendations(
                style_profile, self.style_threshold
            )

        bundle = PromptBundle(
            conversation_id=self.store.conversation_id,
            query=query,
            recent_window=self._format_window(),
            topic_summary=self._format_topics(),
            relevant_past=relevant_past,
            instruction=RECALL_INSTRUCTION,
            style_profile=style_profile,
            style_guidance=style_guidance,
        )

        logger.debug(
            f"Built context for {self.store.conversation_id}: "
            f"recall={recall}, guidance_lines={len(style_guidance)}"
        )
        return bundle

    def _format_window(self) -> str:
        window = self.store.recent_window(self.window_size)
        if not window:
            return ""

        lines = [f"(showing {len(window)} of {len(self.store)})"]
        for tagged in window:
            speaker = "User" if tagged.turn.role == Role.USER else "Tutor"
            lines.append(f"[{speaker} - {tagged.age_label}]: {tagged.turn.text}")
        return "\n".join(lines)

    def _format_topics(self) -> str:
        topics = self.store.top_topics(self.topic_count)
        return ", ".join(f"{t.topic} (mentioned {t.mention_count}x)" for t in topics)

    def _format_relevant(self, query: str, current_turn_id: Optional[str]) -> str:
        exclude = [current_turn_id] if current_turn_id else None
        results = self.search_engine.find_relevant(query, self.max_results, exclude)
        if not results:
            return ""

        lines = []
        for i, scored in enumerate(results, 1):
            turn = scored.turn
            speaker = "User" if turn.role == Role.USER else "Tutor"
            snippet = turn.text[:SNIPPET_LENGTH]
            lines.append(f"{i}. [{speaker}] {snippet} (matched: {', '.join(scored.matched_keywords)})")
        return "\n".join(lines)
