"""Tests for the conversation memory store."""

from datetime import datetime, timedelta

import pytest
from memory.keywords import extract_keywords, relative_age, tokenize
from memory.store import ConversationMemoryStore
from schemas.memory import Role


class FakeClock:
    """Manually advanced clock."""

    def __init__(self):
        self.current = datetime(2024, 3, 1, 9, 0, 0)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class TestKeywords:
    """Test keyword extraction helpers."""

    def test_tokenize_strips_punctuation_and_apostrophes(self):
        assert tokenize("What's the Chain-Rule?") == ["whats", "the", "chain", "rule"]

    def test_extract_keywords_drops_stop_words_and_short_tokens(self):
        keywords = extract_keywords("What's the chain rule of my derivative?")
        assert keywords == frozenset({"chain", "rule", "derivative"})

    def test_extract_keywords_with_custom_stop_words(self):
        keywords = extract_keywords("photosynthesis needs light", stop_words={"needs"})
        assert keywords == frozenset({"photosynthesis", "light"})

    def test_relative_age_labels(self):
        now = datetime(2024, 3, 1, 12, 0, 0)
        assert relative_age(now - timedelta(seconds=30), now) == "just now"
        assert relative_age(now - timedelta(minutes=5), now) == "5m ago"
        assert relative_age(now - timedelta(hours=3), now) == "3h ago"
        assert relative_age(now - timedelta(days=2), now) == "2d ago"


class TestConversationMemoryStore:
    """Test store append, eviction and reads."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.store = ConversationMemoryStore("conv-1", clock=self.clock)

    def test_record_assigns_ids_sequence_and_keywords(self):
        first = self.store.record(Role.USER, "Explain fractions please")
        second = self.store.record(Role.ASSISTANT, "Fractions are parts of a whole")

        assert first.turn_id == "conv-1:1"
        assert second.turn_id == "conv-1:2"
        assert first.sequence == 1
        assert second.sequence == 2
        assert "fractions" in first.keywords
        assert "please" not in first.keywords

    def test_append_then_window_round_trips_text_and_role(self):
        self.store.record(Role.USER, "What is a prime number?")

        window = self.store.recent_window(1)

        assert len(window) == 1
        assert window[0].turn.text == "What is a prime number?"
        assert window[0].turn.role == Role.USER
        assert window[0].age_label == "just now"

    def test_recent_window_is_chronological_and_tagged(self):
        self.store.record(Role.USER, "first message")
        self.clock.advance(minutes=10)
        self.store.record(Role.ASSISTANT, "second message")
        self.clock.advance(minutes=5)

        window = self.store.recent_window(20)

        assert [t.turn.text for t in window] == ["first message", "second message"]
        assert [t.age_label for t in window] == ["15m ago", "5m ago"]

    def test_recent_window_limits_to_last_k(self):
        for i in range(5):
            self.store.record(Role.USER, f"message {i}")

        window = self.store.recent_window(2)

        assert [t.turn.text for t in window] == ["message 3", "message 4"]
        assert self.store.recent_window(0) == []

    def test_capacity_is_never_exceeded(self):
        store = ConversationMemoryStore("small", max_turns=3, clock=self.clock)
        for i in range(10):
            store.record(Role.USER, f"turn {i}")
            assert len(store.turns) <= 3

        assert store.evicted_count == 7
        assert store.total_appended == 10

    def test_eviction_keeps_topics(self):
        store = ConversationMemoryStore("conv-e", max_turns=100, clock=self.clock)
        store.record(Role.USER, "photosynthesis")
        for _ in range(100):
            self.clock.advance(seconds=1)
            store.record(Role.ASSISTANT, "ok")

        texts = [t.turn.text for t in store.recent_window(100)]
        assert len(texts) == 100
        assert "photosynthesis" not in texts
        assert [t.topic for t in store.top_topics(5)] == ["photosynthesis"]
        assert "photosynthesis" in store.vocabulary()

    def test_topic_counts_and_ranking(self):
        self.store.record(Role.USER, "algebra equations")
        self.clock.advance(minutes=1)
        self.store.record(Role.USER, "algebra again")
        self.clock.advance(minutes=1)
        self.store.record(Role.USER, "geometry")

        topics = self.store.top_topics(5)

        assert topics[0].topic == "algebra"
        assert topics[0].mention_count == 2
        assert topics[0].weight == 2.0
        # Equal weight: most recent mention first
        assert [t.topic for t in topics[1:]] == ["geometry", "again", "equations"]
        assert topics[0].sample == "algebra equations"

    def test_top_topics_is_idempotent(self):
        self.store.record(Role.USER, "calculus limits derivatives")
        self.store.record(Role.USER, "limits of sequences")

        assert self.store.top_topics(5) == self.store.top_topics(5)

    def test_top_topics_returns_copies(self):
        self.store.record(Role.USER, "calculus")
        topic = self.store.top_topics(1)[0]
        topic.mention_count = 99

        assert self.store.top_topics(1)[0].mention_count == 1

    def test_clear_empties_turns_and_topics(self):
        self.store.record(Role.USER, "trigonometry")
        self.store.clear()

        assert len(self.store) == 0
        assert self.store.top_topics(5) == []
        assert self.store.vocabulary() == set()

    def test_stats(self):
        self.store.record(Role.USER, "vectors and matrices")
        self.clock.advance(minutes=3)

        stats = self.store.stats()

        assert stats["conversation_id"] == "conv-1"
        assert stats["turn_count"] == 1
        assert stats["topic_count"] == 2
        assert stats["duration_minutes"] == 3

    def test_invalid_capacity_rejected(self):
        with pytest.raises(ValueError):
            ConversationMemoryStore("bad", max_turns=0)
