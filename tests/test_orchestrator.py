"""Tests for the tutor middleware orchestrator."""

import asyncio
import threading

import pytest
from agents.style_classifier import LearningStyleClassifier
from config.feature_flags import Feature, FeatureGate, FeatureFlagConfig, StaticFeatureGate
from config.settings import Settings
from llm.exceptions import GenerationFailure
from memory.profile_store import InMemoryProfileStore
from orchestrator import FALLBACK_RESPONSE, TutorMiddleware
from schemas.memory import Role
from schemas.responses import TurnPhase
from telemetry.sinks import InMemoryTelemetrySink


class FakeGenerator:
    """Returns scripted replies and remembers the bundles it saw."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.bundles = []

    async def generate(self, bundle):
        self.bundles.append(bundle)
        await asyncio.sleep(0)
        return self.replies.pop(0)


class FailingGenerator:
    async def generate(self, bundle):
        raise GenerationFailure("empty response")


class FailingSink:
    def record(self, record):
        raise RuntimeError("sink down")


class ThreadRecordingProfileStore(InMemoryProfileStore):
    """Notes which thread each storage call ran on."""

    def __init__(self):
        super().__init__()
        self.threads = []

    def get(self, user_id):
        self.threads.append(threading.get_ident())
        return super().get(user_id)

    def put(self, user_id, profile):
        self.threads.append(threading.get_ident())
        super().put(user_id, profile)


class OnlyGate(FeatureGate):
    """Enables exactly the given features."""

    def __init__(self, *features):
        self.features = set(features)

    def is_enabled(self, feature, user_id):
        return feature in self.features


class TestTutorMiddleware:
    """Test the two-phase turn pipeline."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sink = InMemoryTelemetrySink()
        self.middleware = TutorMiddleware(telemetry_sink=self.sink)

    def _turn(self, message, reply, user_id="student-1"):
        generator = FakeGenerator(reply)
        return asyncio.run(self.middleware.handle_turn(user_id, message, generator))

    def _store(self, conversation_id="student-1"):
        return self.middleware.registry.get(conversation_id).store

    def test_clean_reply_passes_through(self):
        result = self._turn("What is a prime number?", "A prime has exactly two divisors.")

        assert result.final_text == "A prime has exactly two divisors."
        assert not result.used_fallback
        store = self._store()
        assert [t.role for t in store.turns] == [Role.USER, Role.ASSISTANT]
        assert self.middleware.registry.get("student-1").phase == TurnPhase.COMPLETE
        assert len(self.sink.records) == 1
        assert self.sink.records[0].turn_id == store.turns[-1].turn_id

    def test_first_message_claims_are_not_rejected(self):
        reply = "As we discussed volcanoes, lava is very hot."

        result = self._turn("Tell me about volcanoes", reply)

        assert result.final_text == reply

    def test_false_memory_claim_is_corrected(self):
        self._turn("Can you help me with fractions?", "Sure, fractions are parts of a whole.")

        result = self._turn("What next?", "We discussed photosynthesis. Plants need light.")

        assert result.final_text == (
            "I don't have a record of discussing photosynthesis yet. "
            "Want to go over it now? Plants need light."
        )
        assert not result.used_fallback
        assert self._store().turns[-1].text == result.final_text

    def test_math_correction_block_is_appended(self):
        result = self._turn("Add two and two", "Easy: 2 + 2 = 5")

        assert result.final_text.startswith("Easy: 2 + 2 = 5\n\nCorrection:")
        assert "2 + 2 = 4" in result.final_text
        assert [f.valid for f in result.findings] == [False]

    def test_two_corrections_trigger_fallback(self):
        self._turn("Can you help me with fractions?", "Sure, fractions are parts of a whole.")

        result = self._turn("Continue", "We discussed photosynthesis. Also 2 + 2 = 5.")

        assert result.final_text == FALLBACK_RESPONSE
        assert result.used_fallback
        assert result.telemetry.used_fallback
        assert self._store().turns[-1].text == FALLBACK_RESPONSE

    def test_overlapping_corrections_trigger_fallback(self):
        self.middleware = TutorMiddleware(
            settings=Settings(fallback_threshold=5),
            telemetry_sink=self.sink,
        )
        self._turn("Can you help me with fractions?", "Sure, fractions are parts of a whole.")

        result = self._turn("Continue", "We discussed photosynthesis, where 2 + 2 = 5.")

        assert result.used_fallback
        assert len([f for f in result.findings if not f.valid]) == 2

    def test_disabled_features_are_skipped(self):
        self.middleware = TutorMiddleware(
            feature_gate=StaticFeatureGate(FeatureFlagConfig()),
            telemetry_sink=self.sink,
        )

        result = self._turn("Add", "2 + 2 = 5")

        assert result.final_text == "2 + 2 = 5"
        assert set(result.telemetry.skipped_features) == {"memory_validation", "math_validation"}
        assert result.telemetry.style_snapshot is None

    def test_validator_error_is_reported_not_raised(self):
        def broken(text):
            raise RuntimeError("boom")

        self.middleware.math_validator.validate = broken

        result = self._turn("Add", "2 + 2 = 5")

        assert result.final_text == "2 + 2 = 5"
        assert result.telemetry.validator_errors == ["math_validation: boom"]

    def test_telemetry_failure_does_not_affect_reply(self):
        self.middleware = TutorMiddleware(telemetry_sink=FailingSink())

        result = self._turn("Hi", "Hello!")

        assert result.final_text == "Hello!"

    def test_generation_failure_propagates_and_keeps_user_turn(self):
        with pytest.raises(GenerationFailure):
            asyncio.run(self.middleware.handle_turn("student-1", "Hello?", FailingGenerator()))

        store = self._store()
        assert [t.text for t in store.turns] == ["Hello?"]
        assert self.middleware.registry.get("student-1").phase == TurnPhase.IDLE

    def test_recall_query_gets_relevant_past(self):
        self._turn("My favorite color is blue", "Nice choice!")
        generator = FakeGenerator("Your favorite color is blue.")

        asyncio.run(self.middleware.handle_turn(
            "student-1", "Do you remember my favorite color?", generator
        ))

        bundle = generator.bundles[0]
        assert bundle.is_recall_query
        assert bundle.relevant_past.startswith("1. [User] My favorite color is blue")

    def test_style_profile_reaches_bundle(self):
        generator = FakeGenerator("Here is a sketch.")

        asyncio.run(self.middleware.handle_turn("student-1", "Show me a diagram", generator))

        bundle = generator.bundles[0]
        assert bundle.style_profile.dominant == "visual"
        assert bundle.style_guidance

    def test_pre_and_post_process_directly(self):
        async def run():
            bundle = await self.middleware.pre_process("student-2", "What is 3 squared?")
            assert self.middleware.registry.get("student-2").phase == TurnPhase.GENERATING
            return await self.middleware.post_process("student-2", bundle.query, "3^2 = 9")

        result = asyncio.run(run())

        assert result.final_text == "3^2 = 9"
        assert result.findings[0].valid

    def test_conversation_id_overrides_user_key(self):
        async def run():
            await self.middleware.pre_process("student-3", "Hello", conversation_id="lesson-7")
            await self.middleware.post_process("student-3", "Hello", "Hi!", conversation_id="lesson-7")

        asyncio.run(run())

        assert "lesson-7" in self.middleware.registry
        assert "student-3" not in self.middleware.registry

    def test_turns_of_one_conversation_are_serialized(self):
        async def run():
            await asyncio.gather(
                self.middleware.handle_turn("student-1", "first", FakeGenerator("one")),
                self.middleware.handle_turn("student-1", "second", FakeGenerator("two")),
            )

        asyncio.run(run())

        roles = [t.role for t in self._store().turns]
        assert roles == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]

    def test_lifecycle_operations(self):
        self.middleware.new_conversation("lesson-1")
        asyncio.run(self.middleware.handle_turn(
            "student-1", "Explain vectors", FakeGenerator("Vectors have direction."),
            conversation_id="lesson-1",
        ))

        stats = self.middleware.session_stats("lesson-1")
        assert stats["turn_count"] == 2
        assert stats["phase"] == "Complete"
        assert "vectors (×2)" in stats["top_topics"]

        assert self.middleware.clear("lesson-1")
        assert self.middleware.session_stats("lesson-1")["turn_count"] == 0

        assert self.middleware.end_conversation("lesson-1", "student-1")
        assert self.middleware.session_stats("lesson-1") is None
        assert not self.middleware.clear("lesson-1")


class TestProfileStorage:
    """Test opt-in style profile persistence."""

    def setup_method(self):
        """Set up test fixtures."""
        self.profiles = InMemoryProfileStore()

    def _middleware(self, gate=None):
        return TutorMiddleware(
            feature_gate=gate,
            telemetry_sink=InMemoryTelemetrySink(),
            profile_store=self.profiles,
        )

    def test_profile_saved_and_restored_across_conversations(self):
        first = self._middleware()
        asyncio.run(first.handle_turn("student-9", "Show me a diagram", FakeGenerator("Sure.")))

        assert self.profiles.get("student-9").dominant == "visual"

        second = self._middleware()
        generator = FakeGenerator("Hello again.")
        asyncio.run(second.handle_turn("student-9", "Hello there", generator))

        assert generator.bundles[0].style_profile.dominant == "visual"

    def test_profile_not_stored_without_consent(self):
        gate = OnlyGate(Feature.STYLE_ADAPTATION, Feature.MEMORY_VALIDATION, Feature.MATH_VALIDATION)
        middleware = self._middleware(gate)

        asyncio.run(middleware.handle_turn("student-9", "Show me a diagram", FakeGenerator("Sure.")))

        assert self.profiles.get("student-9") is None

    def test_storage_calls_run_off_the_event_loop_thread(self):
        self.profiles = ThreadRecordingProfileStore()
        middleware = self._middleware()

        asyncio.run(middleware.handle_turn("student-9", "Show me a diagram", FakeGenerator("Sure.")))

        assert len(self.profiles.threads) == 2
        assert threading.get_ident() not in self.profiles.threads
        assert self.profiles.get("student-9").dominant == "visual"

    def test_profile_restored_again_after_clear(self):
        self.profiles.put("student-9", self._visual_profile())
        middleware = self._middleware()
        asyncio.run(middleware.handle_turn("student-9", "Hello there", FakeGenerator("Hi.")))

        assert middleware.clear("student-9")
        generator = FakeGenerator("Welcome back.")
        asyncio.run(middleware.handle_turn("student-9", "Hello again", generator))

        assert generator.bundles[0].style_profile.dominant == "visual"

    @staticmethod
    def _visual_profile():
        classifier = LearningStyleClassifier()
        classifier.observe("Show me a diagram")
        return classifier.profile()
