"""Tutor middleware: conversational memory in front of the model, validation behind it."""

import time
import asyncio
import logging
from typing import Optional

from config.settings import Settings
from config.feature_flags import Feature, FeatureGate, AllFeaturesGate
from config.policy import MiddlewarePolicy, load_policy

from memory.store import ConversationMemoryStore
from memory.registry import ConversationRegistry, ConversationSession
from memory.profile_store import ProfileStore

from agents.style_classifier import LearningStyleClassifier
from agents.context_builder import PromptContextBuilder
from agents.memory_claim_validator import MemoryClaimValidator
from agents.math_validator import MathValidator

from llm.base_client import BaseLLMClient

from schemas.memory import Role
from schemas.style import StyleProfile
from schemas.responses import PromptBundle, PostProcessResult, TelemetryRecord, TurnPhase
from schemas.validation import ValidationFinding, ValidationReport

from telemetry.sinks import TelemetrySink, LoggingTelemetrySink

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = (
    "I want to make sure I give you accurate information, so let's approach this "
    "a different way. How would you like me to help?\n\n"
    "1. Quick Summary - the key points in a few sentences\n"
    "2. Step-by-Step Solution - work through it one step at a time\n"
    "3. Extended Explanation - a detailed walkthrough with examples"
)


class TutorMiddleware:
    """Pre- and post-processing around a generator for tutoring conversations."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        feature_gate: Optional[FeatureGate] = None,
        telemetry_sink: Optional[TelemetrySink] = None,
        profile_store: Optional[ProfileStore] = None,
        registry: Optional[ConversationRegistry] = None,
        policy: Optional[MiddlewarePolicy] = None
    ):
        """
        Initialize middleware.

        Args:
            settings: Tunables (defaults to Settings())
            feature_gate: Per-user feature oracle (defaults to everything on)
            telemetry_sink: Where per-turn records go (defaults to the log)
            profile_store: Opt-in cross-session style profile storage
            registry: Conversation sessions (defaults to a fresh registry)
            policy: Rule tables (defaults to settings.policy_path)
        """
        self.settings = settings or Settings()
        self.policy = policy or load_policy(self.settings.policy_path)
        self.feature_gate = feature_gate or AllFeaturesGate()
        self.telemetry_sink = telemetry_sink or LoggingTelemetrySink()
        self.profile_store = profile_store
        self.registry = registry or ConversationRegistry(
            store_factory=self._create_store,
            style_factory=self._create_classifier,
        )

        self.memory_validator = MemoryClaimValidator(
            policy=self.policy,
            min_turns_for_rejection=self.settings.min_turns_for_rejection,
            fuzzy_threshold=self.settings.fuzzy_match_threshold,
        )
        self.math_validator = MathValidator(epsilon=self.settings.math_epsilon)

    def _create_store(self, conversation_id: str) -> ConversationMemoryStore:
        return ConversationMemoryStore(
            conversation_id,
            max_turns=self.settings.max_turns,
            stop_words=self.policy.stop_words,
        )

    def _create_classifier(self) -> LearningStyleClassifier:
        return LearningStyleClassifier(self.policy, self.settings.dominant_style_threshold)

    # Conversation lifecycle

    def new_conversation(self, conversation_id: str) -> ConversationSession:
        """Start a conversation with empty memory."""
        return self.registry.new_conversation(conversation_id)

    def clear(self, conversation_id: str) -> bool:
        """Forget a conversation's turns, topics and style estimate."""
        return self.registry.clear(conversation_id)

    def end_conversation(self, conversation_id: str, user_id: Optional[str] = None) -> bool:
        """
        Discard a conversation, saving its style profile first when allowed.

        Args:
            conversation_id: Conversation to end
            user_id: Owner of the conversation (defaults to conversation_id)

        Returns:
            False if the conversation does not exist
        """
        session = self.registry.get(conversation_id)
        if session is None:
            return False

        user_id = user_id or conversation_id
        if session.style is not None and self._profile_storage_enabled(user_id):
            self._save_profile(user_id, session.style.profile())
        return self.registry.discard(conversation_id)

    def session_stats(self, conversation_id: str) -> Optional[dict]:
        """Memory and style statistics for a conversation."""
        session = self.registry.get(conversation_id)
        if session is None:
            return None

        stats = session.store.stats()
        stats["phase"] = session.phase.value
        stats["top_topics"] = [
            f"{t.topic} (×{t.mention_count})"
            for t in session.store.top_topics(self.settings.topic_count)
        ]
        if session.style is not None:
            profile = session.style.profile()
            stats["dominant_style"] = profile.dominant
            stats["preferred_depth"] = profile.preferred_depth.value
        return stats

    # Turn processing

    def _session(self, user_id: str, conversation_id: Optional[str]) -> ConversationSession:
        return self.registry.get_or_create(conversation_id or user_id)

    async def pre_process(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str] = None
    ) -> PromptBundle:
        """
        Record the user turn and build the generator context.

        Args:
            user_id: User sending the message
            message: User message
            conversation_id: Conversation (defaults to one conversation per user)

        Returns:
            PromptBundle for the generator
        """
        session = self._session(user_id, conversation_id)
        session.phase = TurnPhase.PRE_PROCESSING

        user_turn = session.store.record(Role.USER, message)

        style_profile = None
        if session.style is not None and self.feature_gate.is_enabled(Feature.STYLE_ADAPTATION, user_id):
            storage = self._profile_storage_enabled(user_id)
            if storage and not session.profile_restored:
                session.profile_restored = True
                stored = await asyncio.to_thread(self._load_profile, user_id)
                if stored is not None:
                    session.style.restore(stored)

            session.style.observe(message)
            style_profile = session.style.profile()

            if storage:
                await asyncio.to_thread(self._save_profile, user_id, style_profile)

        builder = PromptContextBuilder(
            session.store,
            policy=self.policy,
            window_size=self.settings.recent_window_size,
            topic_count=self.settings.topic_count,
            max_results=self.settings.relevance_max_results,
            style_threshold=self.settings.dominant_style_threshold,
        )
        bundle = builder.build(message, style_profile, current_turn_id=user_turn.turn_id)

        session.phase = TurnPhase.GENERATING
        return bundle

    async def post_process(
        self,
        user_id: str,
        message: str,
        generated_text: str,
        conversation_id: Optional[str] = None
    ) -> PostProcessResult:
        """
        Validate a generated reply, correct or replace it, and record it.

        Args:
            user_id: User the reply is for
            message: The user message the reply answers
            generated_text: Raw generator output
            conversation_id: Conversation (defaults to one conversation per user)

        Returns:
            PostProcessResult with the text to show the user
        """
        started = time.perf_counter()
        session = self._session(user_id, conversation_id)
        session.phase = TurnPhase.POST_PROCESSING

        skipped = []
        validators = {}

        if self.feature_gate.is_enabled(Feature.MEMORY_VALIDATION, user_id):
            validators[Feature.MEMORY_VALIDATION] = self._run_memory_validation(generated_text, session)
        else:
            skipped.append(Feature.MEMORY_VALIDATION.value)

        if self.feature_gate.is_enabled(Feature.MATH_VALIDATION, user_id):
            validators[Feature.MATH_VALIDATION] = self._run_math_validation(generated_text)
        else:
            skipped.append(Feature.MATH_VALIDATION.value)

        outcomes = await asyncio.gather(*validators.values(), return_exceptions=True)

        reports: dict[Feature, ValidationReport] = {}
        validator_errors = []
        for feature, outcome in zip(validators, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"{feature.value} failed for {session.conversation_id}: {outcome}")
                validator_errors.append(f"{feature.value}: {outcome}")
            else:
                reports[feature] = outcome

        findings = sorted(
            (f for report in reports.values() for f in report.findings),
            key=lambda f: (f.start, f.end),
        )
        corrections = [f for f in findings if not f.valid]

        used_fallback = (
            len(corrections) >= self.settings.fallback_threshold
            or self._has_overlap(corrections)
        )

        if used_fallback:
            final_text = FALLBACK_RESPONSE
            logger.info(
                f"Fallback response used for {session.conversation_id}: "
                f"{len(corrections)} correction(s) needed"
            )
        else:
            final_text = self._merge(generated_text, reports)

        assistant_turn = session.store.record(Role.ASSISTANT, final_text)

        style_snapshot = None
        if session.style is not None and self.feature_gate.is_enabled(Feature.STYLE_ADAPTATION, user_id):
            style_snapshot = session.style.profile()

        telemetry = TelemetryRecord(
            turn_id=assistant_turn.turn_id,
            conversation_id=session.conversation_id,
            user_id=user_id,
            findings=findings,
            style_snapshot=style_snapshot,
            latency_ms=(time.perf_counter() - started) * 1000,
            used_fallback=used_fallback,
            skipped_features=skipped,
            validator_errors=validator_errors,
        )
        self._emit(telemetry)

        session.phase = TurnPhase.COMPLETE
        return PostProcessResult(final_text=final_text, findings=findings, telemetry=telemetry)

    async def handle_turn(
        self,
        user_id: str,
        message: str,
        generator: BaseLLMClient,
        conversation_id: Optional[str] = None
    ) -> PostProcessResult:
        """
        Run one full turn: pre-process, generate, post-process.

        Turns of the same conversation are serialized. Generation errors
        propagate; the user turn stays recorded.
        """
        session = self._session(user_id, conversation_id)

        async with session.lock:
            bundle = await self.pre_process(user_id, message, session.conversation_id)
            try:
                generated_text = await generator.generate(bundle)
            except Exception:
                session.phase = TurnPhase.IDLE
                raise
            return await self.post_process(user_id, message, generated_text, session.conversation_id)

    # Helpers

    async def _run_memory_validation(self, text: str, session: ConversationSession) -> ValidationReport:
        return self.memory_validator.validate(text, session.store)

    async def _run_math_validation(self, text: str) -> ValidationReport:
        return self.math_validator.validate(text)

    @staticmethod
    def _has_overlap(corrections: list[ValidationFinding]) -> bool:
        """True when two corrections claim the same part of the text."""
        ordered = sorted(corrections, key=lambda f: f.start)
        return any(
            later.start < earlier.end
            for earlier, later in zip(ordered, ordered[1:])
        )

    @staticmethod
    def _merge(generated_text: str, reports: dict[Feature, ValidationReport]) -> str:
        """Apply in-place claim corrections, then append the math correction block."""
        memory_report = reports.get(Feature.MEMORY_VALIDATION)
        text = memory_report.corrected_text if memory_report else generated_text

        math_report = reports.get(Feature.MATH_VALIDATION)
        if math_report and math_report.correction_block:
            text = f"{text.rstrip()}\n\n{math_report.correction_block}"
        return text

    def _profile_storage_enabled(self, user_id: str) -> bool:
        return self.profile_store is not None and self.feature_gate.is_enabled(
            Feature.PROFILE_STORAGE, user_id
        )

    def _load_profile(self, user_id: str) -> Optional[StyleProfile]:
        try:
            return self.profile_store.get(user_id)
        except Exception as e:
            logger.warning(f"Could not load style profile for {user_id}: {e}")
            return None

    def _save_profile(self, user_id: str, profile: StyleProfile):
        try:
            self.profile_store.put(user_id, profile)
        except Exception as e:
            logger.warning(f"Could not save style profile for {user_id}: {e}")

    def _emit(self, record: TelemetryRecord):
        try:
            self.telemetry_sink.record(record)
        except Exception as e:
            logger.warning(f"Telemetry sink failed for {record.turn_id}: {e}")


MiddlewareOrchestrator = TutorMiddleware
