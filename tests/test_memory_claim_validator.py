"""Tests for the memory claim validator."""

from agents.memory_claim_validator import MemoryClaimValidator, CORRECTION_TEMPLATE
from memory.store import ConversationMemoryStore
from schemas.memory import Role
from schemas.validation import FindingKind


class TestMemoryClaimValidator:
    """Test claim detection, support checks and corrections."""

    def setup_method(self):
        """Set up test fixtures."""
        self.validator = MemoryClaimValidator()
        self.store = ConversationMemoryStore("conv-m")

    def _seed(self):
        self.store.record(Role.USER, "Can you help me with derivatives?")
        self.store.record(Role.ASSISTANT, "Sure, derivatives measure how fast things change.")

    def test_claim_against_empty_store_is_corrected(self):
        report = self.validator.validate("I remember we discussed calculus", self.store)

        assert report.kind == FindingKind.MEMORY_CLAIM
        assert not report.valid
        assert len(report.corrections) == 1
        assert report.corrected_text == CORRECTION_TEMPLATE.format(subject="calculus")

    def test_supported_claim_is_untouched(self):
        self._seed()
        text = "As we discussed derivatives earlier, the slope tells you the rate."

        report = self.validator.validate(text, self.store)

        assert report.valid
        assert len(report.findings) == 1
        assert report.findings[0].evidence == "derivatives"
        assert report.corrected_text == text

    def test_near_spelling_counts_as_support(self):
        self._seed()

        report = self.validator.validate("We covered the derivative.", self.store)

        assert report.valid
        assert report.findings[0].evidence == "derivatives"
        assert report.findings[0].confidence >= 0.9

    def test_only_the_claim_sentence_is_replaced(self):
        self._seed()
        text = "Great question. As you mentioned, photosynthesis uses light. Let's continue."

        report = self.validator.validate(text, self.store)

        assert not report.valid
        assert report.corrected_text == (
            "Great question. "
            "I don't have a record of discussing photosynthesis uses light yet. "
            "Want to go over it now? Let's continue."
        )
        finding = report.corrections[0]
        assert finding.original_span == "As you mentioned, photosynthesis uses light."

    def test_single_turn_store_cannot_reject(self):
        self.store.record(Role.USER, "Teach me about calculus")

        report = self.validator.validate("As we discussed volcanoes, lava is hot.", self.store)

        assert report.findings == []
        assert report.corrected_text == "As we discussed volcanoes, lava is hot."

    def test_overlapping_patterns_yield_one_claim(self):
        self._seed()

        report = self.validator.validate("As you mentioned, we discussed algebra.", self.store)

        assert len(report.findings) == 1
        assert report.corrected_text.count("I don't have a record") == 1

    def test_subject_without_keywords_is_skipped(self):
        self._seed()

        report = self.validator.validate("We discussed it.", self.store)

        assert report.findings == []
        assert report.corrected_text == "We discussed it."

    def test_subject_cut_at_terminator(self):
        claims = self.validator.find_claims("We discussed volcanoes yesterday and today.")

        assert len(claims) == 1
        assert claims[0].subject == "volcanoes"

    def test_independent_claims(self):
        self._seed()
        text = "We discussed derivatives. You told me about volcanoes."

        report = self.validator.validate(text, self.store)

        assert [f.valid for f in report.findings] == [True, False]
        assert report.corrected_text.startswith("We discussed derivatives. ")
        assert "discussing about volcanoes" not in report.corrected_text
        assert report.corrected_text.endswith("Want to go over it now?")

    def test_text_without_claims(self):
        report = self.validator.validate("A derivative measures change.", self.store)

        assert report.findings == []
        assert report.valid
