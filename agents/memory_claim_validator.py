"""Detection and correction of false claims about earlier conversation."""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from rapidfuzz import fuzz, process

from config.policy import MiddlewarePolicy, load_policy
from memory.keywords import extract_keywords
from memory.store import ConversationMemoryStore
from schemas.validation import FindingKind, ValidationFinding, ValidationReport
from .exceptions import RecoverableValidationFailure

logger = logging.getLogger(__name__)

CORRECTION_TEMPLATE = "I don't have a record of discussing {subject} yet. Want to go over it now?"

_SENTENCE_END = ".!?\n"


@dataclass
class _Claim:
    start: int
    end: int
    span: str
    subject: str


class MemoryClaimValidator:
    """Checks "we discussed X" style claims against the conversation store."""

    def __init__(
        self,
        policy: Optional[MiddlewarePolicy] = None,
        min_turns_for_rejection: int = 2,
        fuzzy_threshold: float = 90.0,
        max_subject_words: int = 6
    ):
        """
        Initialize validator.

        Args:
            policy: Rule tables (claim patterns, subject terminators)
            min_turns_for_rejection: Stores smaller than this (but not empty)
                cannot disprove a claim
            fuzzy_threshold: rapidfuzz ratio at which a vocabulary word counts as a match
            max_subject_words: Longest claimed subject considered
        """
        policy = policy or load_policy()
        self.min_turns_for_rejection = min_turns_for_rejection
        self.fuzzy_threshold = fuzzy_threshold
        self.max_subject_words = max_subject_words
        self.terminators = {t.lower() for t in policy.subject_terminators}

        self.patterns = []
        for pattern in policy.memory_claim_patterns:
            try:
                self.patterns.append(re.compile(pattern, re.IGNORECASE))
            except re.error as e:
                logger.warning(f"Skipping invalid memory claim pattern {pattern!r}: {e}")

    def find_claims(self, text: str) -> list[_Claim]:
        """
        Find claim spans, one per location even when several patterns match.

        Args:
            text: Generated response

        Returns:
            Non-overlapping claims in textual order
        """
        matches = []
        for pattern in self.patterns:
            for match in pattern.finditer(text):
                if "subject" not in match.groupdict() or match.group("subject") is None:
                    continue
                matches.append(match)

        matches.sort(key=lambda m: (m.start(), -m.end()))

        claims = []
        last_end = -1
        for match in matches:
            if match.start() < last_end:
                continue
            claims.append(_Claim(
                start=match.start(),
                end=match.end(),
                span=match.group(0),
                subject=self._clean_subject(match.group("subject")),
            ))
            last_end = match.end()
        return claims

    def _clean_subject(self, raw: str) -> str:
        """Cut a captured subject at the first terminator word."""
        words = []
        for word in raw.split():
            if word.lower().strip("'-") in self.terminators:
                break
            words.append(word)
            if len(words) >= self.max_subject_words:
                break
        return " ".join(words).strip(" -'")

    def validate(self, text: str, store: ConversationMemoryStore) -> ValidationReport:
        """
        Validate every memory claim in a response.

        Args:
            text: Generated response
            store: Store of the conversation the response belongs to

        Returns:
            ValidationReport with unsupported claims rewritten in place
        """
        claims = self.find_claims(text)
        if not claims:
            return ValidationReport(kind=FindingKind.MEMORY_CLAIM, corrected_text=text)

        if 0 < len(store) < self.min_turns_for_rejection:
            logger.debug(
                f"Skipping {len(claims)} memory claim(s): "
                f"{store.conversation_id} has only {len(store)} turn(s)"
            )
            return ValidationReport(kind=FindingKind.MEMORY_CLAIM, corrected_text=text)

        vocabulary = store.vocabulary()
        findings = []

        for claim in claims:
            try:
                findings.append(self._check_claim(text, claim, vocabulary, store.stop_words))
            except RecoverableValidationFailure as e:
                logger.debug(f"Unverifiable memory claim {claim.span!r}: {e}")

        corrected_text = self._apply_corrections(text, findings)
        invalid = sum(1 for f in findings if not f.valid)
        if invalid:
            logger.info(
                f"Memory claims in {store.conversation_id}: "
                f"{invalid} unsupported of {len(findings)} checked"
            )

        return ValidationReport(
            kind=FindingKind.MEMORY_CLAIM,
            findings=findings,
            corrected_text=corrected_text,
        )

    def _check_claim(
        self,
        text: str,
        claim: _Claim,
        vocabulary: set[str],
        stop_words: frozenset[str]
    ) -> ValidationFinding:
        if not claim.subject:
            raise RecoverableValidationFailure("no subject")

        keywords = extract_keywords(claim.subject, stop_words)
        if not keywords:
            raise RecoverableValidationFailure(f"subject {claim.subject!r} has no keywords")

        support = self._find_support(keywords, vocabulary)
        if support:
            word, score = support
            return ValidationFinding(
                kind=FindingKind.MEMORY_CLAIM,
                valid=True,
                original_span=claim.span,
                confidence=score / 100.0,
                start=claim.start,
                end=claim.end,
                evidence=word,
            )

        sentence_start, sentence_end = self._sentence_bounds(text, claim.start, claim.end)
        return ValidationFinding(
            kind=FindingKind.MEMORY_CLAIM,
            valid=False,
            original_span=text[sentence_start:sentence_end],
            corrected_span=CORRECTION_TEMPLATE.format(subject=claim.subject),
            confidence=0.8,
            start=sentence_start,
            end=sentence_end,
        )

    def _find_support(self, keywords: frozenset[str], vocabulary: set[str]) -> Optional[tuple[str, float]]:
        """Return the first vocabulary word backing any keyword, with its match score."""
        if not vocabulary:
            return None

        for keyword in sorted(keywords):
            if keyword in vocabulary:
                return keyword, 100.0

        for keyword in sorted(keywords):
            match = process.extractOne(
                keyword,
                vocabulary,
                scorer=fuzz.ratio,
                score_cutoff=self.fuzzy_threshold,
            )
            if match:
                return match[0], match[1]
        return None

    @staticmethod
    def _sentence_bounds(text: str, start: int, end: int) -> tuple[int, int]:
        """Widen a span to the sentence holding it."""
        sentence_start = start
        while sentence_start > 0 and text[sentence_start - 1] not in _SENTENCE_END:
            sentence_start -= 1
        while sentence_start < start and text[sentence_start].isspace():
            sentence_start += 1

        sentence_end = end
        while sentence_end < len(text) and text[sentence_end] not in _SENTENCE_END:
            sentence_end += 1
        if sentence_end < len(text) and text[sentence_end] != "\n":
            sentence_end += 1
        return sentence_start, sentence_end

    @staticmethod
    def _apply_corrections(text: str, findings: list[ValidationFinding]) -> str:
        """Replace each unsupported claim's sentence once, back to front."""
        corrections = sorted(
            (f for f in findings if not f.valid and f.corrected_span),
            key=lambda f: f.start,
        )

        kept = []
        last_end = -1
        for finding in corrections:
            if finding.start < last_end:
                continue
            kept.append(finding)
            last_end = finding.end

        for finding in reversed(kept):
            text = text[:finding.start] + finding.corrected_span + text[finding.end:]
        return text
