"""Learning style classifier driven by indicator-phrase tables."""

import re
import logging
from typing import Optional

from config.policy import MiddlewarePolicy, load_policy
from schemas.style import (
    DepthPreference,
    StyleDimension,
    StyleProfile,
    UNDETERMINED,
)

logger = logging.getLogger(__name__)


def _compile_phrases(phrases: list[str]) -> list[re.Pattern]:
    return [
        re.compile(r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)")
        for phrase in phrases
    ]


class LearningStyleClassifier:
    """Cumulative per-dimension style estimate over a conversation's user turns."""

    RECOMMENDATIONS = {
        StyleDimension.VISUAL: [
            "Include diagrams, charts, or visual examples",
            "Use formatting and layout to make structure visible",
        ],
        StyleDimension.AUDITORY: [
            "Provide verbal explanations and analogies",
            "Use conversational, descriptive language",
        ],
        StyleDimension.KINESTHETIC: [
            "Offer hands-on exercises and practice problems",
            "Include interactive examples the learner can try",
        ],
        StyleDimension.READING: [
            "Provide written summaries and bullet points",
            "Point to definitions and further reading",
        ],
    }
    DEPTH_RECOMMENDATIONS = {
        DepthPreference.BRIEF: [
            "Keep responses concise with key takeaways",
            "Offer to expand on any part in more detail",
        ],
        DepthPreference.DETAILED: [
            "Provide comprehensive explanations",
            "Include step-by-step breakdowns",
        ],
    }

    def __init__(self, policy: Optional[MiddlewarePolicy] = None, threshold: float = 0.3):
        """
        Initialize classifier with indicator tables.

        Args:
            policy: Rule tables (defaults to the bundled policy file)
            threshold: Minimum confidence for a dominant style
        """
        policy = policy or load_policy()
        self.threshold = threshold
        self.indicators = {
            dimension: _compile_phrases(policy.style_indicators.get(dimension.value, []))
            for dimension in StyleDimension
        }
        self.brief_indicators = _compile_phrases(policy.depth_indicators.get("brief", []))
        self.detailed_indicators = _compile_phrases(policy.depth_indicators.get("detailed", []))
        self.reset()

    def reset(self):
        """Forget all observed signal."""
        self.raw_counts = {dimension: 0 for dimension in StyleDimension}
        self.brief_count = 0
        self.detailed_count = 0

    def observe(self, text: str) -> dict[StyleDimension, int]:
        """
        Count indicator phrases in a user message.

        Args:
            text: User message

        Returns:
            Per-dimension increments from this message
        """
        text_lower = text.lower()
        increments = {}

        for dimension, patterns in self.indicators.items():
            hits = sum(len(p.findall(text_lower)) for p in patterns)
            if hits:
                self.raw_counts[dimension] += hits
                increments[dimension] = hits

        self.brief_count += sum(len(p.findall(text_lower)) for p in self.brief_indicators)
        self.detailed_count += sum(len(p.findall(text_lower)) for p in self.detailed_indicators)

        if increments:
            logger.debug(f"Style signal observed: {increments}")
        return increments

    @property
    def total(self) -> int:
        return sum(self.raw_counts.values())

    def confidence(self, dimension: StyleDimension) -> float:
        """Share of all observed signal that points at a dimension."""
        total = self.total
        if total == 0:
            return 0.0
        return self.raw_counts[dimension] / total

    def dominant_style(self) -> str:
        """Dominant dimension value, or "undetermined" below the threshold."""
        if self.total == 0:
            return UNDETERMINED

        best = max(StyleDimension, key=lambda d: self.raw_counts[d])
        if self.confidence(best) >= self.threshold:
            return best.value
        return UNDETERMINED

    def preferred_depth(self) -> DepthPreference:
        if self.brief_count > self.detailed_count * 1.5:
            return DepthPreference.BRIEF
        if self.detailed_count > self.brief_count * 1.5:
            return DepthPreference.DETAILED
        return DepthPreference.MEDIUM

    def profile(self) -> StyleProfile:
        """Snapshot of the current estimate."""
        return StyleProfile(
            confidences={d: self.confidence(d) for d in StyleDimension},
            raw_counts=dict(self.raw_counts),
            dominant=self.dominant_style(),
            preferred_depth=self.preferred_depth(),
            brief_count=self.brief_count,
            detailed_count=self.detailed_count,
        )

    def restore(self, profile: StyleProfile):
        """Seed counters from a stored profile."""
        for dimension in StyleDimension:
            self.raw_counts[dimension] = profile.raw_counts.get(dimension, 0)
        self.brief_count = profile.brief_count
        self.detailed_count = profile.detailed_count
        logger.info(f"Style profile restored: dominant={self.dominant_style()}")

    @classmethod
    def recommendations(cls, profile: StyleProfile, threshold: float = 0.3) -> list[str]:
        """Explanation hints for the generator based on a profile."""
        hints = []
        for dimension in StyleDimension:
            if profile.confidence(dimension) >= threshold:
                hints.extend(cls.RECOMMENDATIONS[dimension])
        hints.extend(cls.DEPTH_RECOMMENDATIONS.get(profile.preferred_depth, []))
        return hints
