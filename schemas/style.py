"""Learning style schemas."""

from enum import Enum
from pydantic import BaseModel, Field

UNDETERMINED = "undetermined"


class StyleDimension(str, Enum):
    """Learning style dimension."""
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    READING = "reading"


class DepthPreference(str, Enum):
    """Preferred level of detail."""
    BRIEF = "brief"
    MEDIUM = "medium"
    DETAILED = "detailed"


class StyleProfile(BaseModel):
    """Cumulative style estimate for one conversation or user."""
    confidences: dict[StyleDimension, float] = Field(
        default_factory=lambda: {d: 0.0 for d in StyleDimension}
    )
    raw_counts: dict[StyleDimension, int] = Field(
        default_factory=lambda: {d: 0 for d in StyleDimension}
    )
    dominant: str = UNDETERMINED
    preferred_depth: DepthPreference = DepthPreference.MEDIUM
    brief_count: int = 0
    detailed_count: int = 0

    def confidence(self, dimension: StyleDimension) -> float:
        """Confidence for a single dimension."""
        return self.confidences.get(dimension, 0.0)

    @property
    def is_determined(self) -> bool:
        return self.dominant != UNDETERMINED
