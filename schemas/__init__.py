"""Pydantic schemas for the tutor middleware."""

from .memory import Role, Turn, TopicRecord, TaggedTurn, ScoredTurn
from .style import StyleDimension, DepthPreference, StyleProfile, UNDETERMINED
from .validation import FindingKind, ValidationFinding, ValidationReport
from .responses import TurnPhase, PromptBundle, TelemetryRecord, PostProcessResult

__all__ = [
    "Role",
    "Turn",
    "TopicRecord",
    "TaggedTurn",
    "ScoredTurn",
    "StyleDimension",
    "DepthPreference",
    "StyleProfile",
    "UNDETERMINED",
    "FindingKind",
    "ValidationFinding",
    "ValidationReport",
    "TurnPhase",
    "PromptBundle",
    "TelemetryRecord",
    "PostProcessResult",
]
