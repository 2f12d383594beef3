"""Pipeline hand-off schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .style import StyleProfile
from .validation import ValidationFinding


class TurnPhase(str, Enum):
    """Per-turn processing state."""
    IDLE = "Idle"
    PRE_PROCESSING = "PreProcessing"
    GENERATING = "Generating"
    POST_PROCESSING = "PostProcessing"
    COMPLETE = "Complete"


class PromptBundle(BaseModel):
    """Context handed to the generator for one turn."""
    conversation_id: str
    query: str
    recent_window: str = ""
    topic_summary: str = ""
    relevant_past: str = ""
    instruction: str = ""
    style_profile: Optional[StyleProfile] = None
    style_guidance: list[str] = Field(default_factory=list)

    @property
    def is_recall_query(self) -> bool:
        return bool(self.relevant_past)

    def to_system_prompt(self) -> str:
        """Render the bundle as a system prompt."""
        parts = ["You are a patient, accurate tutor."]

        parts.append("\n=== Conversation So Far ===")
        parts.append(self.recent_window or "(No prior messages in this conversation)")

        if self.topic_summary:
            parts.append("\n=== Key Topics ===")
            parts.append(self.topic_summary)

        if self.relevant_past:
            parts.append("\n=== Relevant Past Context ===")
            parts.append(self.relevant_past)

        if self.style_guidance:
            parts.append("\n=== Learning Style Adaptation ===")
            for line in self.style_guidance:
                parts.append(f"- {line}")

        if self.instruction:
            parts.append("\n=== Instructions ===")
            parts.append(self.instruction)

        return "\n".join(parts)

    def to_messages(self) -> list[dict[str, str]]:
        """Render the bundle as chat messages."""
        return [
            {"role": "system", "content": self.to_system_prompt()},
            {"role": "user", "content": self.query},
        ]


class TelemetryRecord(BaseModel):
    """Write-once record of one post-processed turn."""
    model_config = ConfigDict(frozen=True)

    turn_id: str
    conversation_id: str
    user_id: str
    findings: list[ValidationFinding] = Field(default_factory=list)
    style_snapshot: Optional[StyleProfile] = None
    latency_ms: float = 0.0
    used_fallback: bool = False
    skipped_features: list[str] = Field(default_factory=list)
    validator_errors: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class PostProcessResult(BaseModel):
    """What the user sees, plus the evidence behind it."""
    final_text: str
    findings: list[ValidationFinding] = Field(default_factory=list)
    telemetry: TelemetryRecord

    @property
    def used_fallback(self) -> bool:
        return self.telemetry.used_fallback
