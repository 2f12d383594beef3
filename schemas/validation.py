"""Response validation schemas."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class FindingKind(str, Enum):
    """Defect class a finding belongs to."""
    MEMORY_CLAIM = "memoryClaim"
    MATH_EXPRESSION = "mathExpression"


class ValidationFinding(BaseModel):
    """Outcome of checking one claim or one arithmetic statement."""
    kind: FindingKind
    valid: bool
    original_span: str
    corrected_span: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    start: int = Field(0, ge=0, description="Offset of the replaceable span in the checked text")
    end: int = Field(0, ge=0)
    evidence: Optional[str] = None


class ValidationReport(BaseModel):
    """Result of one validator pass over a response."""
    kind: FindingKind
    findings: list[ValidationFinding] = Field(default_factory=list)
    corrected_text: str
    correction_block: Optional[str] = None

    @property
    def valid(self) -> bool:
        return all(f.valid for f in self.findings)

    @property
    def corrections(self) -> list[ValidationFinding]:
        """Findings that needed a correction."""
        return [f for f in self.findings if not f.valid]
