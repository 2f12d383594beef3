"""Pre- and post-processing agents for the tutor middleware."""

from .style_classifier import LearningStyleClassifier
from .context_builder import PromptContextBuilder
from .memory_claim_validator import MemoryClaimValidator
from .math_validator import MathValidator
from .exceptions import RecoverableValidationFailure

__all__ = [
    "LearningStyleClassifier",
    "PromptContextBuilder",
    "MemoryClaimValidator",
    "MathValidator",
    "RecoverableValidationFailure",
]
