"""Feature gating for the validation and adaptation categories."""

import hashlib
import logging
from abc import ABC, abstractmethod
from enum import Enum
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Feature(str, Enum):
    """Feature categories the middleware consults per turn."""
    MEMORY_VALIDATION = "memory_validation"
    MATH_VALIDATION = "math_validation"
    STYLE_ADAPTATION = "style_adaptation"
    PROFILE_STORAGE = "profile_storage"


class FeatureGate(ABC):
    """Oracle answering whether a feature is on for a user."""

    @abstractmethod
    def is_enabled(self, feature: Feature, user_id: str) -> bool:
        """Return True when ``feature`` is enabled for ``user_id``."""
        pass


class FeatureFlagConfig(BaseModel):
    """Named switches plus rollout audience."""
    memory_validation: bool = False
    math_validation: bool = False
    style_adaptation: bool = False
    profile_storage: bool = False

    rollout_percentage: float = Field(0.0, ge=0.0, le=1.0)
    beta_users: set[str] = Field(default_factory=set)
    internal_users: set[str] = Field(default_factory=set)

    def is_globally_enabled(self, feature: Feature) -> bool:
        """Check the global switch for a feature."""
        return bool(getattr(self, feature.value))

    @classmethod
    def development(cls) -> "FeatureFlagConfig":
        """All features enabled for all users."""
        return cls(
            memory_validation=True,
            math_validation=True,
            style_adaptation=True,
            profile_storage=True,
            rollout_percentage=1.0,
        )

    @classmethod
    def staging(cls, beta_users: set[str] = None, internal_users: set[str] = None) -> "FeatureFlagConfig":
        """All features enabled for beta and internal users only."""
        return cls(
            memory_validation=True,
            math_validation=True,
            style_adaptation=True,
            profile_storage=True,
            rollout_percentage=0.0,
            beta_users=beta_users or set(),
            internal_users=internal_users or set(),
        )

    @classmethod
    def production(cls, percentage: float = 0.0) -> "FeatureFlagConfig":
        """Validators on for a rollout slice; profile storage waits for consent UI."""
        return cls(
            memory_validation=True,
            math_validation=True,
            style_adaptation=False,
            profile_storage=False,
            rollout_percentage=min(max(percentage, 0.0), 1.0),
        )


class StaticFeatureGate(FeatureGate):
    """Feature gate driven by an injected FeatureFlagConfig."""

    def __init__(self, config: FeatureFlagConfig = None):
        """
        Initialize gate.

        Args:
            config: Flag configuration (defaults to everything off)
        """
        self.config = config or FeatureFlagConfig()

    def is_enabled(self, feature: Feature, user_id: str) -> bool:
        """Check if a feature is enabled for a specific user."""
        # Internal users get all features
        if user_id in self.config.internal_users:
            return True

        if not self.config.is_globally_enabled(feature):
            return False

        if user_id in self.config.beta_users:
            return True

        if self.config.rollout_percentage > 0.0:
            return self.bucket(user_id) < self.config.rollout_percentage

        return False

    @staticmethod
    def bucket(user_id: str) -> float:
        """Stable rollout bucket in [0, 1) for a user."""
        digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()
        return (int(digest[:8], 16) % 100) / 100.0


class AllFeaturesGate(FeatureGate):
    """Gate that enables every feature, for local runs and tests."""

    def is_enabled(self, feature: Feature, user_id: str) -> bool:
        return True
