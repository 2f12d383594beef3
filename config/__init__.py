"""Configuration for the tutor middleware."""

from .settings import Settings
from .feature_flags import Feature, FeatureGate, FeatureFlagConfig, StaticFeatureGate, AllFeaturesGate
from .policy import MiddlewarePolicy, load_policy

__all__ = [
    "Settings",
    "Feature",
    "FeatureGate",
    "FeatureFlagConfig",
    "StaticFeatureGate",
    "AllFeaturesGate",
    "MiddlewarePolicy",
    "load_policy",
]
