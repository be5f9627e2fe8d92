"""SQL persistence for feature flags."""

from featuregate.db.engine import create_engine, create_schema, get_session_factory
from featuregate.db.models import Base, FeatureFlagRow

__all__ = [
    "Base",
    "FeatureFlagRow",
    "create_engine",
    "create_schema",
    "get_session_factory",
]
