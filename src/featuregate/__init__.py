"""Feature Gate -- feature flag evaluation with percentage rollout and targeting."""

from featuregate.errors import (
    ConflictError,
    DuplicateNameError,
    FlagError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from featuregate.models import FeatureFlag, FlagDraft, Subject
from featuregate.registry import FlagRegistry
from featuregate.resolver import AvailabilityResolver
from featuregate.rollout import bucket, in_rollout
from featuregate.service import FlagService, SubjectFlags

__all__ = [
    "AvailabilityResolver",
    "ConflictError",
    "DuplicateNameError",
    "FeatureFlag",
    "FlagDraft",
    "FlagError",
    "FlagRegistry",
    "FlagService",
    "NotFoundError",
    "StorageError",
    "Subject",
    "SubjectFlags",
    "ValidationError",
    "bucket",
    "in_rollout",
]
