"""Persistence boundary for flag records.

Implementations must make insert/replace/delete atomic per record and
raise StorageError for transient failures so the registry can retry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from featuregate.models import FeatureFlag


class FlagRepository(Protocol):
    async def list_all(self) -> list[FeatureFlag]:
        ...

    async def get(self, flag_id: str) -> FeatureFlag | None:
        ...

    async def insert(self, flag: FeatureFlag) -> None:
        """Store a new record. DuplicateNameError if the name is taken."""
        ...

    async def replace(self, flag: FeatureFlag, expected_updated_at: datetime) -> None:
        """Compare-and-swap on updated_at.

        NotFoundError if the id is gone, ConflictError if the stored
        updated_at no longer equals *expected_updated_at*.
        """
        ...

    async def delete(self, flag_id: str) -> None:
        ...
