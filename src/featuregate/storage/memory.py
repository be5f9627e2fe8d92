"""In-process flag repository used by tests and single-node deployments."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from featuregate.errors import ConflictError, DuplicateNameError, NotFoundError
from featuregate.models import FeatureFlag


class InMemoryFlagRepository:
    def __init__(self, flags: Iterable[FeatureFlag] | None = None) -> None:
        self._flags: dict[str, FeatureFlag] = {}
        for flag in flags or ():
            self._check_name(flag)
            self._flags[flag.id] = flag

    def _check_name(self, flag: FeatureFlag) -> None:
        for other in self._flags.values():
            if other.name == flag.name and other.id != flag.id:
                raise DuplicateNameError(flag.name)

    async def list_all(self) -> list[FeatureFlag]:
        return list(self._flags.values())

    async def get(self, flag_id: str) -> FeatureFlag | None:
        return self._flags.get(flag_id)

    async def insert(self, flag: FeatureFlag) -> None:
        self._check_name(flag)
        self._flags[flag.id] = flag

    async def replace(self, flag: FeatureFlag, expected_updated_at: datetime) -> None:
        current = self._flags.get(flag.id)
        if current is None:
            raise NotFoundError(flag.id)
        if current.updated_at != expected_updated_at:
            raise ConflictError(flag.id, expected=expected_updated_at, actual=current.updated_at)
        self._check_name(flag)
        self._flags[flag.id] = flag

    async def delete(self, flag_id: str) -> None:
        if self._flags.pop(flag_id, None) is None:
            raise NotFoundError(flag_id)
