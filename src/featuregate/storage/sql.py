"""SQLAlchemy-backed flag repository."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from featuregate.db.models import FeatureFlagRow
from featuregate.errors import ConflictError, DuplicateNameError, NotFoundError, StorageError
from featuregate.models import FeatureFlag

logger = logging.getLogger(__name__)

# Driver connect failures can surface as bare OSError.
_UNAVAILABLE = (OperationalError, InterfaceError, OSError)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_flag(row: FeatureFlagRow) -> FeatureFlag:
    return FeatureFlag(
        id=row.id,
        name=row.name,
        description=row.description or "",
        enabled=bool(row.enabled),
        rollout_percentage=int(row.rollout_percentage),
        target_roles=frozenset(row.target_roles or ()),
        target_users=frozenset(row.target_users or ()),
        metadata=dict(row.metadata_json or {}),
        workspace_id=row.workspace_id,
        created_by=row.created_by,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _columns(flag: FeatureFlag) -> dict:
    return {
        "name": flag.name,
        "description": flag.description,
        "enabled": flag.enabled,
        "rollout_percentage": flag.rollout_percentage,
        "target_roles": sorted(flag.target_roles),
        "target_users": sorted(flag.target_users),
        "metadata_json": dict(flag.metadata),
        "workspace_id": flag.workspace_id,
        "updated_at": flag.updated_at,
    }


class SqlFlagRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_all(self) -> list[FeatureFlag]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(FeatureFlagRow))
                return [row_to_flag(row) for row in result.scalars()]
        except _UNAVAILABLE as e:
            raise StorageError(f"Listing feature flags failed: {e}") from e

    async def get(self, flag_id: str) -> FeatureFlag | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(FeatureFlagRow, flag_id)
                return row_to_flag(row) if row is not None else None
        except _UNAVAILABLE as e:
            raise StorageError(f"Loading feature flag {flag_id} failed: {e}") from e

    async def insert(self, flag: FeatureFlag) -> None:
        row = FeatureFlagRow(id=flag.id, created_by=flag.created_by, created_at=flag.created_at, **_columns(flag))
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
        except IntegrityError as e:
            existing = await self.get(flag.id)
            if existing is None:
                raise DuplicateNameError(flag.name) from e
            if existing.name != flag.name:
                raise ConflictError(flag.id, actual=existing.updated_at) from e
            # A retried insert whose first commit went through.
            logger.info("Feature flag %s (%s) already stored", flag.name, flag.id)
        except _UNAVAILABLE as e:
            raise StorageError(f"Inserting feature flag {flag.name} failed: {e}") from e

    async def replace(self, flag: FeatureFlag, expected_updated_at: datetime) -> None:
        stmt = (
            update(FeatureFlagRow)
            .where(FeatureFlagRow.id == flag.id, FeatureFlagRow.updated_at == expected_updated_at)
            .values(**_columns(flag))
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    if result.rowcount == 1:
                        return
                    current = await session.get(FeatureFlagRow, flag.id)
        except IntegrityError as e:
            raise DuplicateNameError(flag.name) from e
        except _UNAVAILABLE as e:
            raise StorageError(f"Updating feature flag {flag.id} failed: {e}") from e

        if current is None:
            raise NotFoundError(flag.id)
        logger.warning("Optimistic update of flag %s lost the race", flag.id)
        raise ConflictError(flag.id, expected=expected_updated_at, actual=_aware(current.updated_at))

    async def delete(self, flag_id: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(delete(FeatureFlagRow).where(FeatureFlagRow.id == flag_id))
                    deleted = result.rowcount
        except _UNAVAILABLE as e:
            raise StorageError(f"Deleting feature flag {flag_id} failed: {e}") from e
        if deleted == 0:
            raise NotFoundError(flag_id)
