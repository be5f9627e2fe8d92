"""Flag Service -- evaluation entry point and admin facade.

The service keeps one immutable snapshot of all flags (name -> record) and a
version counter. Registry writes are applied to the snapshot copy-on-write
before the admin call returns, so the next evaluation on this instance sees
them. Changes made by other processes arrive when the snapshot ages past
the staleness window (or on invalidate()), and a reload that fails or times
out keeps serving the last good snapshot.

Evaluation is fail-closed: is_feature_enabled() never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from featuregate.events import FlagChange
from featuregate.models import MAX_ROLLOUT, FeatureFlag, FlagDraft, Subject
from featuregate.registry import FlagRegistry
from featuregate.resolver import AvailabilityResolver

logger = logging.getLogger(__name__)

DEFAULT_STALENESS_SECONDS = 5.0
DEFAULT_STORAGE_TIMEOUT_SECONDS = 2.0
MAX_CACHED_PROJECTIONS = 10_000


@dataclass(frozen=True)
class FlagSnapshot:
    version: int
    by_name: Mapping[str, FeatureFlag]
    flags: tuple[FeatureFlag, ...]
    loaded_at: float


def _build_snapshot(version: int, flags: Iterable[FeatureFlag], loaded_at: float) -> FlagSnapshot:
    ordered = tuple(sorted(flags, key=lambda f: (f.created_at, f.name)))
    return FlagSnapshot(
        version=version,
        by_name=MappingProxyType({f.name: f for f in ordered}),
        flags=ordered,
        loaded_at=loaded_at,
    )


class SubjectFlags:
    """Flags as seen by one session's subject."""

    def __init__(self, service: FlagService, subject: Subject) -> None:
        self._service = service
        self.subject = subject

    async def is_enabled(self, name: str) -> bool:
        return await self._service.is_feature_enabled(name, self.subject)

    async def available(self) -> list[FeatureFlag]:
        return await self._service.list_available_flags(self.subject)


class FlagService:
    def __init__(
        self,
        registry: FlagRegistry,
        resolver: AvailabilityResolver | None = None,
        staleness_seconds: float = DEFAULT_STALENESS_SECONDS,
        storage_timeout_seconds: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._resolver = resolver or AvailabilityResolver()
        self._staleness = staleness_seconds
        self._timeout = storage_timeout_seconds
        self._clock = clock

        self._version = 0
        self._snapshot: FlagSnapshot | None = None
        self._invalidated = False
        self._reload_task: asyncio.Task[FlagSnapshot] | None = None
        self._projections: dict[Subject, tuple[int, tuple[FeatureFlag, ...]]] = {}

        registry.subscribe(self._on_change)

    @property
    def registry(self) -> FlagRegistry:
        return self._registry

    @property
    def version(self) -> int:
        return self._version

    # -- consumer surface ----------------------------------------------------

    def for_subject(self, subject: Subject) -> SubjectFlags:
        return SubjectFlags(self, subject)

    async def is_feature_enabled(self, name: str, subject: Subject) -> bool:
        try:
            snapshot = await self._current_snapshot()
            if snapshot is None:
                logger.warning("No flag snapshot loaded; %s evaluated as disabled", name)
                return False
            flag = snapshot.by_name.get(name)
            if flag is None:
                logger.debug("Unknown feature flag %s evaluated as disabled", name)
                return False
            return self._resolver.is_available(flag, subject)
        except Exception:
            logger.exception("Evaluating feature flag %s failed; treating as disabled", name)
            return False

    async def list_available_flags(self, subject: Subject) -> list[FeatureFlag]:
        try:
            snapshot = await self._current_snapshot()
            if snapshot is None:
                return []
            cached = self._projections.get(subject)
            if cached is not None and cached[0] == snapshot.version:
                return list(cached[1])
            visible = tuple(self._resolver.available_flags(snapshot.flags, subject))
            if len(self._projections) >= MAX_CACHED_PROJECTIONS:
                self._projections.clear()
            self._projections[subject] = (snapshot.version, visible)
            return list(visible)
        except Exception:
            logger.exception("Listing available flags for %s failed", subject.id)
            return []

    # -- admin surface -------------------------------------------------------

    async def list_all_flags(self) -> list[FeatureFlag]:
        return await self._registry.get_all()

    async def get_flag(self, flag_id: str) -> FeatureFlag:
        return await self._registry.get(flag_id)

    async def create_flag(
        self,
        name: str,
        description: str = "",
        enabled: bool = True,
        rollout_percentage: int = MAX_ROLLOUT,
        target_roles: Iterable[str] = (),
        target_users: Iterable[str] = (),
        metadata: dict[str, Any] | None = None,
        workspace_id: str | None = None,
        created_by: str = "system",
    ) -> FeatureFlag:
        draft = FlagDraft(
            name=name,
            description=description,
            enabled=enabled,
            rollout_percentage=rollout_percentage,
            target_roles=target_roles,
            target_users=target_users,
            metadata=metadata or {},
            workspace_id=workspace_id,
            created_by=created_by,
        )
        return await self._registry.create(draft)

    async def update_flag(self, flag_id: str, changes: Mapping[str, Any], expected_updated_at=None) -> FeatureFlag:
        return await self._registry.update(flag_id, changes, expected_updated_at=expected_updated_at)

    async def toggle_flag(self, flag_id: str, enabled: bool, expected_updated_at=None) -> FeatureFlag:
        return await self._registry.toggle(flag_id, enabled, expected_updated_at=expected_updated_at)

    async def delete_flag(self, flag_id: str) -> None:
        await self._registry.delete(flag_id)

    # -- consistency ---------------------------------------------------------

    def invalidate(self) -> None:
        """Reload from the registry on the next read."""
        self._invalidated = True

    async def refresh(self) -> FlagSnapshot:
        """Reload now; raises on storage failure."""
        return await self._load()

    async def _on_change(self, change: FlagChange) -> None:
        self._version += 1
        self._projections.clear()
        snapshot = self._snapshot
        if snapshot is None:
            return
        flags = [f for f in snapshot.flags if f.id != change.flag_id]
        if change.flag is not None:
            flags.append(change.flag)
        # Keep loaded_at: local writes say nothing about other instances.
        self._snapshot = _build_snapshot(self._version, flags, snapshot.loaded_at)

    def _is_fresh(self, snapshot: FlagSnapshot) -> bool:
        return not self._invalidated and self._clock() - snapshot.loaded_at < self._staleness

    async def _current_snapshot(self) -> FlagSnapshot | None:
        snapshot = self._snapshot
        if snapshot is not None and self._is_fresh(snapshot):
            return snapshot

        if self._reload_task is None or self._reload_task.done():
            self._reload_task = asyncio.create_task(self._load())
            self._reload_task.add_done_callback(_consume_result)
        try:
            return await asyncio.wait_for(asyncio.shield(self._reload_task), self._timeout)
        except Exception as e:
            if snapshot is None:
                logger.warning("Loading feature flags failed (%s); evaluating closed", str(e) or type(e).__name__)
                return None
            logger.warning(
                "Reloading feature flags failed (%s); serving snapshot v%d",
                str(e) or type(e).__name__,
                snapshot.version,
            )
            # Back off for one staleness window before the next attempt.
            current = self._snapshot or snapshot
            self._snapshot = replace(current, loaded_at=self._clock())
            self._invalidated = False
            return self._snapshot

    async def _load(self) -> FlagSnapshot:
        while True:
            version = self._version
            flags = await self._registry.get_all()
            # A local write landed mid-read; read again so it is not lost.
            if version == self._version:
                break
        self._version += 1
        self._invalidated = False
        self._projections.clear()
        self._snapshot = _build_snapshot(self._version, flags, self._clock())
        logger.debug("Loaded %d feature flags (snapshot v%d)", len(flags), self._version)
        return self._snapshot


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()
