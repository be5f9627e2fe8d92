"""Flag Registry -- sole authority for FeatureFlag records.

Validates admin input, keeps names unique, serializes writers per flag and
guards every update with a compare-and-swap on updated_at so a concurrent
editor in another process surfaces as ConflictError instead of a lost update.
Subscribers are notified after each successful write, before the call
returns.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping, TypeVar

from featuregate.errors import (
    ConflictError,
    DuplicateNameError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from featuregate.events import ChangeKind, ChangeListener, FlagChange
from featuregate.models import MAX_ROLLOUT, MIN_ROLLOUT, MUTABLE_FIELDS, FeatureFlag, FlagDraft, utcnow
from featuregate.storage.base import FlagRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ONE_TICK = timedelta(microseconds=1)


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name must be a non-empty string", field="name")
    return name.strip()


def _validate_rollout(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("rollout_percentage must be an integer", field="rollout_percentage")
    if not MIN_ROLLOUT <= value <= MAX_ROLLOUT:
        raise ValidationError(
            f"rollout_percentage must be between {MIN_ROLLOUT} and {MAX_ROLLOUT}, got {value}",
            field="rollout_percentage",
        )
    return value


def _validate_strings(values: Any, field: str) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str) or not isinstance(values, Iterable):
        raise ValidationError(f"{field} must be a collection of strings", field=field)
    items = list(values)
    if not all(isinstance(v, str) and v for v in items):
        raise ValidationError(f"{field} entries must be non-empty strings", field=field)
    return frozenset(items)


def _validate_field(name: str, value: Any) -> Any:
    if name == "name":
        return _validate_name(value)
    if name == "rollout_percentage":
        return _validate_rollout(value)
    if name in ("target_roles", "target_users"):
        return _validate_strings(value, name)
    if name == "enabled":
        if not isinstance(value, bool):
            raise ValidationError("enabled must be a boolean", field="enabled")
        return value
    if name == "description":
        if not isinstance(value, str):
            raise ValidationError("description must be a string", field="description")
        return value
    if name == "metadata":
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValidationError("metadata must be a mapping", field="metadata")
        return dict(value)
    if name == "workspace_id":
        if value is not None and (not isinstance(value, str) or not value):
            raise ValidationError("workspace_id must be a non-empty string or null", field="workspace_id")
        return value
    raise ValidationError(f"Field cannot be changed: {name}", field=name)


class FlagRegistry:
    def __init__(
        self,
        repository: FlagRepository,
        max_write_retries: int = 3,
        retry_backoff_seconds: float = 0.05,
    ) -> None:
        self._repository = repository
        self._max_write_retries = max_write_retries
        self._retry_backoff = retry_backoff_seconds
        self._listeners: list[ChangeListener] = []
        # Entries live only while a writer holds or awaits the lock.
        self._flag_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        # Create and rename check uniqueness across records; serialize them.
        self._name_lock = asyncio.Lock()
        self._last_stamp: datetime | None = None

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, change: FlagChange) -> None:
        for listener in self._listeners:
            try:
                await listener(change)
            except Exception:
                logger.exception("Flag change listener failed for %s %s", change.kind.value, change.flag_id)

    async def _with_retries(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await call()
            except StorageError:
                attempt += 1
                if attempt > self._max_write_retries:
                    logger.error("Storage %s failed after %d attempts", operation, attempt)
                    raise
                logger.warning("Storage %s failed (attempt %d), retrying", operation, attempt)
                await asyncio.sleep(self._retry_backoff * attempt)

    # -- reads ---------------------------------------------------------------

    async def get_all(self) -> list[FeatureFlag]:
        flags = await self._repository.list_all()
        return sorted(flags, key=lambda f: (f.created_at, f.name))

    async def get(self, flag_id: str) -> FeatureFlag:
        flag = await self._repository.get(flag_id)
        if flag is None:
            raise NotFoundError(flag_id)
        return flag

    async def get_by_name(self, name: str) -> FeatureFlag:
        for flag in await self._repository.list_all():
            if flag.name == name:
                return flag
        raise NotFoundError(name, by="name")

    # -- writes --------------------------------------------------------------

    async def create(self, draft: FlagDraft) -> FeatureFlag:
        fields = {
            key: _validate_field(key, getattr(draft, key))
            for key in (
                "name",
                "description",
                "enabled",
                "rollout_percentage",
                "target_roles",
                "target_users",
                "metadata",
                "workspace_id",
            )
        }
        now = self._stamp()
        flag = FeatureFlag(
            id=str(uuid.uuid4()),
            created_by=draft.created_by or "system",
            created_at=now,
            updated_at=now,
            **fields,
        )

        async with self._name_lock:
            if await self._name_taken(flag.name):
                raise DuplicateNameError(flag.name)
            await self._with_retries("insert", lambda: self._repository.insert(flag))

        logger.info("Created feature flag %s (%s)", flag.name, flag.id)
        await self._notify(FlagChange(ChangeKind.CREATED, flag.id, flag.name, flag))
        return flag

    async def update(
        self,
        flag_id: str,
        changes: Mapping[str, Any],
        expected_updated_at: datetime | None = None,
    ) -> FeatureFlag:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field cannot be changed: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
        validated = {key: _validate_field(key, value) for key, value in changes.items()}

        async with self._locked(flag_id):
            if "name" in validated:
                async with self._name_lock:
                    updated = await self._apply(flag_id, validated, expected_updated_at)
            else:
                updated = await self._apply(flag_id, validated, expected_updated_at)

        logger.info("Updated feature flag %s (%s): %s", updated.name, updated.id, sorted(validated))
        await self._notify(FlagChange(ChangeKind.UPDATED, updated.id, updated.name, updated))
        return updated

    async def toggle(
        self,
        flag_id: str,
        enabled: bool,
        expected_updated_at: datetime | None = None,
    ) -> FeatureFlag:
        return await self.update(flag_id, {"enabled": enabled}, expected_updated_at=expected_updated_at)

    async def delete(self, flag_id: str) -> None:
        async with self._locked(flag_id):
            current = await self.get(flag_id)
            await self._with_retries("delete", lambda: self._repository.delete(flag_id))

        logger.info("Deleted feature flag %s (%s)", current.name, flag_id)
        await self._notify(FlagChange(ChangeKind.DELETED, flag_id, current.name))

    # -- internals -----------------------------------------------------------

    @asynccontextmanager
    async def _locked(self, flag_id: str) -> AsyncIterator[None]:
        lock = self._flag_locks.setdefault(flag_id, asyncio.Lock())
        self._lock_users[flag_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[flag_id] -= 1
            if self._lock_users[flag_id] == 0:
                del self._lock_users[flag_id]
                del self._flag_locks[flag_id]

    def _stamp(self, after: datetime | None = None) -> datetime:
        """Wall-clock UTC time, nudged forward so stamps never repeat or go back."""
        now = utcnow()
        for floor in (self._last_stamp, after):
            if floor is not None and now <= floor:
                now = floor + _ONE_TICK
        self._last_stamp = now
        return now

    async def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        flags = await self._repository.list_all()
        return any(f.name == name and f.id != exclude_id for f in flags)

    async def _apply(
        self,
        flag_id: str,
        validated: dict[str, Any],
        expected_updated_at: datetime | None,
    ) -> FeatureFlag:
        current = await self.get(flag_id)
        if expected_updated_at is not None and current.updated_at != expected_updated_at:
            raise ConflictError(flag_id, expected=expected_updated_at, actual=current.updated_at)
        if "name" in validated and validated["name"] != current.name:
            if await self._name_taken(validated["name"], exclude_id=flag_id):
                raise DuplicateNameError(validated["name"])

        now = self._stamp(after=current.updated_at)
        updated = current.evolve(updated_at=now, **validated)

        await self._with_retries("replace", lambda: self._repository.replace(updated, current.updated_at))
        return updated
