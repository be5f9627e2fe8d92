"""Feature flag records, drafts and evaluation subjects.

FeatureFlag is an immutable snapshot. The registry replaces a record on
every mutation instead of editing it in place, so readers holding an older
snapshot never observe a half-applied change.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping

MIN_ROLLOUT = 0
MAX_ROLLOUT = 100

# Fields an admin may change through FlagRegistry.update().
MUTABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "enabled",
        "rollout_percentage",
        "target_roles",
        "target_users",
        "metadata",
        "workspace_id",
    }
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FeatureFlag:
    id: str
    name: str
    description: str = ""
    enabled: bool = True
    rollout_percentage: int = MAX_ROLLOUT
    target_roles: frozenset[str] = frozenset()
    target_users: frozenset[str] = frozenset()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)
    workspace_id: str | None = None
    created_by: str = "system"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        # Read-only and detached from the caller's dict; mutate via the registry.
        object.__setattr__(self, "metadata", MappingProxyType(copy.deepcopy(dict(self.metadata))))

    @property
    def scope(self) -> str:
        return "workspace" if self.workspace_id else "global"

    def evolve(self, **changes: Any) -> FeatureFlag:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "rollout_percentage": self.rollout_percentage,
            "target_roles": sorted(self.target_roles),
            "target_users": sorted(self.target_users),
            "metadata": copy.deepcopy(dict(self.metadata)),
            "workspace_id": self.workspace_id,
            "scope": self.scope,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class FlagDraft:
    """Input for FlagRegistry.create(); defaults match a freshly created flag."""

    name: str
    description: str = ""
    enabled: bool = True
    rollout_percentage: int = MAX_ROLLOUT
    target_roles: Iterable[str] = ()
    target_users: Iterable[str] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    workspace_id: str | None = None
    created_by: str = "system"


@dataclass(frozen=True)
class Subject:
    """Who a flag is evaluated for. Role comes pre-resolved from auth."""

    id: str
    role: str = ""
    workspace_id: str | None = None
