"""Change notifications emitted by the registry after each successful write."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from featuregate.models import FeatureFlag


class ChangeKind(Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class FlagChange:
    kind: ChangeKind
    flag_id: str
    name: str
    # New record for CREATED/UPDATED; None once deleted.
    flag: FeatureFlag | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "type": f"featuregate.flag.{self.kind.value}",
            "flag_id": self.flag_id,
            "name": self.name,
            "time": self.time.isoformat(),
        }


ChangeListener = Callable[[FlagChange], Awaitable[None]]
