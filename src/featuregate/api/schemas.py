"""Request/response bodies for the flag HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from featuregate.models import FeatureFlag


class FlagCreate(BaseModel):
    name: str
    description: str = ""
    enabled: bool = True
    rollout_percentage: int = 100
    target_roles: list[str] = Field(default_factory=list)
    target_users: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    workspace_id: str | None = None


class FlagUpdate(BaseModel):
    """Partial update -- only the fields sent are changed."""

    name: str | None = None
    description: str | None = None
    enabled: bool | None = None
    rollout_percentage: int | None = None
    target_roles: list[str] | None = None
    target_users: list[str] | None = None
    metadata: dict[str, Any] | None = None
    workspace_id: str | None = None
    expected_updated_at: datetime | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"expected_updated_at"})


class FlagToggle(BaseModel):
    enabled: bool
    expected_updated_at: datetime | None = None


class FlagOut(BaseModel):
    id: str
    name: str
    description: str
    enabled: bool
    rollout_percentage: int
    target_roles: list[str]
    target_users: list[str]
    metadata: dict[str, Any]
    workspace_id: str | None
    scope: str
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_flag(cls, flag: FeatureFlag) -> FlagOut:
        return cls(**flag.to_dict())
