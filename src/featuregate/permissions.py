"""Who may change flags. Resolved from the caller's role, outside FlagService.

  superadmin                    -> everything
  admin / label_admin / manager -> edit descriptions and metadata only
  anyone else                   -> view only
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

SUPERADMIN_ROLE = "superadmin"
EDITOR_ROLES = frozenset({"admin", "label_admin", "manager"})

_KEY_AND_ROLLOUT_FIELDS = frozenset({"name", "rollout_percentage"})
_TARGETING_FIELDS = frozenset({"target_roles", "target_users", "workspace_id"})


class PermissionDenied(Exception):
    def __init__(self, role: str, action: str) -> None:
        super().__init__(f"Role '{role or 'anonymous'}' may not {action}")
        self.role = role
        self.action = action


@dataclass(frozen=True)
class FlagCapabilities:
    role: str
    can_toggle: bool = False
    can_edit: bool = False
    can_create: bool = False
    can_delete: bool = False
    can_edit_key_and_rollout: bool = False
    can_edit_targeting: bool = False

    @property
    def view_only(self) -> bool:
        return not self.can_edit

    @classmethod
    def for_role(cls, role: str | None) -> FlagCapabilities:
        role = role or ""
        if role == SUPERADMIN_ROLE:
            return cls(
                role=role,
                can_toggle=True,
                can_edit=True,
                can_create=True,
                can_delete=True,
                can_edit_key_and_rollout=True,
                can_edit_targeting=True,
            )
        if role in EDITOR_ROLES:
            return cls(role=role, can_edit=True)
        return cls(role=role)

    def require(self, allowed: bool, action: str) -> None:
        if not allowed:
            raise PermissionDenied(self.role, action)

    def check_changes(self, fields: Iterable[str]) -> None:
        """Raise PermissionDenied for any field this role may not edit."""
        fields = set(fields)
        self.require(self.can_edit, "edit feature flags")
        if "enabled" in fields:
            self.require(self.can_toggle, "toggle feature flags")
        if fields & _KEY_AND_ROLLOUT_FIELDS:
            self.require(self.can_edit_key_and_rollout, "change flag keys or rollout percentage")
        if fields & _TARGETING_FIELDS:
            self.require(self.can_edit_targeting, "change flag targeting")
