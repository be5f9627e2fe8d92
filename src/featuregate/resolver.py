"""Availability of one flag for one subject.

Order (short-circuits):
  1. master switch off           -> hidden
  2. workspace-scoped elsewhere  -> hidden
  3. role not in target_roles    -> hidden
  4. subject in target_users     -> visible, regardless of percentage
  5. rollout bucket < percentage -> visible
"""

from __future__ import annotations

from typing import Iterable

from featuregate.models import FeatureFlag, Subject
from featuregate.rollout import in_rollout


class AvailabilityResolver:
    """Stateless; reads only the flag snapshot it is handed."""

    def is_available(self, flag: FeatureFlag, subject: Subject) -> bool:
        if not flag.enabled:
            return False
        if flag.workspace_id is not None and flag.workspace_id != subject.workspace_id:
            return False
        if flag.target_roles and subject.role not in flag.target_roles:
            return False
        if flag.target_users and subject.id in flag.target_users:
            return True
        return in_rollout(flag.id, subject.id, flag.rollout_percentage)

    def available_flags(self, flags: Iterable[FeatureFlag], subject: Subject) -> list[FeatureFlag]:
        return [f for f in flags if self.is_available(f, subject)]
