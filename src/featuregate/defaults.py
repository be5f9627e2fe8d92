"""Flags every new deployment starts with."""

from __future__ import annotations

import logging

from featuregate.errors import DuplicateNameError
from featuregate.models import FlagDraft
from featuregate.service import FlagService

logger = logging.getLogger(__name__)

DEFAULT_FLAGS: tuple[FlagDraft, ...] = (
    FlagDraft(
        name="PHONE_DIALER",
        description="Enable phone calling features with AI agents",
        enabled=True,
        rollout_percentage=100,
        target_roles=("artist", "manager", "label_admin"),
    ),
)


async def seed_default_flags(service: FlagService) -> int:
    """Create missing default flags; returns how many were created."""
    existing = {flag.name for flag in await service.list_all_flags()}
    created = 0
    for draft in DEFAULT_FLAGS:
        if draft.name in existing:
            continue
        try:
            await service.registry.create(draft)
        except DuplicateNameError:
            # Another instance seeded it first.
            continue
        created += 1
    if created:
        logger.info("Seeded %d default feature flag(s)", created)
    return created
