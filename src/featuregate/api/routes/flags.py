"""Consumer endpoints -- is a feature on for the calling user?"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from featuregate.api.deps import get_session_flags
from featuregate.api.schemas import FlagOut
from featuregate.service import SubjectFlags

router = APIRouter(prefix="/api/flags", tags=["flags"])


@router.get("/available")
async def available_flags(flags: SubjectFlags = Depends(get_session_flags)):
    """Flags visible to the caller."""
    visible = await flags.available()
    return {"flags": [FlagOut.from_flag(f) for f in visible]}


@router.get("/{name}/enabled")
async def is_enabled(name: str, flags: SubjectFlags = Depends(get_session_flags)):
    return {"name": name, "enabled": await flags.is_enabled(name)}
