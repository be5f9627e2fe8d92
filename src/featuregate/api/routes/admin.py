"""Admin endpoints for managing feature flags."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Response

from featuregate.api.auth import verify_token
from featuregate.api.deps import get_capabilities, get_service
from featuregate.api.schemas import FlagCreate, FlagOut, FlagToggle, FlagUpdate
from featuregate.permissions import FlagCapabilities
from featuregate.service import FlagService

router = APIRouter(prefix="/api/admin/flags", tags=["admin"], dependencies=[Depends(verify_token)])


@router.get("")
async def list_flags(service: FlagService = Depends(get_service)):
    flags = await service.list_all_flags()
    return {"flags": [FlagOut.from_flag(f) for f in flags]}


@router.post("", status_code=201)
async def create_flag(
    body: FlagCreate,
    service: FlagService = Depends(get_service),
    caps: FlagCapabilities = Depends(get_capabilities),
    x_user_id: str = Header(default="admin"),
):
    caps.require(caps.can_create, "create feature flags")
    flag = await service.create_flag(created_by=x_user_id, **body.model_dump())
    return FlagOut.from_flag(flag)


@router.patch("/{flag_id}")
async def update_flag(
    flag_id: str,
    body: FlagUpdate,
    service: FlagService = Depends(get_service),
    caps: FlagCapabilities = Depends(get_capabilities),
):
    changes = body.changes()
    caps.check_changes(changes)
    flag = await service.update_flag(flag_id, changes, expected_updated_at=body.expected_updated_at)
    return FlagOut.from_flag(flag)


@router.post("/{flag_id}/toggle")
async def toggle_flag(
    flag_id: str,
    body: FlagToggle,
    service: FlagService = Depends(get_service),
    caps: FlagCapabilities = Depends(get_capabilities),
):
    caps.require(caps.can_toggle, "toggle feature flags")
    flag = await service.toggle_flag(flag_id, body.enabled, expected_updated_at=body.expected_updated_at)
    return FlagOut.from_flag(flag)


@router.delete("/{flag_id}", status_code=204)
async def delete_flag(
    flag_id: str,
    service: FlagService = Depends(get_service),
    caps: FlagCapabilities = Depends(get_capabilities),
):
    caps.require(caps.can_delete, "delete feature flags")
    await service.delete_flag(flag_id)
    return Response(status_code=204)
