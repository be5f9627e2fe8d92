"""Shared dependencies -- the flag service and the caller's identity.

Authentication happens upstream; the resolved user id, role and workspace
arrive as headers.
"""
from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request

from featuregate.models import Subject
from featuregate.permissions import FlagCapabilities
from featuregate.service import FlagService, SubjectFlags


def get_service(request: Request) -> FlagService:
    return request.app.state.flags


def get_subject(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default=""),
    x_workspace_id: str | None = Header(default=None),
) -> Subject:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return Subject(id=x_user_id, role=x_user_role, workspace_id=x_workspace_id)


def get_session_flags(request: Request, subject: Subject = Depends(get_subject)) -> SubjectFlags:
    return get_service(request).for_subject(subject)


def get_capabilities(x_user_role: str = Header(default="")) -> FlagCapabilities:
    return FlagCapabilities.for_role(x_user_role)
