"""Bearer token authentication for the admin routes."""
from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

security = HTTPBearer()


async def verify_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> str:
    """Validate the Bearer token against the configured admin token."""
    expected = request.app.state.settings.admin_token
    if not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(status_code=401, detail="Invalid token")
    return credentials.credentials
