"""Bearer-credential check for agent endpoints."""
from __future__ import annotations

from fastapi import Header

from app.core.config import settings
from app.core.errors import AuthenticationError


def require_bearer(authorization: str | None = Header(default=None)) -> str:
    """Reject requests without a bearer credential (or with the wrong one when a token is configured)."""
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, credential = authorization.partition(" ")
    credential = credential.strip()
    if scheme.lower() != "bearer" or not credential:
        raise AuthenticationError("Authorization header must be a bearer credential")
    if settings.service_token and credential != settings.service_token:
        raise AuthenticationError("Invalid bearer credential")
    return credential
