"""Shared route dependencies: bearer auth, role checks and upload reads."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from processmaster.domain.auth import AuthenticatedUser, has_role
from processmaster.errors import (
    AuthenticationError,
    PayloadTooLargeError,
    PermissionDeniedError,
)

if TYPE_CHECKING:
    from processmaster.containers import AppContainer

_bearer = HTTPBearer(auto_error=False)


async def current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> AuthenticatedUser:
    """Resolve the bearer token into the caller's identity."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required", code="TOKEN_REQUIRED")
    container: AppContainer = request.app.state.container
    return container.auth_service.authenticate(credentials.credentials)


def require_role(role: str) -> Callable[..., Awaitable[AuthenticatedUser]]:
    """Build a dependency that requires at least the given role."""

    async def dependency(
        user: AuthenticatedUser = Depends(current_user),
    ) -> AuthenticatedUser:
        if not has_role(user.role, role):
            raise PermissionDeniedError(
                "Insufficient permissions", details={"requiredRole": role}
            )
        return user

    return dependency


async def read_upload(upload: UploadFile, max_bytes: int) -> bytes:
    """Read an uploaded file, rejecting anything over the size limit."""
    if upload.size is not None and upload.size > max_bytes:
        raise PayloadTooLargeError(f"File exceeds the {max_bytes} byte limit")
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"File exceeds the {max_bytes} byte limit")
    return data
