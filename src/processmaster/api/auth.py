"""Authentication endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request

from processmaster.api.deps import current_user
from processmaster.api.schemas import (
    LdapLoginRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    ok,
    user_view,
)
from processmaster.domain.auth import AuthenticatedUser, TokenPair
from processmaster.domain.models import UserRecord
from processmaster.errors import ValidationError

if TYPE_CHECKING:
    from processmaster.containers import AppContainer
    from processmaster.services.auth import OAuth2Service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(body: LoginRequest, request: Request) -> dict[str, object]:
    """Log in with the requested provider, or the configured default."""
    container: AppContainer = request.app.state.container
    user, tokens = await container.auth_service.login(
        body.email, body.password, body.provider
    )
    return ok(_session_view(user, tokens))


@router.post("/ldap/login")
async def ldap_login(body: LdapLoginRequest, request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    user, tokens = await container.auth_service.login(
        body.username, body.password, provider="ldap"
    )
    return ok(_session_view(user, tokens))


@router.post("/refresh")
async def refresh(body: RefreshRequest, request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    tokens = container.auth_service.refresh(body.refresh_token)
    return ok(
        {
            "accessToken": tokens.access_token,
            "expiresIn": tokens.expires_in,
            "tokenType": tokens.token_type,
        }
    )


@router.post("/logout")
async def logout(body: LogoutRequest, request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    container.auth_service.logout(body.refresh_token)
    return ok({"message": "Logged out successfully"})


@router.get("/me")
async def me(
    request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(user_view(container.user_service.get_profile(user.id)))


@router.get("/oauth2/authorize")
async def oauth2_authorize(request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    url, state = _oauth2(container).authorization_url()
    return ok({"authorizationUrl": url, "state": state})


@router.get("/oauth2/callback")
async def oauth2_callback(
    request: Request, code: str = "", state: str = ""
) -> dict[str, object]:
    """Finish the authorization-code flow started at /oauth2/authorize."""
    container: AppContainer = request.app.state.container
    user, tokens = await _oauth2(container).complete_login(code, state)
    return ok(_session_view(user, tokens))


def _oauth2(container: AppContainer) -> OAuth2Service:
    if container.oauth2_service is None:
        raise ValidationError(
            "OAuth2 login is not configured", code="OAUTH2_NOT_CONFIGURED"
        )
    return container.oauth2_service


def _session_view(user: UserRecord, tokens: TokenPair) -> dict[str, object]:
    return {
        "user": user_view(user),
        "accessToken": tokens.access_token,
        "refreshToken": tokens.refresh_token,
        "expiresIn": tokens.expires_in,
        "tokenType": tokens.token_type,
    }
