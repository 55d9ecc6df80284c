"""Auth gateway: credential verification, token issuance and OAuth2 login."""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol
from urllib.parse import urlencode
from uuid import UUID

import jwt

from processmaster.domain.auth import (
    AuthenticatedUser,
    ExternalIdentity,
    StoredRefreshToken,
    TokenPair,
)
from processmaster.domain.models import UserRecord
from processmaster.errors import (
    AuthenticationError,
    DirectoryServiceError,
    NotFoundError,
    PermissionDeniedError,
    TokenExpiredError,
    ValidationError,
)
from processmaster.services.passwords import hash_token, verify_password
from processmaster.services.users import UserRepository, UserService

_logger = logging.getLogger(__name__)

REFRESH_TOKEN_BYTES = 48
OAUTH_SCOPE = "openid profile email"

GROUP_ROLES: tuple[tuple[str, str], ...] = (
    ("CN=ProcessMaster-Admins", "admin"),
    ("CN=ProcessMaster-Users", "user"),
    ("CN=ProcessMaster-Viewers", "viewer"),
)


class CredentialVerifier(Protocol):
    """Checks a username/password pair against one identity provider."""

    async def verify(self, username: str, password: str) -> UserRecord | None:
        """Return the matching user, or None when the credentials are wrong."""


@dataclass(frozen=True)
class DirectoryEntry:
    dn: str
    email: str
    first_name: str | None
    last_name: str | None
    groups: list[str] = field(default_factory=list)


class DirectoryClient(Protocol):
    """Interface for an LDAP-style directory."""

    async def authenticate(self, username: str, password: str) -> DirectoryEntry | None:
        """Search as the service account, then bind as the user."""


class RefreshTokenRepository(Protocol):
    """Persistence interface for hashed refresh tokens."""

    def save(self, user_id: UUID, token_hash: str, expires_at: datetime) -> None:
        """Store a token hash, pruning expired ones."""

    def get(self, token_hash: str) -> StoredRefreshToken | None:
        """Return a stored token by hash, if present."""

    def delete(self, token_hash: str) -> None:
        """Revoke a token."""


class OAuth2Client(Protocol):
    """Interface for the authorization-code flow endpoints."""

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, object]:
        """Exchange an authorization code for tokens."""

    async def fetch_userinfo(self, access_token: str) -> dict[str, object]:
        """Return the userinfo claims for an access token."""


@dataclass
class LocalCredentialVerifier(CredentialVerifier):
    """Verifies against the PBKDF2 hash stored on the user row."""

    users: UserRepository

    async def verify(self, username: str, password: str) -> UserRecord | None:
        user = self.users.get_by_email(username.strip().lower())
        if user is None or user.auth_provider != "local":
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user


@dataclass
class LdapCredentialVerifier(CredentialVerifier):
    """Verifies against a directory and provisions users on first login."""

    directory: DirectoryClient
    users: UserService

    async def verify(self, username: str, password: str) -> UserRecord | None:
        if not password:
            return None
        entry = await self.directory.authenticate(username, password)
        if entry is None:
            return None
        return self.users.ensure_external_user(
            ExternalIdentity(
                email=entry.email,
                first_name=entry.first_name,
                last_name=entry.last_name,
                role=role_from_groups(entry.groups),
                provider="ldap",
            )
        )


def role_from_groups(groups: list[str]) -> str:
    """Map directory group DNs to the highest matching role."""
    for prefix, role in GROUP_ROLES:
        if any(group.upper().startswith(prefix.upper()) for group in groups):
            return role
    return "user"


@dataclass
class AuthService:
    """Issues and validates tokens; dispatches credential checks by provider."""

    users: UserService
    refresh_tokens: RefreshTokenRepository
    verifiers: dict[str, CredentialVerifier]
    secret: str
    algorithm: str = "HS256"
    access_ttl_seconds: int = 15 * 60
    refresh_ttl_seconds: int = 7 * 24 * 60 * 60
    default_provider: str = "local"

    async def login(
        self, email: str, password: str, provider: str | None = None
    ) -> tuple[UserRecord, TokenPair]:
        if not email or not password:
            raise ValidationError("Email and password are required")
        name = (provider or self.default_provider).lower()
        if name == "oauth2":
            raise ValidationError(
                "OAuth2 login must start at /auth/oauth2/authorize",
                code="OAUTH2_REDIRECT_REQUIRED",
            )
        verifier = self.verifiers.get(name)
        if verifier is None:
            raise ValidationError(f"Authentication provider {name!r} is not enabled")
        user = await verifier.verify(email, password)
        if user is None:
            _logger.info("Failed %s login for %s", name, email)
            raise AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")
        if not user.is_active:
            raise PermissionDeniedError("User account is disabled")
        return user, self.issue_tokens(user)

    def issue_tokens(self, user: UserRecord) -> TokenPair:
        refresh_token = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        self.refresh_tokens.save(
            user.id,
            hash_token(refresh_token),
            datetime.now(tz=UTC) + timedelta(seconds=self.refresh_ttl_seconds),
        )
        return TokenPair(
            access_token=self._access_token(user),
            refresh_token=refresh_token,
            expires_in=self.access_ttl_seconds,
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """Issue a new access token; the refresh token itself is kept."""
        if not refresh_token:
            raise ValidationError("Refresh token is required")
        stored = self.refresh_tokens.get(hash_token(refresh_token))
        if stored is None:
            raise AuthenticationError(
                "Invalid refresh token", code="INVALID_REFRESH_TOKEN"
            )
        if stored.expires_at <= datetime.now(tz=UTC):
            self.refresh_tokens.delete(stored.token_hash)
            raise TokenExpiredError("Refresh token has expired")
        try:
            user = self.users.get_profile(stored.user_id)
        except NotFoundError as exc:
            # Disabled or deleted owner; the token is dead either way.
            self.refresh_tokens.delete(stored.token_hash)
            raise AuthenticationError(
                "Invalid refresh token", code="INVALID_REFRESH_TOKEN"
            ) from exc

        return TokenPair(
            access_token=self._access_token(user),
            refresh_token=refresh_token,
            expires_in=self.access_ttl_seconds,
        )

    def logout(self, refresh_token: str | None) -> None:
        if refresh_token:
            self.refresh_tokens.delete(hash_token(refresh_token))

    def authenticate(self, access_token: str) -> AuthenticatedUser:
        """Resolve a bearer token to the caller's identity."""
        claims = self.decode(access_token, expected_type="access")
        try:
            return AuthenticatedUser(
                id=UUID(str(claims["sub"])),
                email=str(claims["email"]),
                role=str(claims["role"]),
            )
        except (KeyError, ValueError) as exc:
            raise AuthenticationError("Invalid token", code="INVALID_TOKEN") from exc

    def sign(self, claims: dict[str, object], ttl_seconds: int) -> str:
        now = datetime.now(tz=UTC)
        payload = {**claims, "iat": now, "exp": now + timedelta(seconds=ttl_seconds)}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str, expected_type: str) -> dict[str, object]:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token", code="INVALID_TOKEN") from exc
        if claims.get("type") != expected_type:
            raise AuthenticationError("Invalid token type", code="INVALID_TOKEN")
        return claims

    def _access_token(self, user: UserRecord) -> str:
        return self.sign(
            {
                "sub": str(user.id),
                "email": user.email,
                "role": user.role,
                "type": "access",
            },
            self.access_ttl_seconds,
        )


@dataclass
class OAuth2Service:
    """Authorization-code login with just-in-time provisioning."""

    client: OAuth2Client
    auth: AuthService
    users: UserService
    issuer: str
    client_id: str
    redirect_uri: str
    state_ttl_seconds: int = 600

    def authorization_url(self) -> tuple[str, str]:
        """Return the provider URL and the signed state it carries."""
        state = self.auth.sign(
            {"type": "oauth_state", "nonce": secrets.token_urlsafe(16)},
            self.state_ttl_seconds,
        )
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": OAUTH_SCOPE,
                "state": state,
            }
        )
        return f"{self.issuer.rstrip('/')}/auth?{query}", state

    async def complete_login(
        self, code: str, state: str
    ) -> tuple[UserRecord, TokenPair]:

        if not code:
            raise ValidationError("Authorization code is required")
        if not state:
            raise ValidationError("State is required")
        self.auth.decode(state, expected_type="oauth_state")
        tokens = await self.client.exchange_code(code, self.redirect_uri)
        access_token = tokens.get("access_token")
        if not access_token:
            raise DirectoryServiceError("OAuth2 provider returned no access token")
        claims = await self.client.fetch_userinfo(str(access_token))
        email = claims.get("email")
        if not email:
            raise AuthenticationError("OAuth2 profile has no email address")
        user = self.users.ensure_external_user(
            ExternalIdentity(
                email=str(email),
                first_name=_optional_str(claims.get("given_name")),
                last_name=_optional_str(claims.get("family_name")),
                role="user",
                provider="oauth2",
            )
        )
        return user, self.auth.issue_tokens(user)


def _optional_str(value: object) -> str | None:
    return str(value) if value else None
