"""Authentication domain types."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

ROLE_LEVELS: dict[str, int] = {
    "viewer": 0,
    "user": 1,
    "admin": 2,
    "super_admin": 3,
}


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity resolved from an access token."""

    id: UUID
    email: str
    role: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by an external provider (LDAP directory or OAuth2)."""

    email: str
    first_name: str | None
    last_name: str | None
    role: str
    provider: str


@dataclass(frozen=True)
class StoredRefreshToken:
    user_id: UUID
    token_hash: str
    expires_at: datetime


def has_role(role: str, required: str) -> bool:
    """Ordinal role check; unknown roles rank lowest."""
    return ROLE_LEVELS.get(role, 0) >= ROLE_LEVELS.get(required, 0)
