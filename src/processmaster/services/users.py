"""User lookup and just-in-time provisioning."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from processmaster.domain.auth import ExternalIdentity
from processmaster.domain.models import UserRecord
from processmaster.errors import NotFoundError, PermissionDeniedError

_logger = logging.getLogger(__name__)


class UserRepository(Protocol):
    """Persistence interface for users."""

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        """Return a user by id, if present."""

    def get_by_email(self, email: str) -> UserRecord | None:
        """Return a user by email, if present."""

    def create_user(  # noqa: PLR0913
        self,
        email: str,
        first_name: str | None,
        last_name: str | None,
        role: str,
        auth_provider: str,
        password_hash: str | None = None,
    ) -> UserRecord:
        """Create a user and return it."""

    def update_role(self, user_id: UUID, role: str) -> UserRecord:
        """Change a user's role."""

    def touch_last_login(self, user_id: UUID) -> None:
        """Stamp the last login timestamp."""


@dataclass
class UserService:
    """Application service for user records."""

    repository: UserRepository

    def get_profile(self, user_id: UUID) -> UserRecord:
        user = self.repository.get_by_id(user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        return user

    def ensure_external_user(self, identity: ExternalIdentity) -> UserRecord:
        """Create a user for a directory/OAuth2 identity or refresh its login."""
        email = identity.email.strip().lower()
        user = self.repository.get_by_email(email)
        if user is None:
            user = self.repository.create_user(
                email=email,
                first_name=identity.first_name,
                last_name=identity.last_name,
                role=identity.role,
                auth_provider=identity.provider,
            )
            _logger.info("Provisioned %s user %s", identity.provider, user.id)
            return user
        if not user.is_active:
            raise PermissionDeniedError("User account is disabled")
        if identity.provider == "ldap" and user.role != identity.role:
            user = self.repository.update_role(user.id, identity.role)
        self.repository.touch_last_login(user.id)
        return user
