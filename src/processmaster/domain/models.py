"""Domain models for users."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class UserRecord:
    """Represents a user stored in the database."""

    id: UUID
    email: str
    first_name: str | None
    last_name: str | None
    role: str
    auth_provider: str
    password_hash: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    last_login: datetime | None = None
