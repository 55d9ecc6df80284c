"""Supabase-backed user repository."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from processmaster.adapters.supabase_rows import now_iso, parse_timestamp
from processmaster.domain.models import UserRecord
from processmaster.services.users import UserRepository

_COLUMNS = (
    "id, email, first_name, last_name, role, provider, password_hash, "
    "is_active, created_at, last_login"
)


@dataclass
class SupabaseUserRepository(UserRepository):
    """Supabase implementation for users."""

    client: Client

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        response = (
            self.client.table("users")
            .select(_COLUMNS)
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_user(response.data[0])

    def get_by_email(self, email: str) -> UserRecord | None:
        response = (
            self.client.table("users")
            .select(_COLUMNS)
            .eq("email", email)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_user(response.data[0])

    def create_user(  # noqa: PLR0913
        self,
        email: str,
        first_name: str | None,
        last_name: str | None,
        role: str,
        auth_provider: str,
        password_hash: str | None = None,
    ) -> UserRecord:
        """Create a user row and return it."""
        response = (
            self.client.table("users")
            .insert(
                {
                    "email": email,
                    "first_name": first_name,
                    "last_name": last_name,
                    "role": role,
                    "provider": auth_provider,
                    "password_hash": password_hash,
                    "last_login": now_iso(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create user")
        return _to_user(response.data[0])

    def update_role(self, user_id: UUID, role: str) -> UserRecord:
        response = (
            self.client.table("users")
            .update({"role": role, "updated_at": now_iso()})
            .eq("id", str(user_id))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to update user role")
        return _to_user(response.data[0])

    def touch_last_login(self, user_id: UUID) -> None:
        self.client.table("users").update({"last_login": now_iso()}).eq(
            "id", str(user_id)
        ).execute()


def _to_user(row: dict[str, object]) -> UserRecord:
    return UserRecord(
        id=UUID(str(row["id"])),
        email=str(row["email"]),
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        role=str(row.get("role") or "user"),
        auth_provider=str(row.get("provider") or "local"),
        password_hash=row.get("password_hash"),
        is_active=bool(row.get("is_active", True)),
        created_at=parse_timestamp(row.get("created_at")),
        last_login=parse_timestamp(row.get("last_login")),
    )
