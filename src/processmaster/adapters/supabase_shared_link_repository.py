"""Supabase-backed shared link repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from processmaster.adapters.supabase_rows import parse_timestamp
from processmaster.domain.guides import SharedLink
from processmaster.services.guides import SharedLinkRepository

_COLUMNS = (
    "id, guide_id, token, created_by, password_hash, expires_at, max_views, "
    "view_count, created_at"
)


@dataclass
class SupabaseSharedLinkRepository(SharedLinkRepository):
    client: Client

    def create_link(  # noqa: PLR0913
        self,
        guide_id: UUID,
        token: str,
        created_by: UUID,
        password_hash: str | None,
        expires_at: datetime | None,
        max_views: int | None,
    ) -> SharedLink:
        response = (
            self.client.table("shared_links")
            .insert(
                {
                    "guide_id": str(guide_id),
                    "token": token,
                    "created_by": str(created_by),
                    "password_hash": password_hash,
                    "expires_at": expires_at.isoformat() if expires_at else None,
                    "max_views": max_views,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create shared link")
        return _to_link(response.data[0])

    def get_by_token(self, token: str) -> SharedLink | None:
        response = (
            self.client.table("shared_links")
            .select(_COLUMNS)
            .eq("token", token)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_link(response.data[0])

    def register_view(self, link_id: UUID) -> bool:
        """Count a view through increment_shared_link_views(); null means exhausted."""
        response = self.client.rpc(
            "increment_shared_link_views", {"p_link_id": str(link_id)}
        ).execute()
        return response.data is not None


def _to_link(row: dict[str, object]) -> SharedLink:
    max_views = row.get("max_views")
    return SharedLink(
        id=UUID(str(row["id"])),
        guide_id=UUID(str(row["guide_id"])),
        token=str(row["token"]),
        created_by=UUID(str(row["created_by"])),
        password_hash=row.get("password_hash"),
        expires_at=parse_timestamp(row.get("expires_at")),
        max_views=int(max_views) if max_views is not None else None,
        view_count=int(row.get("view_count") or 0),
        created_at=parse_timestamp(row.get("created_at")),
    )
