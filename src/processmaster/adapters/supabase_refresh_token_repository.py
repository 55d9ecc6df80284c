"""Supabase-backed refresh token store (hashes only)."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from processmaster.adapters.supabase_rows import now_iso, parse_timestamp
from processmaster.domain.auth import StoredRefreshToken
from processmaster.services.auth import RefreshTokenRepository


@dataclass
class SupabaseRefreshTokenRepository(RefreshTokenRepository):
    client: Client

    def save(self, user_id: UUID, token_hash: str, expires_at: datetime) -> None:
        """Insert a token hash after pruning the user's expired tokens."""
        self.client.table("refresh_tokens").delete().eq("user_id", str(user_id)).lt(
            "expires_at", now_iso()
        ).execute()
        self.client.table("refresh_tokens").insert(
            {
                "user_id": str(user_id),
                "token_hash": token_hash,
                "expires_at": expires_at.isoformat(),
            }
        ).execute()

    def get(self, token_hash: str) -> StoredRefreshToken | None:
        response = (
            self.client.table("refresh_tokens")
            .select("user_id, token_hash, expires_at")
            .eq("token_hash", token_hash)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return StoredRefreshToken(
            user_id=UUID(str(row["user_id"])),
            token_hash=str(row["token_hash"]),
            expires_at=parse_timestamp(row["expires_at"]) or datetime.now(tz=UTC),
        )

    def delete(self, token_hash: str) -> None:
        (
            self.client.table("refresh_tokens")
            .delete()
            .eq("token_hash", token_hash)
            .execute()
        )

