"""Supabase-backed capture session repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from processmaster.adapters.supabase_rows import now_iso, parse_timestamp, parse_uuid
from processmaster.domain.capture import (
    CaptureSession,
    Interaction,
    NewInteraction,
    Screenshot,
    SessionStatus,
)
from processmaster.services.capture import CaptureRepository

_SESSION_COLUMNS = (
    "id, user_id, title, description, status, browser_info, screen_resolution, "
    "started_at, stopped_at, processed_at"
)
_SCREENSHOT_COLUMNS = (
    "id, capture_session_id, sequence_number, s3_key, mime_type, file_size, "
    "width, height, metadata, created_at"
)
_INTERACTION_COLUMNS = (
    "id, capture_session_id, sequence_number, interaction_type, element_selector, "
    "element_text, coordinates, input_value, url, screenshot_id, metadata, timestamp"
)


@dataclass
class SupabaseCaptureRepository(CaptureRepository):
    """Supabase implementation for sessions, screenshots and interactions."""

    client: Client

    def create_session(
        self,
        user_id: UUID,
        title: str,
        description: str | None,
        browser_info: dict[str, object],
        screen_resolution: dict[str, object] | None,
    ) -> CaptureSession:
        response = (
            self.client.table("capture_sessions")
            .insert(
                {
                    "user_id": str(user_id),
                    "title": title,
                    "description": description,
                    "status": SessionStatus.ACTIVE.value,
                    "browser_info": browser_info,
                    "screen_resolution": screen_resolution,
                    "started_at": now_iso(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create capture session")
        return _to_session(response.data[0])

    def get_session(self, session_id: UUID) -> CaptureSession | None:
        response = (
            self.client.table("capture_sessions")
            .select(_SESSION_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def update_session_status(
        self,
        session_id: UUID,
        status: str,
        stopped_at: datetime | None = None,
        processed_at: datetime | None = None,
    ) -> CaptureSession:
        payload: dict[str, object] = {"status": str(status), "updated_at": now_iso()}
        if stopped_at is not None:
            payload["stopped_at"] = stopped_at.isoformat()
        if processed_at is not None:
            payload["processed_at"] = processed_at.isoformat()
        response = (
            self.client.table("capture_sessions")
            .update(payload)
            .eq("id", str(session_id))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to update capture session")
        return _to_session(response.data[0])

    def next_sequence(self, session_id: UUID, kind: str) -> int:
        """Allocate through the locked counter in next_capture_sequence()."""
        response = self.client.rpc(
            "next_capture_sequence",
            {"p_session_id": str(session_id), "p_kind": str(kind)},
        ).execute()
        value = response.data
        if isinstance(value, list):
            value = value[0] if value else None
        if isinstance(value, dict):
            value = next(iter(value.values()), None)
        if value is None:
            raise RuntimeError("Failed to allocate sequence number")
        return int(value)

    def create_screenshot(  # noqa: PLR0913
        self,
        session_id: UUID,
        sequence_number: int,
        storage_key: str,
        mime_type: str,
        size_bytes: int,
        width: int | None,
        height: int | None,
        metadata: dict[str, object],
    ) -> Screenshot:
        response = (
            self.client.table("screenshots")
            .insert(
                {
                    "capture_session_id": str(session_id),
                    "sequence_number": sequence_number,
                    "s3_key": storage_key,
                    "mime_type": mime_type,
                    "file_size": size_bytes,
                    "width": width,
                    "height": height,
                    "metadata": metadata,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create screenshot")
        return _to_screenshot(response.data[0])

    def list_screenshots(self, session_id: UUID) -> list[Screenshot]:
        response = (
            self.client.table("screenshots")
            .select(_SCREENSHOT_COLUMNS)
            .eq("capture_session_id", str(session_id))
            .order("sequence_number")
            .execute()
        )
        return [_to_screenshot(row) for row in response.data or []]

    def find_screenshot_by_key(self, storage_key: str) -> Screenshot | None:
        response = (
            self.client.table("screenshots")
            .select(_SCREENSHOT_COLUMNS)
            .eq("s3_key", storage_key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_screenshot(response.data[0])

    def create_interaction(
        self, session_id: UUID, sequence_number: int, interaction: NewInteraction
    ) -> Interaction:
        response = (
            self.client.table("user_interactions")
            .insert(
                {
                    "capture_session_id": str(session_id),
                    "sequence_number": sequence_number,
                    "interaction_type": interaction.interaction_type,
                    "element_selector": interaction.element_selector,
                    "element_text": interaction.element_text,
                    "coordinates": interaction.coordinates,
                    "input_value": interaction.input_value,
                    "url": interaction.url,
                    "screenshot_id": (
                        str(interaction.screenshot_id)
                        if interaction.screenshot_id
                        else None
                    ),
                    "metadata": interaction.metadata,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to record interaction")
        return _to_interaction(response.data[0])

    def list_interactions(self, session_id: UUID) -> list[Interaction]:
        response = (
            self.client.table("user_interactions")
            .select(_INTERACTION_COLUMNS)
            .eq("capture_session_id", str(session_id))
            .order("sequence_number")
            .execute()
        )
        return [_to_interaction(row) for row in response.data or []]

    def count_screenshots(self, session_id: UUID) -> int:
        return self._count("screenshots", session_id)

    def count_interactions(self, session_id: UUID) -> int:
        return self._count("user_interactions", session_id)

    def _count(self, table: str, session_id: UUID) -> int:
        response = (
            self.client.table(table)
            .select("id", count="exact")
            .eq("capture_session_id", str(session_id))
            .limit(1)
            .execute()
        )
        return int(response.count or 0)


def _to_session(row: dict[str, object]) -> CaptureSession:
    return CaptureSession(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        title=str(row.get("title") or ""),
        description=row.get("description"),
        status=str(row["status"]),
        browser_info=dict(row.get("browser_info") or {}),
        screen_resolution=row.get("screen_resolution"),
        started_at=parse_timestamp(row.get("started_at")) or datetime.now(tz=UTC),
        stopped_at=parse_timestamp(row.get("stopped_at")),
        processed_at=parse_timestamp(row.get("processed_at")),
    )


def _to_screenshot(row: dict[str, object]) -> Screenshot:
    return Screenshot(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["capture_session_id"])),
        sequence_number=int(row["sequence_number"]),
        storage_key=str(row["s3_key"]),
        mime_type=str(row.get("mime_type") or "image/png"),
        size_bytes=int(row.get("file_size") or 0),
        width=row.get("width"),
        height=row.get("height"),
        metadata=dict(row.get("metadata") or {}),
        created_at=parse_timestamp(row.get("created_at")),
    )


def _to_interaction(row: dict[str, object]) -> Interaction:
    return Interaction(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["capture_session_id"])),
        sequence_number=int(row["sequence_number"]),
        interaction_type=str(row["interaction_type"]),
        element_selector=row.get("element_selector"),
        element_text=row.get("element_text"),
        coordinates=row.get("coordinates"),
        input_value=row.get("input_value"),
        url=row.get("url"),
        screenshot_id=parse_uuid(row.get("screenshot_id")),
        metadata=dict(row.get("metadata") or {}),
        created_at=parse_timestamp(row.get("timestamp")),
    )
