"""Capture session lifecycle: sessions, screenshots and interaction events."""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID, uuid4

from processmaster.domain.capture import (
    CaptureSession,
    CaptureStatus,
    Interaction,
    NewInteraction,
    Screenshot,
    SequenceKind,
    SessionStatus,
)
from processmaster.errors import NotFoundError, ValidationError
from processmaster.services.images import normalize_screenshot
from processmaster.services.storage import ObjectStore

_logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SENSITIVE_INPUT_TYPES = frozenset({"password", "credit-card", "social-security"})
MAX_INPUT_VALUE_LENGTH = 100


class CaptureRepository(Protocol):
    """Persistence interface for capture sessions and their artifacts."""

    def create_session(
        self,
        user_id: UUID,
        title: str,
        description: str | None,
        browser_info: dict[str, object],
        screen_resolution: dict[str, object] | None,
    ) -> CaptureSession:
        """Create a session in the active state."""

    def get_session(self, session_id: UUID) -> CaptureSession | None:
        """Return a session by id, if present."""

    def update_session_status(
        self,
        session_id: UUID,
        status: str,
        stopped_at: datetime | None = None,
        processed_at: datetime | None = None,
    ) -> CaptureSession:
        """Set a session status, stamping the given timestamps."""

    def next_sequence(self, session_id: UUID, kind: str) -> int:
        """Atomically allocate the next sequence number for a counter."""

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
        """Insert screenshot metadata."""

    def list_screenshots(self, session_id: UUID) -> list[Screenshot]:
        """Return screenshots ordered by sequence number."""

    def find_screenshot_by_key(self, storage_key: str) -> Screenshot | None:
        """Return the screenshot stored under a key, if any."""

    def create_interaction(
        self, session_id: UUID, sequence_number: int, interaction: NewInteraction
    ) -> Interaction:
        """Append an interaction event."""

    def list_interactions(self, session_id: UUID) -> list[Interaction]:
        """Return interactions ordered by sequence number."""

    def count_screenshots(self, session_id: UUID) -> int:
        """Return the number of screenshot rows for a session."""

    def count_interactions(self, session_id: UUID) -> int:
        """Return the number of interaction rows for a session."""


@dataclass
class CaptureService:
    """Owns the lifecycle of recording sessions."""

    repository: CaptureRepository
    object_store: ObjectStore
    max_width: int = 1920
    max_height: int = 1080

    def start(
        self,
        owner: UUID,
        title: str | None = None,
        description: str | None = None,
        browser_info: dict[str, object] | None = None,
    ) -> CaptureSession:
        """Create an active session for the caller."""
        info = dict(browser_info or {})
        viewport = info.get("viewport")
        resolved_title = (title or "").strip() or (
            f"Capture session {datetime.now(tz=UTC).isoformat()}"
        )
        session = self.repository.create_session(
            user_id=owner,
            title=resolved_title,
            description=description,
            browser_info=info,
            screen_resolution=viewport if isinstance(viewport, dict) else None,
        )
        _logger.info("Capture session %s started by %s", session.id, owner)
        return session

    def stop(self, session_id: UUID, owner: UUID) -> CaptureSession:
        """Mark a session stopped. Repeating the call re-stamps the stop time."""
        self.get_owned_session(session_id, owner)
        return self.repository.update_session_status(
            session_id,
            SessionStatus.STOPPED,
            stopped_at=datetime.now(tz=UTC),
        )

    def get_owned_session(self, session_id: UUID, owner: UUID) -> CaptureSession:
        session = self.repository.get_session(session_id)
        if session is None or session.user_id != owner:
            raise NotFoundError("Capture session not found")
        return session

    async def add_screenshot(  # noqa: PLR0913
        self,
        session_id: UUID,
        owner: UUID,
        image_bytes: bytes,
        sequence_number: int | None = None,
        metadata: dict[str, object] | None = None,
    ) -> Screenshot:
        """Normalise, store and register a screenshot."""
        self.get_owned_session(session_id, owner)
        if not image_bytes:
            raise ValidationError("Screenshot file is required")
        if sequence_number is not None and sequence_number < 1:
            raise ValidationError("sequenceNumber must be a positive integer")

        image = await asyncio.to_thread(
            normalize_screenshot, image_bytes, self.max_width, self.max_height
        )
        sequence = sequence_number or self.repository.next_sequence(
            session_id, SequenceKind.SCREENSHOT
        )
        key = f"screenshots/{owner}/{session_id}/{sequence:04d}-{uuid4().hex}.png"
        stored = await self.object_store.put_object(
            key,
            image.data,
            image.mime_type,
            metadata={"sessionId": str(session_id), "sequence": str(sequence)},
        )
        try:
            return self.repository.create_screenshot(
                session_id=session_id,
                sequence_number=sequence,
                storage_key=stored.key,
                mime_type=image.mime_type,
                size_bytes=stored.size_bytes,
                width=image.width,
                height=image.height,
                metadata=dict(metadata or {}),
            )
        except Exception:
            _logger.warning("Discarding orphaned screenshot object %s", key)
            await self.object_store.delete_object(key)
            raise

    def register_uploaded_screenshot(  # noqa: PLR0913
        self,
        session_id: UUID,
        owner: UUID,
        storage_key: str,
        size_bytes: int,
        mime_type: str,
        metadata: dict[str, object] | None = None,
    ) -> Screenshot:
        """Register a screenshot uploaded directly to the object store."""
        self.get_owned_session(session_id, owner)
        sequence = self.repository.next_sequence(session_id, SequenceKind.SCREENSHOT)
        return self.repository.create_screenshot(
            session_id=session_id,
            sequence_number=sequence,
            storage_key=storage_key,
            mime_type=mime_type,
            size_bytes=size_bytes,
            width=None,
            height=None,
            metadata=dict(metadata or {}),
        )

    def record_interaction(
        self, session_id: UUID, owner: UUID, interaction: NewInteraction
    ) -> Interaction:
        """Sanitise and append an interaction event."""
        self.get_owned_session(session_id, owner)
        if not interaction.interaction_type or not interaction.interaction_type.strip():
            raise ValidationError("interactionType is required")
        if interaction.sequence_number is not None and interaction.sequence_number < 1:
            raise ValidationError("sequenceNumber must be a positive integer")
        sanitized = replace(
            interaction,
            interaction_type=interaction.interaction_type.strip(),
            input_value=sanitize_input_value(
                interaction.input_value, interaction.input_type
            ),
        )
        sequence = interaction.sequence_number or self.repository.next_sequence(
            session_id, SequenceKind.INTERACTION
        )
        return self.repository.create_interaction(session_id, sequence, sanitized)

    def status(self, session_id: UUID, owner: UUID) -> CaptureStatus:
        session = self.get_owned_session(session_id, owner)
        return CaptureStatus(
            session=session,
            screenshot_count=self.repository.count_screenshots(session_id),
            interaction_count=self.repository.count_interactions(session_id),
        )

    def list_interactions(self, session_id: UUID, owner: UUID) -> list[Interaction]:
        self.get_owned_session(session_id, owner)
        return self.repository.list_interactions(session_id)

    def list_screenshots(self, session_id: UUID, owner: UUID) -> list[Screenshot]:
        self.get_owned_session(session_id, owner)
        return self.repository.list_screenshots(session_id)

    async def load_screenshot_bytes(self, screenshot: Screenshot) -> bytes:
        return await self.object_store.get_object(screenshot.storage_key)

    def mark_status(self, session_id: UUID, status: SessionStatus) -> CaptureSession:
        processed_at = None
        if status == SessionStatus.COMPLETED:
            processed_at = datetime.now(tz=UTC)

        return self.repository.update_session_status(
            session_id, status, processed_at=processed_at
        )


def sanitize_input_value(value: str | None, input_type: str | None) -> str | None:
    """Redact sensitive fields and truncate long values."""
    if value is None:
        return None
    if input_type and input_type.lower() in SENSITIVE_INPUT_TYPES:
        return REDACTED
    if len(value) > MAX_INPUT_VALUE_LENGTH:
        return value[:MAX_INPUT_VALUE_LENGTH] + "..."
    return value
