"""Domain models for capture sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class SessionStatus(StrEnum):
    ACTIVE = "active"
    STOPPED = "stopped"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SequenceKind(StrEnum):
    """Independent per-session counters."""

    SCREENSHOT = "screenshot"
    INTERACTION = "interaction"


@dataclass(frozen=True)
class CaptureSession:
    """Represents a persisted capture session."""

    id: UUID
    user_id: UUID
    title: str
    description: str | None
    status: str
    browser_info: dict[str, object]
    screen_resolution: dict[str, object] | None
    started_at: datetime
    stopped_at: datetime | None = None
    processed_at: datetime | None = None


@dataclass(frozen=True)
class Screenshot:
    """Immutable screenshot metadata; bytes live in the object store."""

    id: UUID
    session_id: UUID
    sequence_number: int
    storage_key: str
    mime_type: str
    size_bytes: int
    width: int | None
    height: int | None
    metadata: dict[str, object]
    created_at: datetime | None = None


@dataclass(frozen=True)
class NewInteraction:
    """Interaction event as posted by the capture client."""

    interaction_type: str
    element_selector: str | None = None
    element_text: str | None = None
    coordinates: dict[str, object] | None = None
    input_value: str | None = None
    input_type: str | None = None
    url: str | None = None
    screenshot_id: UUID | None = None
    sequence_number: int | None = None
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class Interaction:
    id: UUID
    session_id: UUID
    sequence_number: int
    interaction_type: str
    element_selector: str | None
    element_text: str | None
    coordinates: dict[str, object] | None
    input_value: str | None
    url: str | None
    screenshot_id: UUID | None
    metadata: dict[str, object]
    created_at: datetime | None = None


@dataclass(frozen=True)
class CaptureStatus:
    session: CaptureSession
    screenshot_count: int
    interaction_count: int
