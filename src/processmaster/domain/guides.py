"""Domain models for guides, steps and access edges."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class GuideStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"


class Visibility(StrEnum):
    PRIVATE = "private"
    ORGANIZATION = "organization"
    PUBLIC = "public"


COLLABORATOR_ROLES = frozenset({"viewer", "editor"})


@dataclass(frozen=True)
class Guide:
    """Represents a persisted guide document."""

    id: UUID
    user_id: UUID
    title: str
    description: str | None
    content: dict[str, object]
    tags: list[str]
    status: str
    visibility: str
    difficulty: str | None
    estimated_time: str | None
    session_id: UUID | None = None
    view_count: int = 0
    like_count: int = 0
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None
    published_at: datetime | None = None


@dataclass(frozen=True)
class NewGuideStep:
    step_number: int
    title: str
    description: str
    action_type: str | None = None
    element_description: str | None = None
    screenshot_id: UUID | None = None
    coordinates: dict[str, object] | None = None
    tips: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GuideStep:
    id: UUID
    guide_id: UUID
    step_number: int
    title: str
    description: str
    action_type: str | None
    element_description: str | None
    screenshot_id: UUID | None
    coordinates: dict[str, object] | None
    tips: list[str]
    warnings: list[str]


@dataclass(frozen=True)
class GuideDetail:
    guide: Guide
    steps: list[GuideStep]


@dataclass(frozen=True)
class GuidePage:
    guides: list[Guide]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


@dataclass(frozen=True)
class Collaborator:
    guide_id: UUID
    user_id: UUID
    role: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    added_at: datetime | None = None


@dataclass(frozen=True)
class SharedLink:
    """Token-addressed public link to a guide."""

    id: UUID
    guide_id: UUID
    token: str
    created_by: UUID
    password_hash: str | None = None
    expires_at: datetime | None = None
    max_views: int | None = None
    view_count: int = 0
    created_at: datetime | None = None
