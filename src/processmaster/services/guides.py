"""Guide CRUD, access control, collaborators and shareable links."""

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from processmaster.domain.auth import AuthenticatedUser, has_role
from processmaster.domain.guides import (
    COLLABORATOR_ROLES,
    Collaborator,
    Guide,
    GuideDetail,
    GuidePage,
    GuideStatus,
    GuideStep,
    NewGuideStep,
    SharedLink,
    Visibility,
)
from processmaster.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from processmaster.services.passwords import hash_password, verify_password
from processmaster.services.users import UserRepository

_logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "content",
        "tags",
        "status",
        "visibility",
        "difficulty",
        "estimated_time",
    }
)
DIFFICULTIES = frozenset({"beginner", "intermediate", "advanced"})
MAX_PAGE_SIZE = 100
SHARE_TOKEN_BYTES = 24


class GuideRepository(Protocol):
    """Persistence interface for guides, steps and collaborators."""

    def create_guide(  # noqa: PLR0913
        self,
        user_id: UUID,
        title: str,
        description: str | None,
        content: dict[str, object],
        tags: list[str],
        status: str,
        visibility: str,
        difficulty: str | None,
        estimated_time: str | None,
        session_id: UUID | None = None,
    ) -> Guide:
        """Create a guide at version 1."""

    def get_guide(self, guide_id: UUID) -> Guide | None:
        """Return a guide by id, if present."""

    def list_guides(  # noqa: PLR0913
        self,
        viewer_id: UUID,
        page: int,
        limit: int,
        status: str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
    ) -> GuidePage:
        """Return the viewer's own guides plus public ones, newest first."""

    def update_guide(
        self, guide_id: UUID, changes: dict[str, object], expected_version: int
    ) -> Guide | None:
        """Apply changes and bump the version if it still equals expected."""

    def delete_guide(self, guide_id: UUID) -> None:
        """Delete a guide and its dependent rows."""

    def create_steps(
        self, guide_id: UUID, steps: list[NewGuideStep]
    ) -> list[GuideStep]:
        """Insert steps for a guide."""

    def list_steps(self, guide_id: UUID) -> list[GuideStep]:
        """Return steps ordered by step number."""

    def increment_view_count(self, guide_id: UUID) -> int:
        """Atomically add one view and return the new count."""

    def list_collaborators(self, guide_id: UUID) -> list[Collaborator]:
        """Return collaborators with their user details."""

    def get_collaborator(self, guide_id: UUID, user_id: UUID) -> Collaborator | None:
        """Return one collaborator edge, if present."""

    def upsert_collaborator(
        self, guide_id: UUID, user_id: UUID, role: str, added_by: UUID
    ) -> Collaborator:
        """Insert or update the role for a (guide, user) pair."""

    def remove_collaborator(self, guide_id: UUID, user_id: UUID) -> bool:
        """Delete a collaborator edge; False when there was none."""


class SharedLinkRepository(Protocol):
    """Persistence interface for shared links."""

    def create_link(  # noqa: PLR0913
        self,
        guide_id: UUID,
        token: str,
        created_by: UUID,
        password_hash: str | None,
        expires_at: datetime | None,
        max_views: int | None,
    ) -> SharedLink:
        """Create a shared link."""

    def get_by_token(self, token: str) -> SharedLink | None:
        """Return a link by token, if present."""

    def register_view(self, link_id: UUID) -> bool:
        """Atomically count a view; False when the view limit is reached."""


@dataclass(frozen=True)
class ShareResult:
    share_url: str
    token: str
    expires_at: datetime | None
    max_views: int | None


@dataclass
class GuideService:
    """Ownership-gated guide operations."""

    guides: GuideRepository
    links: SharedLinkRepository
    users: UserRepository
    web_base_url: str
    password_iterations: int = 210_000

    def list_guides(  # noqa: PLR0913
        self,
        viewer: AuthenticatedUser,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
    ) -> GuidePage:
        if page < 1:
            raise ValidationError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if status is not None:
            _validate_choice("status", status, {s.value for s in GuideStatus})
        return self.guides.list_guides(
            viewer.id,
            page=page,
            limit=limit,
            status=status,
            search=search.strip() if search and search.strip() else None,
            tags=[tag for tag in (tags or []) if tag] or None,
        )

    def create_guide(  # noqa: PLR0913
        self,
        owner: AuthenticatedUser,
        title: str,
        description: str,
        content: dict[str, object] | None = None,
        tags: list[str] | None = None,
        visibility: str = Visibility.PRIVATE,
        difficulty: str | None = None,
        estimated_time: str | None = None,
    ) -> Guide:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        _validate_choice("visibility", visibility, {v.value for v in Visibility})
        if difficulty is not None:
            _validate_choice("difficulty", difficulty, DIFFICULTIES)
        return self.guides.create_guide(
            user_id=owner.id,
            title=title.strip(),
            description=description.strip(),
            content=dict(content or {}),
            tags=list(tags or []),
            status=GuideStatus.DRAFT,
            visibility=visibility,
            difficulty=difficulty,
            estimated_time=estimated_time,
        )

    def get_guide(self, guide_id: UUID, viewer: AuthenticatedUser) -> GuideDetail:
        """Return a readable guide with its steps, counting non-owner views."""
        guide = self._readable_guide(guide_id, viewer.id)
        if guide.user_id != viewer.id:
            guide = self._count_view(guide)
        return GuideDetail(guide=guide, steps=self.guides.list_steps(guide_id))

    def update_guide(
        self,
        guide_id: UUID,
        editor: AuthenticatedUser,
        changes: dict[str, object],
        expected_version: int | None = None,
    ) -> Guide:
        """Apply a partial update and bump the version by exactly one."""
        guide = self._readable_guide(guide_id, editor.id)
        if not self._can_edit(guide, editor.id):
            raise PermissionDeniedError(
                "Only the owner or an editor can update this guide"
            )
        updates = {
            key: value
            for key, value in changes.items()
            if key in UPDATABLE_FIELDS and value is not None
        }
        if not updates:
            raise ValidationError("No valid updates provided")
        if "title" in updates and not str(updates["title"]).strip():
            raise ValidationError("Title cannot be empty")
        if "status" in updates:
            _validate_choice(
                "status", str(updates["status"]), {s.value for s in GuideStatus}
            )
            published = updates["status"] == GuideStatus.PUBLISHED
            if published and guide.published_at is None:
                updates["published_at"] = datetime.now(tz=UTC)
        if "visibility" in updates:
            _validate_choice(
                "visibility", str(updates["visibility"]), {v.value for v in Visibility}
            )
        if "difficulty" in updates:
            _validate_choice("difficulty", str(updates["difficulty"]), DIFFICULTIES)

        if expected_version is not None and expected_version != guide.version:
            raise ConflictError(
                "Guide has been modified since it was read",
                code="VERSION_CONFLICT",
                details={"currentVersion": guide.version},
            )
        updated = self.guides.update_guide(guide_id, updates, guide.version)
        if updated is None:
            raise ConflictError(
                "Guide was modified concurrently, reload and retry",
                code="VERSION_CONFLICT",
            )
        return updated

    def delete_guide(self, guide_id: UUID, user: AuthenticatedUser) -> None:
        guide = self.guides.get_guide(guide_id)
        if guide is None:
            raise NotFoundError("Guide not found")
        if guide.user_id != user.id and not has_role(user.role, "admin"):
            raise PermissionDeniedError(
                "Only the owner or an admin can delete this guide"
            )
        self.guides.delete_guide(guide_id)
        _logger.info("Guide %s deleted by %s", guide_id, user.id)

    def share_guide(
        self,
        guide_id: UUID,
        owner: AuthenticatedUser,
        password: str | None = None,
        expires_at: datetime | None = None,
        max_views: int | None = None,
    ) -> ShareResult:
        """Issue an unguessable share token for a guide the caller owns."""
        self._owned_guide(guide_id, owner.id)
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
            if expires_at <= datetime.now(tz=UTC):
                raise ValidationError("expiresAt must be in the future")
        if max_views is not None and max_views < 1:
            raise ValidationError("maxViews must be a positive integer")
        token = secrets.token_urlsafe(SHARE_TOKEN_BYTES)
        link = self._create_link(
            guide_id, token, owner.id, password, expires_at, max_views
        )
        return ShareResult(
            share_url=f"{self.web_base_url.rstrip('/')}/shared/{link.token}",
            token=link.token,
            expires_at=link.expires_at,
            max_views=link.max_views,
        )

    def _create_link(  # noqa: PLR0913
        self,
        guide_id: UUID,
        token: str,
        created_by: UUID,
        password: str | None,
        expires_at: datetime | None,
        max_views: int | None,
    ) -> SharedLink:
        password_hash = (
            hash_password(password, self.password_iterations) if password else None
        )
        return self.links.create_link(
            guide_id=guide_id,
            token=token,
            created_by=created_by,
            password_hash=password_hash,
            expires_at=expires_at,
            max_views=max_views,
        )

    def redeem_shared_link(
        self, token: str, password: str | None = None
    ) -> GuideDetail:
        """Resolve a share token, enforcing expiry, password and view limit."""
        link = self.links.get_by_token(token)
        if link is None:
            raise NotFoundError("Shared link not found")
        if link.expires_at is not None and link.expires_at <= datetime.now(tz=UTC):
            raise NotFoundError("Shared link has expired", code="SHARE_LINK_EXPIRED")
        if link.password_hash is not None:
            if not password:
                raise AuthenticationError(
                    "Password required", code="SHARE_PASSWORD_REQUIRED"
                )
            if not verify_password(password, link.password_hash):
                raise AuthenticationError(
                    "Invalid password", code="SHARE_PASSWORD_INVALID"
                )
        guide = self.guides.get_guide(link.guide_id)
        if guide is None:
            raise NotFoundError("Shared link not found")
        if not self.links.register_view(link.id):
            raise NotFoundError(
                "Shared link view limit reached", code="SHARE_LINK_EXHAUSTED"
            )
        guide = self._count_view(guide)
        return GuideDetail(guide=guide, steps=self.guides.list_steps(guide.id))

    def list_collaborators(
        self, guide_id: UUID, viewer: AuthenticatedUser
    ) -> list[Collaborator]:
        guide = self._readable_guide(guide_id, viewer.id)
        if guide.user_id != viewer.id and not self.guides.get_collaborator(
            guide_id, viewer.id
        ):
            raise PermissionDeniedError("Only the owner or collaborators can do this")
        return self.guides.list_collaborators(guide_id)

    def add_collaborator(
        self,
        guide_id: UUID,
        owner: AuthenticatedUser,
        email: str,
        role: str = "editor",
    ) -> Collaborator:
        self._owned_guide(guide_id, owner.id)
        _validate_choice("role", role, COLLABORATOR_ROLES)
        if not email or not email.strip():
            raise ValidationError("Email is required")
        user = self.users.get_by_email(email.strip().lower())
        if user is None:
            raise NotFoundError("User not found")
        if user.id == owner.id:
            raise ValidationError("The owner cannot be added as a collaborator")
        collaborator = self.guides.upsert_collaborator(
            guide_id, user.id, role, owner.id
        )
        return replace(

            collaborator,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )

    def remove_collaborator(
        self, guide_id: UUID, owner: AuthenticatedUser, user_id: UUID
    ) -> None:
        self._owned_guide(guide_id, owner.id)
        if not self.guides.remove_collaborator(guide_id, user_id):
            raise NotFoundError("Collaborator not found")

    def persist_generated_guide(  # noqa: PLR0913
        self,
        owner: UUID,
        title: str,
        description: str,
        content: dict[str, object],
        difficulty: str,
        estimated_time: str,
        steps: list[NewGuideStep],
        session_id: UUID | None = None,
    ) -> Guide:
        """Store a synthesized draft guide with its steps."""
        guide = self.guides.create_guide(
            user_id=owner,
            title=title,
            description=description,
            content=content,
            tags=[],
            status=GuideStatus.DRAFT,
            visibility=Visibility.PRIVATE,
            difficulty=difficulty,
            estimated_time=estimated_time,
            session_id=session_id,
        )
        self.guides.create_steps(guide.id, steps)
        return guide

    def get_guide_row(self, guide_id: UUID) -> Guide | None:
        return self.guides.get_guide(guide_id)

    def readable_detail(self, guide_id: UUID, viewer: AuthenticatedUser) -> GuideDetail:
        """Return a readable guide and steps without counting a view."""
        guide = self._readable_guide(guide_id, viewer.id)
        return GuideDetail(guide=guide, steps=self.guides.list_steps(guide_id))

    def _readable_guide(self, guide_id: UUID, viewer_id: UUID) -> Guide:
        guide = self.guides.get_guide(guide_id)
        if guide is None or not self._can_read(guide, viewer_id):
            raise NotFoundError("Guide not found or access denied")
        return guide

    def _owned_guide(self, guide_id: UUID, owner_id: UUID) -> Guide:
        guide = self._readable_guide(guide_id, owner_id)
        if guide.user_id != owner_id:
            raise PermissionDeniedError("Only the guide owner can do this")
        return guide

    def _can_read(self, guide: Guide, viewer_id: UUID) -> bool:
        if guide.user_id == viewer_id:
            return True
        if guide.visibility in {Visibility.PUBLIC, Visibility.ORGANIZATION}:
            return True
        return self.guides.get_collaborator(guide.id, viewer_id) is not None

    def _can_edit(self, guide: Guide, user_id: UUID) -> bool:
        if guide.user_id == user_id:
            return True
        collaborator = self.guides.get_collaborator(guide.id, user_id)
        return collaborator is not None and collaborator.role == "editor"

    def _count_view(self, guide: Guide) -> Guide:
        return replace(guide, view_count=self.guides.increment_view_count(guide.id))


def _validate_choice(name: str, value: str, allowed: set[str] | frozenset[str]) -> None:
    if value not in allowed:
        options = ", ".join(sorted(allowed))
        raise ValidationError(f"{name} must be one of: {options}")
