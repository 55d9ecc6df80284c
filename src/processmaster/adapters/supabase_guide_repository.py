"""Supabase-backed guide repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from processmaster.adapters.supabase_rows import now_iso, parse_timestamp, parse_uuid
from processmaster.domain.guides import (
    Collaborator,
    Guide,
    GuidePage,
    GuideStep,
    NewGuideStep,
)
from processmaster.services.guides import GuideRepository

_GUIDE_COLUMNS = (
    "id, user_id, capture_session_id, title, description, content, tags, status, "
    "visibility, difficulty, estimated_time, view_count, like_count, version, "
    "created_at, updated_at, published_at"
)
_STEP_COLUMNS = (
    "id, guide_id, step_number, title, description, action_type, "
    "element_description, screenshot_id, coordinates, tips, warnings"
)
_COLLABORATOR_COLUMNS = (
    "guide_id, user_id, role, added_at, "
    "user:users!user_id(email, first_name, last_name)"
)
# Characters with meaning inside PostgREST logic trees.
_FILTER_RESERVED = str.maketrans("", "", ",()*\\\"")


@dataclass
class SupabaseGuideRepository(GuideRepository):
    """Supabase implementation for guides, steps and collaborators."""

    client: Client

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
        response = (
            self.client.table("guides")
            .insert(
                {
                    "user_id": str(user_id),
                    "capture_session_id": str(session_id) if session_id else None,
                    "title": title,
                    "description": description,
                    "content": content,
                    "tags": tags,
                    "status": str(status),
                    "visibility": str(visibility),
                    "difficulty": difficulty,
                    "estimated_time": estimated_time,
                    "version": 1,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create guide")
        return _to_guide(response.data[0])

    def get_guide(self, guide_id: UUID) -> Guide | None:
        response = (
            self.client.table("guides")
            .select(_GUIDE_COLUMNS)
            .eq("id", str(guide_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_guide(response.data[0])

    def list_guides(  # noqa: PLR0913
        self,
        viewer_id: UUID,
        page: int,
        limit: int,
        status: str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
    ) -> GuidePage:
        query = (
            self.client.table("guides")
            .select(_GUIDE_COLUMNS, count="exact")
            .or_(_visibility_filter(viewer_id, search))
        )
        if status:
            query = query.eq("status", status)
        if tags:
            query = query.contains("tags", tags)
        offset = (page - 1) * limit
        response = (
            query.order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        return GuidePage(
            guides=[_to_guide(row) for row in response.data or []],
            page=page,
            limit=limit,
            total=int(response.count or 0),
        )

    def update_guide(
        self, guide_id: UUID, changes: dict[str, object], expected_version: int
    ) -> Guide | None:
        payload = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        payload["version"] = expected_version + 1
        payload["updated_at"] = now_iso()
        response = (
            self.client.table("guides")
            .update(payload)
            .eq("id", str(guide_id))
            .eq("version", expected_version)
            .execute()
        )
        if not response.data:
            return None
        return _to_guide(response.data[0])

    def delete_guide(self, guide_id: UUID) -> None:
        self.client.table("guides").delete().eq("id", str(guide_id)).execute()

    def create_steps(
        self, guide_id: UUID, steps: list[NewGuideStep]
    ) -> list[GuideStep]:

        if not steps:
            return []
        response = (
            self.client.table("guide_steps")
            .insert(
                [
                    {
                        "guide_id": str(guide_id),
                        "step_number": step.step_number,
                        "title": step.title,
                        "description": step.description,
                        "action_type": step.action_type,
                        "element_description": step.element_description,
                        "screenshot_id": (
                            str(step.screenshot_id) if step.screenshot_id else None
                        ),
                        "coordinates": step.coordinates,
                        "tips": step.tips,
                        "warnings": step.warnings,
                    }
                    for step in steps
                ]
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create guide steps")
        return [_to_step(row) for row in response.data]

    def list_steps(self, guide_id: UUID) -> list[GuideStep]:
        response = (
            self.client.table("guide_steps")
            .select(_STEP_COLUMNS)
            .eq("guide_id", str(guide_id))
            .order("step_number")
            .execute()
        )
        return [_to_step(row) for row in response.data or []]

    def increment_view_count(self, guide_id: UUID) -> int:
        response = self.client.rpc(
            "increment_guide_views", {"p_guide_id": str(guide_id)}
        ).execute()
        if response.data is None:
            raise RuntimeError("Failed to count guide view")
        return int(response.data)

    def list_collaborators(self, guide_id: UUID) -> list[Collaborator]:
        response = (
            self.client.table("guide_collaborators")
            .select(_COLLABORATOR_COLUMNS)
            .eq("guide_id", str(guide_id))
            .order("added_at")
            .execute()
        )
        return [_to_collaborator(row) for row in response.data or []]

    def get_collaborator(self, guide_id: UUID, user_id: UUID) -> Collaborator | None:
        response = (
            self.client.table("guide_collaborators")
            .select(_COLLABORATOR_COLUMNS)
            .eq("guide_id", str(guide_id))
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_collaborator(response.data[0])

    def upsert_collaborator(
        self, guide_id: UUID, user_id: UUID, role: str, added_by: UUID
    ) -> Collaborator:
        response = (
            self.client.table("guide_collaborators")
            .upsert(
                {
                    "guide_id": str(guide_id),
                    "user_id": str(user_id),
                    "role": role,
                    "added_by": str(added_by),
                },
                on_conflict="guide_id,user_id",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save collaborator")
        return _to_collaborator(response.data[0])

    def remove_collaborator(self, guide_id: UUID, user_id: UUID) -> bool:
        response = (
            self.client.table("guide_collaborators")
            .delete()
            .eq("guide_id", str(guide_id))
            .eq("user_id", str(user_id))
            .execute()
        )
        return bool(response.data)


def _visibility_filter(viewer_id: UUID, search: str | None) -> str:
    """Own or public guides, optionally narrowed by a title/description match."""
    scopes = [f"user_id.eq.{viewer_id}", "visibility.eq.public"]
    term = (search or "").translate(_FILTER_RESERVED).strip()
    if not term:
        return ",".join(scopes)
    match = f"or(title.ilike.*{term}*,description.ilike.*{term}*)"
    return ",".join(f"and({scope},{match})" for scope in scopes)


def _to_guide(row: dict[str, object]) -> Guide:
    return Guide(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        title=str(row["title"]),
        description=row.get("description"),
        content=dict(row.get("content") or {}),
        tags=list(row.get("tags") or []),
        status=str(row.get("status") or "draft"),
        visibility=str(row.get("visibility") or "private"),
        difficulty=row.get("difficulty"),
        estimated_time=row.get("estimated_time"),
        session_id=parse_uuid(row.get("capture_session_id")),
        view_count=int(row.get("view_count") or 0),
        like_count=int(row.get("like_count") or 0),
        version=int(row.get("version") or 1),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
        published_at=parse_timestamp(row.get("published_at")),
    )


def _to_step(row: dict[str, object]) -> GuideStep:
    return GuideStep(
        id=UUID(str(row["id"])),
        guide_id=UUID(str(row["guide_id"])),
        step_number=int(row["step_number"]),
        title=str(row.get("title") or ""),
        description=str(row.get("description") or ""),
        action_type=row.get("action_type"),
        element_description=row.get("element_description"),
        screenshot_id=parse_uuid(row.get("screenshot_id")),
        coordinates=row.get("coordinates"),
        tips=list(row.get("tips") or []),
        warnings=list(row.get("warnings") or []),
    )


def _to_collaborator(row: dict[str, object]) -> Collaborator:
    user = row.get("user") or {}
    return Collaborator(
        guide_id=UUID(str(row["guide_id"])),
        user_id=UUID(str(row["user_id"])),
        role=str(row["role"]),
        email=user.get("email"),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
        added_at=parse_timestamp(row.get("added_at")),
    )
