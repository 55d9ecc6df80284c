"""Guide CRUD, sharing, collaborator and export endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Query, Request, status

from processmaster.api.deps import current_user, require_role
from processmaster.api.schemas import (
    AddCollaboratorRequest,
    CreateGuideRequest,
    ShareGuideRequest,
    UpdateGuideRequest,
    ok,
)
from processmaster.domain.auth import AuthenticatedUser
from processmaster.domain.guides import GuideDetail

if TYPE_CHECKING:
    from processmaster.containers import AppContainer

router = APIRouter(prefix="/guides", tags=["guides"])


@router.get("")
async def list_guides(  # noqa: PLR0913
    request: Request,
    page: int = 1,
    limit: int = 10,
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = None,
    tags: str | None = None,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """List the caller's guides plus public ones."""
    container: AppContainer = request.app.state.container
    result = container.guide_service.list_guides(
        user,
        page=page,
        limit=limit,
        status=status_filter,
        search=search,
        tags=[tag.strip() for tag in tags.split(",")] if tags else None,
    )
    return ok(
        {
            "guides": result.guides,
            "pagination": {
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
                "pages": result.pages,
            },
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_guide(
    body: CreateGuideRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_role("user")),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    guide = container.guide_service.create_guide(
        user,
        title=body.title,
        description=body.description,
        content=body.content,
        tags=body.tags,
        visibility=body.visibility,
        difficulty=body.difficulty,
        estimated_time=body.estimated_time,
    )
    return ok(guide)


@router.get("/{guide_id}")
async def get_guide(
    guide_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(_detail_view(container.guide_service.get_guide(guide_id, user)))


@router.put("/{guide_id}")
async def update_guide(
    guide_id: UUID,
    body: UpdateGuideRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Partial update; send ``version`` to detect concurrent edits."""
    container: AppContainer = request.app.state.container
    changes = body.model_dump(exclude={"version"}, exclude_none=True)
    guide = container.guide_service.update_guide(
        guide_id, user, changes, expected_version=body.version
    )
    return ok(guide)


@router.delete("/{guide_id}")
async def delete_guide(
    guide_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    container.guide_service.delete_guide(guide_id, user)
    return ok({"message": "Guide deleted successfully"})


@router.post("/{guide_id}/share")
async def share_guide(
    guide_id: UUID,
    body: ShareGuideRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    result = container.guide_service.share_guide(
        guide_id,
        user,
        password=body.password,
        expires_at=body.expires_at,
        max_views=body.max_views,
    )
    return ok(
        {
            "shareUrl": result.share_url,
            "token": result.token,
            "expiresAt": result.expires_at,
            "maxViews": result.max_views,
        }
    )


@router.get("/{guide_id}/collaborators")
async def list_collaborators(
    guide_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(container.guide_service.list_collaborators(guide_id, user))


@router.post("/{guide_id}/collaborators", status_code=status.HTTP_201_CREATED)
async def add_collaborator(
    guide_id: UUID,
    body: AddCollaboratorRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    collaborator = container.guide_service.add_collaborator(
        guide_id, user, email=body.email, role=body.role
    )
    return ok(collaborator)


@router.delete("/{guide_id}/collaborators/{user_id}")
async def remove_collaborator(
    guide_id: UUID,
    user_id: UUID,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    container.guide_service.remove_collaborator(guide_id, user, user_id)
    return ok({"message": "Collaborator removed"})


@router.get("/{guide_id}/export/{fmt}")
async def export_guide(
    guide_id: UUID,
    fmt: str,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Render the guide and return a signed download link."""
    container: AppContainer = request.app.state.container
    result = await container.export_service.export(guide_id, user, fmt)
    return ok(
        {
            "key": result.key,
            "downloadUrl": result.download_url,
            "format": result.format,
            "contentType": result.content_type,
            "size": result.size_bytes,
            "expiresIn": result.expires_in,
        }
    )


def _detail_view(detail: GuideDetail) -> dict[str, object]:
    return {"guide": detail.guide, "steps": detail.steps}
