"""Object-store upload brokering endpoints."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from processmaster.api.deps import current_user, read_upload
from processmaster.api.schemas import ConfirmUploadRequest, PresignedUrlRequest, ok
from processmaster.domain.auth import AuthenticatedUser
from processmaster.errors import ValidationError

if TYPE_CHECKING:
    from processmaster.containers import AppContainer

router = APIRouter(prefix="/upload", tags=["upload"])


@router.post("/presigned-url")
async def presigned_url(
    body: PresignedUrlRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Sign a direct browser-to-bucket PUT."""
    container: AppContainer = request.app.state.container
    result = container.upload_service.presigned_upload(
        user,
        filename=body.filename,
        content_type=body.content_type,
        upload_type=body.upload_type,
        file_size=body.file_size,
    )
    return ok(
        {
            "uploadUrl": result.upload_url,
            "key": result.key,
            "bucketUrl": result.bucket_url,
            "expiresIn": result.expires_in,
        }
    )


@router.post("/screenshot")
async def upload_screenshot(  # noqa: PLR0913
    request: Request,
    file: UploadFile = File(...),
    session_id: UUID = Form(alias="sessionId"),
    step_number: int | None = Form(default=None, alias="stepNumber"),
    metadata: str | None = Form(default=None),
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    data = await read_upload(file, container.settings.max_upload_bytes)
    screenshot = await container.upload_service.upload_screenshot(
        user,
        session_id,
        data,
        content_type=file.content_type or "application/octet-stream",
        step_number=step_number,
        metadata=_parse_metadata(metadata),
    )
    return ok(screenshot)


@router.post("/confirm")
async def confirm_upload(
    body: ConfirmUploadRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    result = await container.upload_service.confirm_upload(
        user, body.key, body.upload_type, body.metadata
    )
    return ok(
        {
            "key": result.key,
            "url": result.url,
            "size": result.metadata.size_bytes,
            "contentType": result.metadata.content_type,
            "lastModified": result.metadata.last_modified,
            "screenshot": result.screenshot,
        }
    )


@router.get("/download/{key:path}")
async def download_url(
    key: str,
    request: Request,
    expires_in: int | None = Query(default=None, alias="expiresIn"),
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    url, ttl = container.upload_service.download_url(user, key, expires_in)
    return ok({"downloadUrl": url, "expiresIn": ttl})


@router.delete("/{key:path}")
async def delete_upload(
    key: str, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    await container.upload_service.delete(user, key)
    return ok({"message": "File deleted successfully"})


def _parse_metadata(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("metadata must be a JSON object") from exc
    if not isinstance(parsed, dict):
        raise ValidationError("metadata must be a JSON object")
    return parsed
