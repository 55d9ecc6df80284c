"""Capture session endpoints used by the browser extension."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status

from processmaster.api.deps import current_user, read_upload, require_role
from processmaster.api.schemas import (
    InteractionRequest,
    StartCaptureRequest,
    StopCaptureRequest,
    ok,
)
from processmaster.domain.auth import AuthenticatedUser
from processmaster.domain.capture import NewInteraction
from processmaster.errors import ValidationError

if TYPE_CHECKING:
    from processmaster.containers import AppContainer

router = APIRouter(prefix="/capture", tags=["capture"])


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start_capture(
    body: StartCaptureRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_role("user")),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    session = container.capture_service.start(
        user.id,
        title=body.title,
        description=body.description,
        browser_info=body.browser_info,
    )
    return ok(session)


@router.post("/stop")
async def stop_capture(
    body: StopCaptureRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(container.capture_service.stop(body.session_id, user.id))


@router.get("/{session_id}/status")
async def capture_status(
    session_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    result = container.capture_service.status(session_id, user.id)
    return ok(
        {
            "session": result.session,
            "screenshotCount": result.screenshot_count,
            "interactionCount": result.interaction_count,
        }
    )


@router.post("/{session_id}/screenshot")
async def upload_capture_screenshot(  # noqa: PLR0913
    session_id: UUID,
    request: Request,
    screenshot: UploadFile = File(...),
    sequence_number: int | None = Form(default=None, alias="sequenceNumber"),
    url: str | None = Form(default=None),
    title: str | None = Form(default=None),
    timestamp: str | None = Form(default=None),
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Store one screenshot; the image is normalised before upload."""
    container: AppContainer = request.app.state.container
    data = await read_upload(screenshot, container.settings.max_upload_bytes)
    metadata = {
        key: value
        for key, value in (("url", url), ("title", title), ("timestamp", timestamp))
        if value
    }
    saved = await container.capture_service.add_screenshot(
        session_id,
        user.id,
        data,
        sequence_number=sequence_number,
        metadata=metadata,
    )
    return ok(saved)


@router.post("/upload")
async def upload_capture_screenshots(
    request: Request,
    session_id: UUID = Form(alias="sessionId"),
    files: list[UploadFile] = File(...),
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Store several screenshots in order, each with its own sequence number."""
    container: AppContainer = request.app.state.container
    if not files:
        raise ValidationError("At least one file is required")
    saved = []
    for upload in files:
        data = await read_upload(upload, container.settings.max_upload_bytes)
        saved.append(
            await container.capture_service.add_screenshot(
                session_id,
                user.id,
                data,
                metadata={"filename": upload.filename} if upload.filename else None,
            )
        )
    return ok({"screenshots": saved, "count": len(saved)})


@router.post("/{session_id}/interaction")
async def record_interaction(
    session_id: UUID,
    body: InteractionRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    interaction = container.capture_service.record_interaction(
        session_id,
        user.id,
        NewInteraction(
            interaction_type=body.interaction_type,
            element_selector=body.element_selector,
            element_text=body.element_text,
            coordinates=body.coordinates,
            input_value=body.input_value,
            input_type=body.input_type,
            url=body.url,
            screenshot_id=body.screenshot_id,
            sequence_number=body.sequence_number,
            metadata=body.metadata,
        ),
    )
    return ok(interaction)


@router.get("/{session_id}/interactions")
async def list_interactions(
    session_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(container.capture_service.list_interactions(session_id, user.id))


@router.post("/{session_id}/process")
async def process_capture(
    session_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    """Queue guide generation; poll /result for the outcome."""
    container: AppContainer = request.app.state.container
    job = container.pipeline.start_session_job(session_id, user.id)
    return ok({"jobId": str(job.id), "status": "processing"})


@router.get("/{session_id}/result")
async def capture_result(
    session_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(container.pipeline.session_result(session_id, user.id))
