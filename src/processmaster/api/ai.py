"""AI endpoints: image analysis, guide drafts, rewrites and batch jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status

from processmaster.api.deps import current_user, read_upload
from processmaster.api.schemas import (
    BatchAnalyzeRequest,
    EnhanceRequest,
    GenerateGuideRequest,
    OptimizeRequest,
    TranslateRequest,
    ok,
)
from processmaster.domain.auth import AuthenticatedUser
from processmaster.domain.jobs import ProcessingJob
from processmaster.services.content import ImageUpload

if TYPE_CHECKING:
    from processmaster.containers import AppContainer

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/analyze")
async def analyze_images(
    request: Request,
    images: list[UploadFile] = File(...),
    context: str | None = Form(default=None),
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Analyze uploaded screenshots inline."""
    container: AppContainer = request.app.state.container
    uploads = [
        ImageUpload(
            filename=image.filename or f"image-{index + 1}",
            data=await read_upload(image, container.settings.max_upload_bytes),
            content_type=image.content_type,
        )
        for index, image in enumerate(images)
    ]
    result = await container.content_service.analyze_images(user.id, uploads, context)
    return ok(result)


@router.post("/generate", status_code=status.HTTP_202_ACCEPTED)
async def generate_guide(
    body: GenerateGuideRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    job = container.pipeline.start_generate_job(
        user.id, body.screenshots, body.interactions, body.options
    )
    return ok({"jobId": str(job.id), "status": job.status})


@router.post("/enhance")
async def enhance_content(
    body: EnhanceRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    result = await container.content_service.enhance(
        user.id,
        body.content,
        style=body.style,
        target_audience=body.target_audience,
        improvements=body.improvements,
    )
    return ok(result)


@router.post("/translate")
async def translate_content(
    body: TranslateRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    result = await container.content_service.translate(
        user.id,
        body.content,
        body.target_language,
        preserve_formatting=body.preserve_formatting,
    )
    return ok(result)


@router.post("/optimize")
async def optimize_content(
    body: OptimizeRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    result = await container.content_service.optimize(
        user.id,
        body.content,
        optimization_type=body.optimization_type,
        target_length=body.target_length,
        keywords=body.keywords,
    )
    return ok(result)


@router.post("/batch/analyze", status_code=status.HTTP_202_ACCEPTED)
async def batch_analyze(
    body: BatchAnalyzeRequest,
    request: Request,
    user: AuthenticatedUser = Depends(current_user),
) -> dict[str, object]:
    """Queue analysis of up to the configured number of image URLs."""
    container: AppContainer = request.app.state.container
    job = container.pipeline.start_batch_job(
        user.id,
        body.image_urls,
        context=body.context,
        analysis_type=body.analysis_type,
        priority=body.priority,
    )
    return ok(
        {
            "jobId": str(job.id),
            "status": job.status,
            "imageCount": len(body.image_urls),
        }
    )


@router.get("/batch/{job_id}/status")
async def batch_status(
    job_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(_job_view(container.pipeline.job_status(job_id, user.id)))


@router.get("/batch/{job_id}/result")
async def batch_result(
    job_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(container.pipeline.job_result(job_id, user.id))


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(
    job_id: UUID, request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(_job_view(container.pipeline.cancel_job(job_id, user.id)))


@router.get("/models")
async def list_models(
    request: Request, user: AuthenticatedUser = Depends(current_user)
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    return ok(
        {
            "provider": container.settings.vision_provider,
            "defaultModel": container.vision_service.model,
            "models": container.content_service.available_models(),
        }
    )


def _job_view(job: ProcessingJob) -> dict[str, object]:
    return {
        "jobId": str(job.id),
        "jobType": job.job_type,
        "status": job.status,
        "error": job.error_message,
        "processingTime": job.processing_time,
        "createdAt": job.created_at,
        "startedAt": job.started_at,
        "completedAt": job.completed_at,
    }
