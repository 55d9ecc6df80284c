"""Guide synthesis jobs: capture session to guide, ad-hoc drafts and batch analysis."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from processmaster.domain.capture import Interaction, Screenshot, SessionStatus
from processmaster.domain.guides import NewGuideStep
from processmaster.domain.jobs import JobStatus, JobType, ProcessingJob
from processmaster.domain.vision import GuideStepDraft

from processmaster.errors import (
    AppError,
    ConflictError,
    EmptyInputError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from processmaster.services.capture import CaptureService
from processmaster.services.guides import GuideService
from processmaster.services.jobs import JobRepository, JobRunner
from processmaster.services.storage import ObjectStore, key_owner
from processmaster.services.vision import (
    VisionService,
    build_guide_draft,
    build_step_drafts,
)

_logger = logging.getLogger(__name__)


class ImageFetcher(Protocol):
    """Interface for downloading images referenced by URL."""

    async def fetch(self, url: str) -> bytes:
        """Return the image bytes at a URL."""


@dataclass
class GuideSynthesisPipeline:
    """Creates synthesis jobs and implements their handlers."""

    capture: CaptureService
    guides: GuideService
    jobs: JobRepository
    runner: JobRunner
    vision: VisionService
    image_fetcher: ImageFetcher
    object_store: ObjectStore
    batch_max_images: int = 50

    def register_handlers(self) -> None:
        self.runner.register(JobType.GENERATE, self.run_generate_job)
        self.runner.register(JobType.BATCH_ANALYZE, self.run_batch_job)

    def start_session_job(self, session_id: UUID, owner: UUID) -> ProcessingJob:
        """Queue guide generation for a capture session."""
        session = self.capture.get_owned_session(session_id, owner)
        if session.status == SessionStatus.PROCESSING:
            latest = self.jobs.latest_job_for_session(session_id)
            if latest is not None and not latest.is_terminal:
                raise ConflictError(
                    "Capture session is already being processed",
                    details={"jobId": str(latest.id)},
                )
        job = self.jobs.create_job(
            user_id=owner,
            job_type=JobType.GENERATE,
            input_data={"sessionId": str(session_id), "userId": str(owner)},
            session_id=session_id,
        )
        self.capture.mark_status(session_id, SessionStatus.PROCESSING)
        self.runner.submit(job.id)
        _logger.info(
            "Queued guide generation job %s for session %s", job.id, session_id
        )
        return job

    def start_generate_job(
        self,
        owner: UUID,
        screenshot_keys: Sequence[str],
        interactions: Sequence[dict[str, object]] | None = None,
        options: dict[str, object] | None = None,
    ) -> ProcessingJob:
        """Queue an ad-hoc guide draft from object-store screenshots."""
        keys = [key for key in screenshot_keys if key]
        if not keys:
            raise EmptyInputError("At least one screenshot is required")
        if len(keys) > self.batch_max_images:
            raise ValidationError(
                f"A maximum of {self.batch_max_images} screenshots is allowed"
            )
        for key in keys:
            if key_owner(key) != str(owner):
                raise PermissionDeniedError(
                    "Access denied to screenshot", details={"key": key}
                )
        job = self.jobs.create_job(
            user_id=owner,
            job_type=JobType.GENERATE,
            input_data={
                "screenshotKeys": keys,
                "interactions": list(interactions or []),
                "options": dict(options or {}),
            },
        )
        self.runner.submit(job.id)
        return job

    def start_batch_job(
        self,
        owner: UUID,
        image_urls: Sequence[str],
        context: str | None = None,
        analysis_type: str = "standard",
        priority: str = "normal",
    ) -> ProcessingJob:
        """Queue independent analysis of up to the configured number of URLs."""
        urls = list(image_urls)
        if not urls:
            raise ValidationError("imageUrls must contain at least one URL")
        if len(urls) > self.batch_max_images:
            raise ValidationError(
                f"Maximum {self.batch_max_images} images allowed per batch"
            )
        for url in urls:
            if not isinstance(url, str) or not url.startswith(("http://", "https://")):
                raise ValidationError(
                    "imageUrls must be http(s) URLs", details={"url": url}
                )
        job = self.jobs.create_job(
            user_id=owner,
            job_type=JobType.BATCH_ANALYZE,
            input_data={
                "imageUrls": urls,
                "context": context,
                "analysisType": analysis_type,
                "priority": priority,
            },
        )
        self.runner.submit(job.id)
        return job

    async def run_generate_job(self, job: ProcessingJob) -> dict[str, object]:
        if job.session_id is not None:
            return await self.run_session_job(job)
        return await self._run_draft_job(job)

    async def run_session_job(self, job: ProcessingJob) -> dict[str, object]:
        """Synthesize and persist a guide, failing the session on any error."""
        if job.session_id is None:
            raise ValidationError("Job is not linked to a capture session")
        try:
            return await self._synthesize_session(job.session_id, job.user_id)
        except (Exception, asyncio.CancelledError):
            self.capture.mark_status(job.session_id, SessionStatus.FAILED)
            raise

    async def _synthesize_session(
        self, session_id: UUID, owner: UUID
    ) -> dict[str, object]:
        session = self.capture.get_owned_session(session_id, owner)
        screenshots = self.capture.list_screenshots(session_id, owner)
        if not screenshots:
            raise EmptyInputError("Capture session has no screenshots")
        interactions = self.capture.list_interactions(session_id, owner)

        analyses = []
        for screenshot, hint in zip(
            screenshots, interaction_hints(screenshots, interactions), strict=True
        ):
            image = await self.capture.load_screenshot_bytes(screenshot)
            analyses.append(await self.vision.analyze_screenshot(image, hint))

        steps = build_step_drafts(analyses, [str(shot.id) for shot in screenshots])
        summary = await self.vision.summarize_steps(steps)
        draft = build_guide_draft(steps, summary)
        guide = self.guides.persist_generated_guide(
            owner=owner,
            title=session.title
            or f"Process Guide - {datetime.now(tz=UTC).date().isoformat()}",
            description=draft.summary,
            content={
                "steps": [step.model_dump(mode="json") for step in draft.steps],
                "aiGenerated": True,
            },
            difficulty=draft.difficulty,
            estimated_time=draft.estimated_time,
            steps=[_new_step(step) for step in draft.steps],
            session_id=session_id,
        )
        self.capture.mark_status(session_id, SessionStatus.COMPLETED)
        _logger.info("Session %s produced guide %s", session_id, guide.id)
        return {"guideId": str(guide.id)}

    async def _run_draft_job(self, job: ProcessingJob) -> dict[str, object]:
        keys = [str(key) for key in job.input_data.get("screenshotKeys", [])]
        raw_interactions = job.input_data.get("interactions") or []
        interactions = raw_interactions if isinstance(raw_interactions, list) else []
        if not keys:
            raise EmptyInputError("At least one screenshot is required")
        analyses = []
        for index, key in enumerate(keys):
            hint = interactions[index] if index < len(interactions) else None
            image = await self.object_store.get_object(key)
            analyses.append(
                await self.vision.analyze_screenshot(image, _payload_hint(hint))
            )
        steps = build_step_drafts(analyses)
        draft = build_guide_draft(steps, await self.vision.summarize_steps(steps))
        return draft.model_dump(mode="json")

    async def run_batch_job(self, job: ProcessingJob) -> dict[str, object]:
        """Analyze each URL independently; item failures are recorded inline."""
        urls = [str(url) for url in job.input_data.get("imageUrls", [])]
        raw_context = job.input_data.get("context")
        context = str(raw_context) if raw_context else None
        analyses: list[dict[str, object]] = []
        for url in urls:
            try:
                image = await self.image_fetcher.fetch(url)
                analysis = await self.vision.analyze_screenshot(image, context)
            except AppError as exc:
                _logger.warning(
                    "Batch job %s: %s failed: %s", job.id, url, exc.message
                )
                analyses.append({"url": url, "error": exc.message, "success": False})
                continue
            except Exception as exc:
                _logger.exception("Batch job %s: %s failed", job.id, url)
                message = str(exc) or type(exc).__name__
                analyses.append({"url": url, "error": message, "success": False})

                continue

            analyses.append(
                {
                    "url": url,
                    "analysis": analysis.model_dump(mode="json"),
                    "success": True,
                }
            )
        success_count = sum(1 for item in analyses if item["success"])
        return {
            "analyses": analyses,
            "successCount": success_count,
            "totalCount": len(urls),
        }

    def session_result(self, session_id: UUID, owner: UUID) -> dict[str, object]:
        """Report the latest processing outcome for a session."""
        self.capture.get_owned_session(session_id, owner)
        job = self.jobs.latest_job_for_session(session_id)
        if job is None:
            raise NotFoundError("No processing job found for this session")
        if job.status == JobStatus.COMPLETED:
            guide_id = str((job.output_data or {}).get("guideId", ""))
            guide = self.guides.get_guide_row(UUID(guide_id)) if guide_id else None
            return {
                "status": job.status,
                "jobId": str(job.id),
                "guideId": guide_id or None,
                "guide": guide,
                "processingTime": job.processing_time,
            }
        if job.status == JobStatus.FAILED:
            return {
                "status": job.status,
                "jobId": str(job.id),
                "error": job.error_message,
            }
        return {
            "status": job.status,
            "jobId": str(job.id),
            "message": "Processing in progress",
        }

    def job_status(self, job_id: UUID, owner: UUID) -> ProcessingJob:
        job = self.jobs.get_job(job_id)
        if job is None or job.user_id != owner:
            raise NotFoundError("Job not found")
        return job

    def job_result(self, job_id: UUID, owner: UUID) -> dict[str, object]:
        """Return output data, which is only trusted once the job completed."""
        job = self.job_status(job_id, owner)
        if job.status != JobStatus.COMPLETED or job.output_data is None:
            raise NotFoundError(
                "Job result not available", details={"status": job.status}
            )
        return job.output_data

    def cancel_job(self, job_id: UUID, owner: UUID) -> ProcessingJob:
        job = self.job_status(job_id, owner)
        if job.is_terminal:
            raise ConflictError(
                "Job has already finished", details={"status": job.status}
            )

        cancelled = self.runner.cancel(job_id)
        if job.session_id is not None:
            self.capture.mark_status(job.session_id, SessionStatus.FAILED)
        return cancelled or self.job_status(job_id, owner)


def _new_step(step: GuideStepDraft) -> NewGuideStep:
    return NewGuideStep(
        step_number=step.step_number,
        title=step.title,
        description=step.description,
        action_type=step.action,
        element_description=step.element,
        screenshot_id=UUID(step.screenshot_id) if step.screenshot_id else None,
        coordinates=step.coordinates.model_dump() if step.coordinates else None,
    )


def interaction_hints(
    screenshots: Sequence[Screenshot], interactions: Sequence[Interaction]
) -> list[str | None]:
    """Pair each screenshot with the interaction that produced it.

    Interactions linked by screenshot id win; otherwise the interaction at the
    same position is used.
    """
    linked = {
        interaction.screenshot_id: interaction
        for interaction in interactions
        if interaction.screenshot_id is not None
    }
    hints: list[str | None] = []
    for index, screenshot in enumerate(screenshots):
        interaction = linked.get(screenshot.id)
        if interaction is None and index < len(interactions):
            interaction = interactions[index]
        hints.append(describe_interaction(interaction) if interaction else None)
    return hints


def describe_interaction(interaction: Interaction) -> str:
    target = interaction.element_text or interaction.element_selector or "the page"
    parts = [f"The user performed a {interaction.interaction_type} on {target!r}"]
    if interaction.input_value:
        parts.append(f"entering {interaction.input_value!r}")
    if interaction.url:
        parts.append(f"at {interaction.url}")
    return " ".join(parts) + "."


def _payload_hint(raw: object) -> str | None:
    if not isinstance(raw, dict):
        return None
    context = raw.get("context") or raw.get("description")
    if context:
        return str(context)
    kind = raw.get("interactionType") or raw.get("type")
    target = raw.get("elementText") or raw.get("elementSelector")
    if kind and target:
        return f"The user performed a {kind} on {target!r}."
    return None
