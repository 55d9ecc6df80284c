"""Synchronous AI content tools: image analysis, enhance, translate, optimize."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from processmaster.domain.jobs import JobStatus, JobType
from processmaster.errors import AIServiceError, ValidationError
from processmaster.services.jobs import JobRepository
from processmaster.services.vision import VisionService

_logger = logging.getLogger(__name__)

STORED_TEXT_LIMIT = 1000

OPTIMIZATION_TYPES = ("readability", "seo", "brevity")

AVAILABLE_MODELS: dict[str, list[dict[str, object]]] = {
    "openai": [
        {
            "id": "gpt-4o",
            "name": "GPT-4o",
            "capabilities": ["vision", "text-generation", "analysis"],
            "maxTokens": 16384,
        },
        {
            "id": "gpt-4o-mini",
            "name": "GPT-4o mini",
            "capabilities": ["vision", "text-generation"],
            "maxTokens": 16384,
        },
    ],
    "bedrock": [
        {
            "id": "anthropic.claude-3-5-sonnet-20241022-v2:0",
            "name": "Claude 3.5 Sonnet",
            "capabilities": ["vision", "text-generation", "analysis"],
            "maxTokens": 4096,
        },
        {
            "id": "anthropic.claude-3-haiku-20240307-v1:0",
            "name": "Claude 3 Haiku",
            "capabilities": ["vision", "text-generation"],
            "maxTokens": 4096,
        },
    ],
}


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    data: bytes
    content_type: str | None = None


@dataclass
class ContentService:
    """Runs text and image passes inline and logs each one as a job row."""

    vision: VisionService
    jobs: JobRepository
    provider: str = "openai"
    max_files: int = 20

    async def analyze_images(
        self, owner: UUID, files: Sequence[ImageUpload], context: str | None = None
    ) -> dict[str, object]:
        """Analyze each image; a failed image is reported, not raised."""
        if not files:
            raise ValidationError("At least one image is required")
        if len(files) > self.max_files:
            raise ValidationError(f"A maximum of {self.max_files} images is allowed")
        started = time.monotonic()
        results: list[dict[str, object]] = []
        for upload in files:
            try:
                analysis = await self.vision.analyze_screenshot(upload.data, context)
            except AIServiceError as exc:
                _logger.warning(
                    "Analysis of %s failed: %s", upload.filename, exc.message
                )
                results.append(
                    {
                        "filename": upload.filename,
                        "success": False,
                        "error": exc.message,
                        "confidence": 0,
                    }
                )
                continue
            results.append(
                {
                    "filename": upload.filename,
                    "success": True,
                    **analysis.model_dump(mode="json"),
                }
            )
        success_count = sum(1 for item in results if item["success"])
        job = self.jobs.create_job(
            user_id=owner,
            job_type=JobType.ANALYZE,
            input_data={
                "fileCount": len(files),
                "filenames": [upload.filename for upload in files],
                "context": context,
            },
            status=JobStatus.COMPLETED,
            output_data={"results": results, "successCount": success_count},
            processing_time=_elapsed_ms(started),
        )
        return {"jobId": str(job.id), "results": results, "successCount": success_count}

    async def enhance(
        self,
        owner: UUID,
        content: str,
        style: str = "professional",
        target_audience: str | None = None,
        improvements: Sequence[str] | None = None,
    ) -> dict[str, object]:
        _require_text(content)
        instruction = style
        if target_audience:
            instruction += f" for an audience of {target_audience}"
        if improvements:
            instruction += f", focusing on {', '.join(improvements)}"
        started = time.monotonic()
        enhanced = await self.vision.enhance_content(content, instruction)
        job_id = self._log_job(
            owner,
            JobType.ENHANCE,
            {
                "content": _truncate(content),
                "style": style,
                "targetAudience": target_audience,
            },
            {"enhancedContent": _truncate(enhanced)},
            started,
        )
        return {
            "jobId": job_id,
            "originalContent": content,
            "enhancedContent": enhanced,
            "style": style,
            "originalLength": len(content),
            "enhancedLength": len(enhanced),
        }

    async def translate(
        self,
        owner: UUID,
        content: str,
        target_language: str,
        preserve_formatting: bool = True,
    ) -> dict[str, object]:
        _require_text(content)
        if not target_language or not target_language.strip():
            raise ValidationError("targetLanguage is required")
        started = time.monotonic()
        translated = await self.vision.translate_content(
            content, target_language.strip()
        )
        job_id = self._log_job(
            owner,
            JobType.TRANSLATE,
            {
                "content": _truncate(content),
                "targetLanguage": target_language,
                "preserveFormatting": preserve_formatting,
            },
            {"translatedContent": _truncate(translated)},
            started,
        )
        return {
            "jobId": job_id,
            "originalContent": content,
            "translatedContent": translated,
            "targetLanguage": target_language,
        }

    async def optimize(
        self,
        owner: UUID,
        content: str,
        optimization_type: str = "readability",
        target_length: int | None = None,
        keywords: Sequence[str] | None = None,
    ) -> dict[str, object]:
        _require_text(content)
        instruction = optimization_instruction(
            optimization_type, target_length, keywords
        )

        started = time.monotonic()
        optimized = await self.vision.enhance_content(content, instruction)
        job_id = self._log_job(
            owner,
            JobType.ENHANCE,
            {"content": _truncate(content), "optimizationType": optimization_type},
            {"optimizedContent": _truncate(optimized)},
            started,
        )
        original_length = len(content)
        return {
            "jobId": job_id,
            "optimizedContent": optimized,
            "optimizationType": optimization_type,
            "originalLength": original_length,
            "optimizedLength": len(optimized),
            "reductionPercent": round(
                (original_length - len(optimized)) / original_length * 100, 1
            ),
        }

    def available_models(self) -> list[dict[str, object]]:
        return AVAILABLE_MODELS.get(self.provider, [])

    def _log_job(
        self,
        owner: UUID,
        job_type: str,
        input_data: dict[str, object],
        output_data: dict[str, object],
        started: float,
    ) -> str:
        job = self.jobs.create_job(
            user_id=owner,
            job_type=job_type,
            input_data=input_data,
            status=JobStatus.COMPLETED,
            output_data=output_data,
            processing_time=_elapsed_ms(started),
        )
        return str(job.id)


def optimization_instruction(
    optimization_type: str,
    target_length: int | None = None,
    keywords: Sequence[str] | None = None,
) -> str:
    """Build the rewrite instruction for an optimization pass."""
    if optimization_type == "readability":
        instruction = "readable, using short sentences and plain language"
    elif optimization_type == "seo":
        instruction = "search-engine friendly with descriptive headings"
        if keywords:
            instruction += f", naturally including the keywords {', '.join(keywords)}"
    elif optimization_type == "brevity":
        instruction = "concise, removing redundant words and steps"
    else:
        options = ", ".join(OPTIMIZATION_TYPES)
        raise ValidationError(f"optimizationType must be one of: {options}")
    if target_length:
        instruction += f", at roughly {target_length} words"
    return instruction


def _require_text(content: str) -> None:
    if not content or not content.strip():
        raise ValidationError("content is required")


def _truncate(text: str) -> str:
    return text[:STORED_TEXT_LIMIT]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
