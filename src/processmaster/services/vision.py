"""Vision and text generation service wrapping the hosted multimodal model."""

import base64
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from processmaster.domain.vision import GuideDraft, GuideStepDraft, ScreenshotAnalysis
from processmaster.errors import AIServiceError

_logger = logging.getLogger(__name__)

SECONDS_PER_STEP = 30

ANALYSIS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "action": {"type": "string"},
        "element": {"type": "string"},
        "description": {"type": "string"},
        "coordinates": {
            "anyOf": [
                {
                    "type": "object",
                    "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
                    "required": ["x", "y"],
                    "additionalProperties": False,
                },
                {"type": "null"},
            ]
        },
        "confidence": {"type": "number", "minimum": 0.0, "maximum": 1.0},
    },
    "required": ["action", "element", "description", "coordinates", "confidence"],
    "additionalProperties": False,
}

_ANALYSIS_PROMPT = (
    "Analyze this screenshot and identify the user interface elements and the "
    "action being performed.\n"
    "{context}"
    "Return the action (e.g. click, type, navigate), the UI element being "
    "interacted with, a clear step description in natural language, the "
    "coordinates of the element if a clickable element is detected, and your "
    "confidence from 0 to 1.\n"
    "Focus on clickable elements (buttons, links, form fields), the user's "
    "intent, and clear, actionable instructions."
)


class VisionClient(Protocol):
    """Interface for the hosted multimodal model."""

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        image_data_url: str,
        schema: dict[str, object],
        prompt: str,
        temperature: float,
        max_output_tokens: int,
    ) -> dict[str, object]:
        """Return structured output for an image prompt."""

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        """Return free text for a text-only prompt."""


@dataclass
class VisionService:
    """Prepares prompts, validates results and normalises failures."""

    client: VisionClient
    model: str
    temperature: float = 0.1
    rewrite_temperature: float = 0.3
    analysis_max_tokens: int = 1000
    summary_max_tokens: int = 500
    text_max_tokens: int = 2000

    async def analyze_screenshot(
        self, image_bytes: bytes, context: str | None = None
    ) -> ScreenshotAnalysis:
        """Describe the UI action shown in a single screenshot."""
        prompt = _ANALYSIS_PROMPT.format(
            context=f"Context: {context}\n" if context else ""
        )
        try:
            raw = await self.client.extract(
                model=self.model,
                image_data_url=to_data_url(image_bytes),
                schema=ANALYSIS_SCHEMA,
                prompt=prompt,
                temperature=self.temperature,
                max_output_tokens=self.analysis_max_tokens,
            )
            return ScreenshotAnalysis.model_validate(raw)
        except AIServiceError:
            raise
        except (PydanticValidationError, json.JSONDecodeError) as exc:
            _logger.warning("Vision model returned an unusable analysis: %s", exc)
            raise AIServiceError("Failed to analyze screenshot with AI") from exc
        except Exception as exc:
            _logger.exception("Vision analysis call failed")
            raise AIServiceError("Failed to analyze screenshot with AI") from exc

    async def summarize_steps(self, steps: Sequence[GuideStepDraft]) -> str:
        """Ask for a natural-language summary of the whole process."""
        outline = json.dumps(
            [{"action": step.action, "description": step.description} for step in steps]
        )
        prompt = (
            "Given these step-by-step actions, write a clear, concise summary of "
            "the entire process, including any tips or warnings for users.\n\n"
            f"Steps: {outline}"
        )
        return await self._complete(
            prompt, self.temperature, self.summary_max_tokens, "summarize guide"
        )

    async def enhance_content(
        self, text: str, instruction: str = "professional"
    ) -> str:

        """Rewrite documentation text in the requested style."""
        prompt = (
            f"Enhance the following process documentation content to be more "
            f"{instruction} and user-friendly.\n\n"
            f"Original content: {text}\n\n"
            "Improve clarity, tone and actionability, and add error prevention "
            "tips where useful. Return only the enhanced content, maintaining "
            "the same structure."
        )
        return await self._complete(
            prompt, self.rewrite_temperature, self.text_max_tokens, "enhance content"
        )

    async def translate_content(self, text: str, target_language: str) -> str:
        """Translate documentation text, keeping technical terms and layout."""
        prompt = (
            f"Translate the following process documentation content to "
            f"{target_language}, maintaining technical accuracy and professional "
            "tone.\n\n"
            f"Content: {text}\n\n"
            "Ensure technical terms are accurately translated, UI element names "
            "are preserved or appropriately localized, and the step-by-step "
            "structure is maintained. Return only the translated content."
        )
        return await self._complete(
            prompt, self.temperature, self.text_max_tokens, "translate content"
        )

    async def _complete(
        self, prompt: str, temperature: float, max_tokens: int, purpose: str
    ) -> str:
        try:
            text = await self.client.complete(
                model=self.model,
                prompt=prompt,
                temperature=temperature,
                max_output_tokens=max_tokens,
            )
        except AIServiceError:
            raise
        except Exception as exc:
            _logger.exception("Vision client failed to %s", purpose)
            raise AIServiceError(f"Failed to {purpose} with AI") from exc
        if not text or not text.strip():
            raise AIServiceError(f"Failed to {purpose} with AI: empty response")
        return text.strip()


def classify_difficulty(step_count: int) -> str:
    """Difficulty tier derived purely from the number of steps."""
    if step_count > 10:  # noqa: PLR2004
        return "advanced"
    if step_count > 5:  # noqa: PLR2004
        return "intermediate"
    return "beginner"


def estimate_completion_time(step_count: int) -> str:
    return f"{step_count * SECONDS_PER_STEP} seconds"


def build_step_drafts(
    analyses: Sequence[ScreenshotAnalysis],
    screenshot_ids: Sequence[str | None] | None = None,
) -> list[GuideStepDraft]:
    """Turn per-image analyses into steps numbered from 1."""
    ids = list(screenshot_ids or [])
    steps: list[GuideStepDraft] = []
    for index, analysis in enumerate(analyses):
        number = index + 1
        steps.append(
            GuideStepDraft(
                step_number=number,
                title=f"Step {number}",
                action=analysis.action,
                element=analysis.element,
                description=analysis.description,
                coordinates=analysis.coordinates,
                confidence=analysis.confidence,
                screenshot_id=ids[index] if index < len(ids) else None,
            )
        )
    return steps


def build_guide_draft(steps: list[GuideStepDraft], summary: str) -> GuideDraft:
    return GuideDraft(
        summary=summary,
        steps=steps,
        estimated_time=estimate_completion_time(len(steps)),
        difficulty=classify_difficulty(len(steps)),
    )


def to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:6] in {b"GIF87a", b"GIF89a"}:
        return "image/gif"
    return "image/png"
