"""Tests for vision service helpers and error normalisation."""

import asyncio
import base64

import pytest

from processmaster.domain.vision import ScreenshotAnalysis
from processmaster.errors import AIServiceError
from processmaster.services.vision import (
    VisionService,
    build_guide_draft,
    build_step_drafts,
    classify_difficulty,
    detect_mime_type,
    estimate_completion_time,
    to_data_url,
)
from tests.conftest import FakeVisionClient, png_bytes


@pytest.mark.parametrize(
    ("steps", "expected"),
    [
        (0, "beginner"),
        (5, "beginner"),
        (6, "intermediate"),
        (10, "intermediate"),
        (11, "advanced"),
    ],
)
def test_classify_difficulty(steps: int, expected: str) -> None:
    assert classify_difficulty(steps) == expected


def test_estimate_completion_time() -> None:
    assert estimate_completion_time(4) == "120 seconds"


def test_to_data_url_detects_png() -> None:
    data = png_bytes()

    url = to_data_url(data)

    assert url.startswith("data:image/png;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == data


@pytest.mark.parametrize(
    ("prefix", "expected"),
    [
        (b"\xff\xd8\xff\xe0", "image/jpeg"),
        (b"GIF89a", "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBP", "image/webp"),
        (b"unknown", "image/png"),
    ],
)
def test_detect_mime_type(prefix: bytes, expected: str) -> None:
    assert detect_mime_type(prefix + b"rest") == expected


def test_analyze_screenshot_validates_output() -> None:
    client = FakeVisionClient()
    service = VisionService(client=client, model="gpt-4o")

    analysis = asyncio.run(
        service.analyze_screenshot(png_bytes(), context="Settings page")
    )

    assert analysis.action == "click"
    assert analysis.coordinates is not None
    call = client.extract_calls[0]
    assert call["model"] == "gpt-4o"
    assert call["temperature"] == 0.1
    assert call["max_output_tokens"] == 1000
    assert "Context: Settings page" in call["prompt"]


@pytest.mark.parametrize(
    "payload",
    [
        {
            "action": "click",
            "element": "OK",
            "description": "Press OK",
            "confidence": 1.5,
        },
        {"action": "click"},
    ],
)
def test_analyze_screenshot_rejects_malformed_output(payload) -> None:
    service = VisionService(client=FakeVisionClient(analyses=[payload]), model="gpt-4o")

    with pytest.raises(AIServiceError):
        asyncio.run(service.analyze_screenshot(png_bytes()))


def test_analyze_screenshot_wraps_client_errors() -> None:
    service = VisionService(client=FakeVisionClient(fail_on_calls={0}), model="gpt-4o")

    with pytest.raises(AIServiceError) as excinfo:
        asyncio.run(service.analyze_screenshot(png_bytes()))

    assert excinfo.value.status_code == 503
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_text_passes_reject_empty_completion() -> None:
    service = VisionService(client=FakeVisionClient(completion="   "), model="gpt-4o")

    with pytest.raises(AIServiceError):
        asyncio.run(service.enhance_content("Click save."))


def test_enhance_uses_rewrite_temperature() -> None:
    client = FakeVisionClient(completion="  Polished text.  ")
    service = VisionService(client=client, model="gpt-4o")

    result = asyncio.run(service.enhance_content("click save", "friendly"))

    assert result == "Polished text."
    assert client.complete_calls[0]["temperature"] == 0.3
    assert "more friendly" in client.complete_calls[0]["prompt"]


def test_build_guide_draft_numbers_steps_from_one() -> None:
    analyses = [
        ScreenshotAnalysis(
            action="click",
            element=f"Tab {n}",
            description=f"Open tab {n}",
            confidence=0.8,

        )
        for n in range(7)
    ]

    steps = build_step_drafts(analyses, ["a", "b"])
    draft = build_guide_draft(steps, "Summary")

    assert [step.step_number for step in steps] == list(range(1, 8))
    assert [step.screenshot_id for step in steps[:3]] == ["a", "b", None]
    assert draft.difficulty == "intermediate"
    assert draft.estimated_time == "210 seconds"
