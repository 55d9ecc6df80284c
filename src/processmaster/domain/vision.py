"""Models for vision analysis results."""

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    x: float
    y: float


class ScreenshotAnalysis(BaseModel):
    """Structured output for a single screenshot."""

    action: str
    element: str
    description: str
    coordinates: Coordinates | None = None
    confidence: float = Field(ge=0.0, le=1.0)


class GuideStepDraft(BaseModel):
    """One synthesized step before it is persisted."""

    step_number: int = Field(ge=1)
    title: str
    action: str
    element: str
    description: str
    coordinates: Coordinates | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    screenshot_id: str | None = None


class GuideDraft(BaseModel):
    """Aggregated guide produced from a series of analyses."""

    summary: str
    steps: list[GuideStepDraft]
    estimated_time: str
    difficulty: str
