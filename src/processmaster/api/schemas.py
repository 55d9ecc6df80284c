"""Request bodies and response envelope helpers."""

from datetime import datetime
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from processmaster.domain.models import UserRecord


class CamelModel(BaseModel):
    """Accepts camelCase keys from clients and snake_case from tests."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartCaptureRequest(CamelModel):
    title: str | None = None
    description: str | None = None
    browser_info: dict[str, object] | None = None


class StopCaptureRequest(CamelModel):
    session_id: UUID


class InteractionRequest(CamelModel):
    interaction_type: str
    element_selector: str | None = None
    element_text: str | None = None
    coordinates: dict[str, object] | None = None
    input_value: str | None = None
    input_type: str | None = None
    url: str | None = None
    screenshot_id: UUID | None = None
    sequence_number: int | None = None
    metadata: dict[str, object] = Field(default_factory=dict)


class CreateGuideRequest(CamelModel):
    title: str
    description: str
    content: dict[str, object] | None = None
    tags: list[str] = Field(default_factory=list)
    visibility: str = "private"
    difficulty: str | None = None
    estimated_time: str | None = None


class UpdateGuideRequest(CamelModel):
    title: str | None = None
    description: str | None = None
    content: dict[str, object] | None = None
    tags: list[str] | None = None
    status: str | None = None
    visibility: str | None = None
    difficulty: str | None = None
    estimated_time: str | None = None
    version: int | None = None


class ShareGuideRequest(CamelModel):
    password: str | None = None
    expires_at: datetime | None = None
    max_views: int | None = None


class RedeemShareRequest(CamelModel):
    password: str | None = None


class AddCollaboratorRequest(CamelModel):
    email: str
    role: str = "editor"


class GenerateGuideRequest(CamelModel):
    screenshots: list[str]
    interactions: list[dict[str, object]] = Field(default_factory=list)
    options: dict[str, object] = Field(default_factory=dict)


class EnhanceRequest(CamelModel):
    content: str
    style: str = "professional"
    target_audience: str | None = None
    improvements: list[str] = Field(default_factory=list)


class TranslateRequest(CamelModel):
    content: str
    target_language: str
    preserve_formatting: bool = True


class OptimizeRequest(CamelModel):
    content: str
    optimization_type: str = "readability"
    target_length: int | None = None
    keywords: list[str] = Field(default_factory=list)


class BatchAnalyzeRequest(CamelModel):
    image_urls: list[str]
    context: str | None = None
    analysis_type: str = "standard"
    priority: str = "normal"


class LoginRequest(CamelModel):
    email: str
    password: str
    provider: str | None = None


class LdapLoginRequest(CamelModel):
    username: str
    password: str


class RefreshRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class PresignedUrlRequest(CamelModel):
    filename: str
    content_type: str
    upload_type: str
    file_size: int | None = None


class ConfirmUploadRequest(CamelModel):
    key: str
    upload_type: str
    metadata: dict[str, object] = Field(default_factory=dict)


def ok(data: object = None) -> dict[str, object]:
    """Wrap a payload in the success envelope."""
    return {"success": True, "data": jsonable_encoder(data)}


def user_view(user: UserRecord) -> dict[str, object]:
    """Public user fields; the password hash never leaves the service layer."""
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": user.role,
        "provider": user.auth_provider,
        "lastLogin": user.last_login,
    }
