"""Upload brokering against the object store."""

import logging
from dataclasses import dataclass
from uuid import UUID

from processmaster.domain.auth import AuthenticatedUser, has_role
from processmaster.domain.capture import Screenshot
from processmaster.errors import (
    ConflictError,
    NotFoundError,
    PayloadTooLargeError,
    PermissionDeniedError,
    ValidationError,
)
from processmaster.services.capture import CaptureService
from processmaster.services.storage import (
    ObjectMetadata,
    ObjectStore,
    generate_object_key,
    key_owner,
)

_logger = logging.getLogger(__name__)

UPLOAD_TYPES = frozenset({"screenshot", "export", "profile-image"})
ALLOWED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/html",
    }
)


@dataclass(frozen=True)
class PresignedUpload:
    upload_url: str
    key: str
    bucket_url: str
    expires_in: int


@dataclass(frozen=True)
class ConfirmedUpload:
    key: str
    url: str
    metadata: ObjectMetadata
    screenshot: Screenshot | None


@dataclass
class UploadService:
    """Issues signed URLs and enforces per-user key namespaces."""

    object_store: ObjectStore
    capture: CaptureService
    max_upload_bytes: int = 10 * 1024 * 1024
    upload_ttl: int = 900
    download_ttl: int = 3600

    def presigned_upload(
        self,
        user: AuthenticatedUser,
        filename: str,
        content_type: str,
        upload_type: str,
        file_size: int | None = None,
    ) -> PresignedUpload:
        if not filename or not content_type or not upload_type:
            raise ValidationError(
                "Missing required fields: filename, contentType, uploadType"
            )
        self._validate(upload_type, content_type, file_size)
        key = generate_object_key(upload_type, user.id, filename)
        url = self.object_store.presigned_upload_url(
            key,
            content_type,
            self.upload_ttl,
            metadata={
                "user-id": str(user.id),
                "upload-type": upload_type,
                "original-filename": filename,
            },
        )
        return PresignedUpload(
            upload_url=url,
            key=key,
            bucket_url=self.object_store.public_url(key),
            expires_in=self.upload_ttl,
        )

    async def upload_screenshot(  # noqa: PLR0913
        self,
        user: AuthenticatedUser,
        session_id: UUID,
        data: bytes,
        content_type: str,
        step_number: int | None = None,
        metadata: dict[str, object] | None = None,
    ) -> Screenshot:
        """Upload through the server into a capture session."""
        self._validate("screenshot", content_type, len(data))
        return await self.capture.add_screenshot(
            session_id, user.id, data, sequence_number=step_number, metadata=metadata
        )

    async def confirm_upload(
        self,
        user: AuthenticatedUser,
        key: str,
        upload_type: str,
        metadata: dict[str, object] | None = None,
    ) -> ConfirmedUpload:
        """Verify a client-side upload and register screenshots."""
        if upload_type not in UPLOAD_TYPES:
            raise ValidationError("Invalid upload type")
        self._check_access(user, key)
        head = await self.object_store.head_object(key)
        if head is None:
            raise NotFoundError("File not found in storage")
        if head.size_bytes > self.max_upload_bytes:
            await self.object_store.delete_object(key)
            raise PayloadTooLargeError("Uploaded file exceeds the size limit")
        extra = dict(metadata or {})
        screenshot = None
        session_id = extra.pop("captureSessionId", None)
        if upload_type == "screenshot" and session_id:
            try:
                parsed_session = UUID(str(session_id))
            except ValueError as exc:
                raise ValidationError("captureSessionId must be a UUID") from exc
            screenshot = self.capture.register_uploaded_screenshot(
                parsed_session,
                user.id,
                storage_key=key,
                size_bytes=head.size_bytes,
                mime_type=head.content_type or "application/octet-stream",
                metadata=extra,
            )
        return ConfirmedUpload(
            key=key,
            url=self.object_store.public_url(key),
            metadata=head,
            screenshot=screenshot,
        )

    def download_url(
        self, user: AuthenticatedUser, key: str, expires_in: int | None = None
    ) -> tuple[str, int]:
        self._check_access(user, key)
        ttl = expires_in or self.download_ttl
        if ttl < 1 or ttl > 7 * 24 * 3600:
            raise ValidationError("expiresIn must be between 1 second and 7 days")
        return self.object_store.presigned_download_url(key, ttl), ttl

    async def delete(self, user: AuthenticatedUser, key: str) -> None:
        """Delete an object unless a capture screenshot still references it."""
        self._check_access(user, key)
        if self.capture.repository.find_screenshot_by_key(key) is not None:
            raise ConflictError("File is referenced by a capture session screenshot")
        await self.object_store.delete_object(key)
        _logger.info("Deleted object %s for %s", key, user.id)

    def _validate(self, upload_type: str, content_type: str, size: int | None) -> None:
        if upload_type not in UPLOAD_TYPES:
            raise ValidationError("Invalid upload type")
        base_type = content_type.split(";", 1)[0].strip().lower()
        if base_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                "Invalid file type. Only images and documents are allowed."
            )
        if size is not None and size > self.max_upload_bytes:
            raise PayloadTooLargeError(
                f"File exceeds the {self.max_upload_bytes} byte limit"
            )

    def _check_access(self, user: AuthenticatedUser, key: str) -> None:
        if not key or ".." in key.split("/"):
            raise ValidationError("Invalid object key")
        if key_owner(key) != str(user.id) and not has_role(user.role, "admin"):
            raise PermissionDeniedError("Access denied to this file")
