"""Object store port and key helpers."""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    size_bytes: int
    content_type: str


@dataclass(frozen=True)
class ObjectMetadata:
    key: str
    size_bytes: int
    content_type: str | None
    last_modified: datetime | None
    metadata: dict[str, str]


class ObjectStore(Protocol):
    """Interface for binary asset storage."""

    async def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        """Store bytes under a key."""

    async def get_object(self, key: str) -> bytes:
        """Return the bytes stored under a key."""

    async def delete_object(self, key: str) -> None:
        """Delete the object stored under a key."""

    async def head_object(self, key: str) -> ObjectMetadata | None:
        """Return object metadata, or None when the key does not exist."""

    def presigned_download_url(self, key: str, expires_in: int) -> str:
        """Return a time-limited GET URL."""

    def presigned_upload_url(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Return a time-limited PUT URL."""

    def public_url(self, key: str) -> str:
        """Return the CDN or bucket URL for a key."""


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", filename.strip())
    return cleaned or "file"


def generate_object_key(
    prefix: str, user_id: object, filename: str, now: datetime | None = None
) -> str:
    """Build `{prefix}/{user}/{YYYY-MM-DD}/{uuid}_{filename}`."""
    stamp = (now or datetime.now(tz=UTC)).strftime("%Y-%m-%d")
    return f"{prefix}/{user_id}/{stamp}/{uuid4()}_{sanitize_filename(filename)}"


def key_owner(key: str) -> str | None:
    """Return the user namespace segment of an object key."""
    parts = key.split("/")
    if len(parts) < 3 or not parts[1]:
        return None
    return parts[1]
