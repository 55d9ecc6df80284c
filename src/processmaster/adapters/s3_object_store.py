"""S3-compatible object store backed by boto3."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processmaster.errors import StorageError
from processmaster.services.storage import ObjectMetadata, ObjectStore, StoredObject

_logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class S3ObjectStore(ObjectStore):
    """Object store implemented with a boto3 S3 client.

    boto3 is blocking, so network calls run in a worker thread. Presigning
    is local computation and stays synchronous.
    """

    client: Any
    bucket: str
    region: str
    cdn_domain: str | None = None

    @classmethod
    def create(
        cls,
        bucket: str,
        region: str,
        endpoint_url: str | None = None,
        cdn_domain: str | None = None,
    ) -> "S3ObjectStore":
        """Create a store with a default boto3 client."""
        client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        return cls(client=client, bucket=bucket, region=region, cdn_domain=cdn_domain)

    async def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        """Upload bytes with server-side encryption."""
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
            "ServerSideEncryption": "AES256",
        }
        if metadata:
            params["Metadata"] = metadata
        await self._call("put_object", key, **params)
        return StoredObject(
            key=key,
            url=self.public_url(key),
            size_bytes=len(data),
            content_type=content_type,
        )

    async def get_object(self, key: str) -> bytes:
        response = await self._call("get_object", key, Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()

    async def delete_object(self, key: str) -> None:
        await self._call("delete_object", key, Bucket=self.bucket, Key=key)

    async def head_object(self, key: str) -> ObjectMetadata | None:
        """Return metadata, or None when the object does not exist."""
        try:
            response = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=key
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return None
            raise StorageError(f"Failed to read object metadata: {key}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to read object metadata: {key}") from exc
        return ObjectMetadata(
            key=key,
            size_bytes=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def presigned_download_url(self, key: str, expires_in: int) -> str:
        return self._presign(
            "get_object", {"Bucket": self.bucket, "Key": key}, expires_in
        )

    def presigned_upload_url(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: dict[str, str] | None = None,
    ) -> str:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "ContentType": content_type,
            "ServerSideEncryption": "AES256",
        }
        if metadata:
            params["Metadata"] = metadata
        return self._presign("put_object", params, expires_in)

    def public_url(self, key: str) -> str:
        if self.cdn_domain:
            return f"https://{self.cdn_domain}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _presign(self, operation: str, params: dict[str, Any], expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                operation, Params=params, ExpiresIn=expires_in
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError("Failed to generate presigned URL") from exc

    async def _call(self, operation: str, key: str, **params: Any) -> Any:
        try:
            return await asyncio.to_thread(getattr(self.client, operation), **params)
        except (BotoCoreError, ClientError) as exc:
            _logger.warning("S3 %s failed for %s: %s", operation, key, exc)
            raise StorageError(f"Object store {operation} failed") from exc
