"""Download remote images for batch analysis."""

from dataclasses import dataclass

import httpx

from processmaster.errors import (
    PayloadTooLargeError,
    UpstreamServiceError,
    ValidationError,
)
from processmaster.services.pipeline import ImageFetcher


@dataclass
class HttpxImageFetcher(ImageFetcher):
    http_client: httpx.AsyncClient
    max_bytes: int = 10 * 1024 * 1024

    @classmethod
    def create(cls, max_bytes: int) -> "HttpxImageFetcher":
        return cls(
            http_client=httpx.AsyncClient(timeout=20, follow_redirects=True),
            max_bytes=max_bytes,
        )

    async def fetch(self, url: str) -> bytes:
        """Return image bytes, mapping transport failures to upstream errors."""
        try:
            response = await self.http_client.get(url)
        except httpx.InvalidURL as exc:
            raise ValidationError(f"Invalid image URL: {exc}") from exc
        except httpx.HTTPError as exc:

            raise UpstreamServiceError(f"Failed to fetch image: {exc}") from exc
        if response.status_code >= 400:  # noqa: PLR2004
            raise UpstreamServiceError(
                f"Failed to fetch image: HTTP {response.status_code}"
            )
        content_type = response.headers.get("content-type", "")
        if content_type and not content_type.startswith("image/"):
            raise ValidationError(f"URL did not return an image ({content_type})")
        if len(response.content) > self.max_bytes:
            raise PayloadTooLargeError("Remote image exceeds the size limit")
        return response.content

    async def close(self) -> None:
        await self.http_client.aclose()
