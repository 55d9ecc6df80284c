"""OAuth2 authorization-code client implemented with httpx."""

from dataclasses import dataclass

import httpx

from processmaster.errors import DirectoryServiceError
from processmaster.services.auth import OAuth2Client


@dataclass
class HttpxOAuth2Client(OAuth2Client):
    """Talks to the provider's token and userinfo endpoints."""

    issuer: str
    client_id: str
    client_secret: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, issuer: str, client_id: str, client_secret: str
    ) -> "HttpxOAuth2Client":

        """Create a client with a managed httpx session."""
        return cls(
            issuer=issuer.rstrip("/"),
            client_id=client_id,
            client_secret=client_secret,
            http_client=httpx.AsyncClient(timeout=10),
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, object]:
        try:
            response = await self.http_client.post(
                f"{self.issuer}/token",
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DirectoryServiceError("OAuth2 token exchange failed") from exc
        return response.json()

    async def fetch_userinfo(self, access_token: str) -> dict[str, object]:
        try:
            response = await self.http_client.get(
                f"{self.issuer}/userinfo",
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DirectoryServiceError("OAuth2 userinfo request failed") from exc
        return response.json()

    async def close(self) -> None:
        await self.http_client.aclose()
