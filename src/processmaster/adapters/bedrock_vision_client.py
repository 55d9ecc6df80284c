"""Amazon Bedrock client using the Anthropic messages format."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import boto3

from processmaster.services.vision import VisionClient

_ANTHROPIC_VERSION = "bedrock-2023-05-31"


@dataclass
class BedrockVisionClient(VisionClient):
    """Vision client backed by bedrock-runtime invoke_model."""

    client: Any

    @classmethod
    def create(cls, region: str) -> "BedrockVisionClient":
        return cls(client=boto3.client("bedrock-runtime", region_name=region))

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
        """Ask for JSON matching the schema and parse the first text block."""
        header, _, data = image_data_url.partition(",")
        media_type = header.removeprefix("data:").removesuffix(";base64")
        content = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": data},
            },
            {
                "type": "text",
                "text": (
                    f"{prompt}\n\nRespond with only a JSON object matching this "
                    f"schema:\n{json.dumps(schema)}"
                ),
            },
        ]
        text = await self._invoke(model, content, temperature, max_output_tokens)
        return json.loads(_strip_code_fence(text))

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        content = [{"type": "text", "text": prompt}]
        return await self._invoke(model, content, temperature, max_output_tokens)

    async def _invoke(
        self,
        model: str,
        content: list[dict[str, object]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        body = json.dumps(
            {
                "anthropic_version": _ANTHROPIC_VERSION,
                "messages": [{"role": "user", "content": content}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        response = await asyncio.to_thread(
            self.client.invoke_model,
            modelId=model,
            body=body,
            contentType="application/json",
            accept="application/json",
        )
        payload = json.loads(response["body"].read())
        blocks = payload.get("content") or []
        if not blocks or not blocks[0].get("text"):
            raise RuntimeError("Bedrock returned an empty response")
        return blocks[0]["text"]


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        stripped = stripped.rsplit("```", 1)[0]
    return stripped.strip()
