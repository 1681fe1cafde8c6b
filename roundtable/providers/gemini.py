"""Gemini provider using google-genai SDK with native async."""

import asyncio
import base64
import logging
from collections.abc import Sequence
from typing import Any

from google import genai
from google.genai import types as genai_types

from roundtable.models import CallMessage, ParticipantCredentials, ProviderResult, StopReason
from roundtable.providers.base import ProviderClient, ProviderError, is_transient

logger = logging.getLogger(__name__)


def to_gemini_contents(context: Sequence[CallMessage]) -> list[genai_types.Content]:
    contents: list[genai_types.Content] = []
    for msg in context:
        role = "model" if msg.role == "assistant" else "user"
        if isinstance(msg.content, str):
            parts = [genai_types.Part.from_text(text=msg.content)]
        else:
            parts = []
            for block in msg.content:
                if block.kind == "text":
                    parts.append(genai_types.Part.from_text(text=block.text or ""))
                else:
                    parts.append(genai_types.Part.from_bytes(
                        data=base64.b64decode(block.data_b64 or ""),
                        mime_type=block.mime_type or "application/octet-stream",
                    ))
        contents.append(genai_types.Content(role=role, parts=parts))
    return contents


class GeminiProvider(ProviderClient):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._clients: dict[str, genai.Client] = {}

    def _client_for(self, credentials: ParticipantCredentials) -> genai.Client:
        client = self._clients.get(credentials.api_key)
        if client is None:
            client = genai.Client(api_key=credentials.api_key)
            self._clients[credentials.api_key] = client
        return client

    async def _send(
        self,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
    ) -> ProviderResult:
        try:
            response = await asyncio.wait_for(
                self._client_for(credentials).aio.models.generate_content(
                    model=credentials.model,
                    contents=to_gemini_contents(context),
                    config=genai_types.GenerateContentConfig(
                        system_instruction=instruction,
                        max_output_tokens=credentials.max_tokens,
                    ),
                ),
                timeout=credentials.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                "gemini", f"Request timed out after {credentials.timeout_sec}s", transient=True,
            ) from exc
        except Exception as exc:
            raise ProviderError("gemini", f"API call failed: {exc}", transient=is_transient(exc)) from exc

        if not response.text:
            raise ProviderError("gemini", "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        return ProviderResult(
            content=response.text,
            stop_reason=StopReason.OK,
            model=credentials.model,
            token_count=token_count,
        )
