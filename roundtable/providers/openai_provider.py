"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from openai import AsyncOpenAI

from roundtable.models import CallMessage, ContentBlock, ParticipantCredentials, ProviderResult, StopReason
from roundtable.providers.base import ProviderClient, ProviderError, is_transient

logger = logging.getLogger(__name__)


def _data_url(block: ContentBlock) -> str:
    return f"data:{block.mime_type};base64,{block.data_b64}"


def _block(block: ContentBlock, supports_documents: bool) -> dict[str, Any]:
    if block.kind == "text":
        return {"type": "text", "text": block.text or ""}
    if block.kind == "image":
        return {"type": "image_url", "image_url": {"url": _data_url(block)}}
    if not supports_documents:
        return {"type": "text", "text": f"[Attached document not supported here: {block.filename or 'document'}]"}
    return {
        "type": "file",
        "file": {"filename": block.filename or "document.pdf", "file_data": _data_url(block)},
    }


def to_openai_messages(
    instruction: str,
    context: Sequence[CallMessage],
    *,
    supports_documents: bool = True,
) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": instruction}]
    for msg in context:
        if isinstance(msg.content, str):
            messages.append({"role": msg.role, "content": msg.content})
        else:
            messages.append({
                "role": msg.role,
                "content": [_block(b, supports_documents) for b in msg.content],
            })
    return messages


class OpenAIProvider(ProviderClient):
    """OpenAI provider via openai SDK."""

    name = "openai"
    supports_documents = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._clients: dict[tuple[str, str | None], AsyncOpenAI] = {}

    def _client_for(self, credentials: ParticipantCredentials) -> AsyncOpenAI:
        key = (credentials.api_key, credentials.base_url)
        client = self._clients.get(key)
        if client is None:
            client = AsyncOpenAI(api_key=credentials.api_key, base_url=credentials.base_url, max_retries=0)
            self._clients[key] = client
        return client

    async def _send(
        self,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
    ) -> ProviderResult:
        try:
            response = await asyncio.wait_for(
                self._client_for(credentials).chat.completions.create(
                    model=credentials.model,
                    messages=to_openai_messages(
                        instruction, context, supports_documents=self.supports_documents,
                    ),
                    max_tokens=credentials.max_tokens,
                ),
                timeout=credentials.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self.name, f"Request timed out after {credentials.timeout_sec}s", transient=True,
            ) from exc
        except Exception as exc:
            raise ProviderError(self.name, f"API call failed: {exc}", transient=is_transient(exc)) from exc

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        return ProviderResult(
            content=choice.message.content,
            stop_reason=StopReason.OK,
            model=credentials.model,
            token_count=token_count,
        )
