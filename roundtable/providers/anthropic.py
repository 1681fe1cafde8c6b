"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import anthropic as anthropic_sdk

from roundtable.models import CallMessage, ContentBlock, ParticipantCredentials, ProviderResult, StopReason
from roundtable.providers.base import ProviderClient, ProviderError, is_transient

logger = logging.getLogger(__name__)


def _block(block: ContentBlock) -> dict[str, Any]:
    if block.kind == "text":
        return {"type": "text", "text": block.text or ""}
    kind = "image" if block.kind == "image" else "document"
    return {
        "type": kind,
        "source": {"type": "base64", "media_type": block.mime_type, "data": block.data_b64},
    }


def to_anthropic_messages(context: Sequence[CallMessage]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for msg in context:
        if isinstance(msg.content, str):
            messages.append({"role": msg.role, "content": msg.content})
        else:
            messages.append({"role": msg.role, "content": [_block(b) for b in msg.content]})
    return messages


class AnthropicProvider(ProviderClient):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._clients: dict[str, anthropic_sdk.AsyncAnthropic] = {}

    def _client_for(self, credentials: ParticipantCredentials) -> anthropic_sdk.AsyncAnthropic:
        client = self._clients.get(credentials.api_key)
        if client is None:
            # Retries are handled by ProviderClient.call.
            client = anthropic_sdk.AsyncAnthropic(api_key=credentials.api_key, max_retries=0)
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
                self._client_for(credentials).messages.create(
                    model=credentials.model,
                    max_tokens=credentials.max_tokens,
                    system=instruction,
                    messages=to_anthropic_messages(context),
                ),
                timeout=credentials.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                "anthropic", f"Request timed out after {credentials.timeout_sec}s", transient=True,
            ) from exc
        except Exception as exc:
            raise ProviderError("anthropic", f"API call failed: {exc}", transient=is_transient(exc)) from exc

        if not response.content:
            raise ProviderError("anthropic", "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError("anthropic", "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        return ProviderResult(
            content="\n".join(text_blocks),
            stop_reason=StopReason.OK,
            model=credentials.model,
            token_count=token_count,
        )
