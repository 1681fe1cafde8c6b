"""xAI Grok provider using openai SDK (OpenAI-compatible API)."""

from collections.abc import Sequence

from roundtable.models import CallMessage, ParticipantCredentials, ProviderResult
from roundtable.providers.base import ProviderError
from roundtable.providers.openai_provider import OpenAIProvider


class XAIProvider(OpenAIProvider):
    """xAI Grok provider via OpenAI-compatible API. PDFs are replaced by a text note."""

    name = "xai"
    supports_documents = False

    async def _send(
        self,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
    ) -> ProviderResult:
        if not credentials.base_url:
            raise ProviderError(self.name, "base_url is required for xAI provider")
        return await super()._send(credentials, instruction, context)
