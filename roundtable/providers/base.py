"""Provider contract shared by all vendor adapters, with retry/backoff."""

import logging
import random
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

from config.config_loader import RetryConfig
from roundtable.models import CallMessage, ParticipantCredentials, ProviderResult, StopReason
from roundtable.observer import CancellationToken

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_TRANSIENT_ERROR_NAMES = frozenset({"APIConnectionError", "APITimeoutError", "ConnectError", "ReadTimeout"})


class ProviderError(Exception):
    """Raised by adapters when a provider call fails."""

    def __init__(self, provider_name: str, message: str, *, transient: bool = False) -> None:
        self.provider_name = provider_name
        self.transient = transient
        super().__init__(f"[{provider_name}] {message}")


def is_transient(exc: BaseException) -> bool:
    """True for timeouts, connection errors and retryable HTTP statuses."""
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "code", None)
    if isinstance(status, int) and status in RETRYABLE_STATUS_CODES:
        return True
    return type(exc).__name__ in _TRANSIENT_ERROR_NAMES


class ProviderClient(ABC):
    """Calls one AI participant.

    Subclasses implement `_send`; `call` wraps it with exponential backoff for
    transient failures and turns every `ProviderError` into an error result.
    Anything else escaping `_send` is a contract violation and propagates.
    """

    def __init__(self, retry: RetryConfig | None = None) -> None:
        self._retry = retry or RetryConfig()

    @abstractmethod
    async def _send(
        self,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
    ) -> ProviderResult:
        """Perform a single vendor request.

        Raises:
            ProviderError: On API failure, timeout, or an empty response.
        """
        ...

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(
            self._retry.initial_delay_sec * (self._retry.backoff_multiplier ** attempt),
            self._retry.max_delay_sec,
        )
        return delay + delay * 0.1 * random.random()

    async def call(
        self,
        participant: str,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
        token: CancellationToken,
    ) -> ProviderResult:
        attempt = 0
        while True:
            start = time.monotonic()
            try:
                result = await self._send(credentials, instruction, context)
            except ProviderError as exc:
                if exc.transient and attempt < self._retry.max_retries:
                    delay = self._backoff_delay(attempt)
                    attempt += 1
                    logger.warning(
                        "Participant %s failed (%s), retry %d/%d in %.1fs",
                        participant, exc, attempt, self._retry.max_retries, delay,
                    )
                    if not await token.sleep(delay):
                        return ProviderResult(
                            content=f"[{participant}] Cancelled during retry backoff",
                            stop_reason=StopReason.ERROR,
                            model=credentials.model,
                        )
                    continue
                logger.warning("Participant %s call failed: %s", participant, exc)
                return ProviderResult(
                    content=str(exc),
                    stop_reason=StopReason.ERROR,
                    model=credentials.model,
                    latency_sec=time.monotonic() - start,
                )
            result.latency_sec = time.monotonic() - start
            logger.info(
                "Participant %s (%s): %.2fs, %s tokens",
                participant, credentials.model, result.latency_sec, result.token_count,
            )
            return result


class ProviderRouter(ProviderClient):
    """Dispatches each call to the adapter registered for `credentials.sdk`."""

    def __init__(self, adapters: dict[str, ProviderClient]) -> None:
        super().__init__()
        self._adapters = dict(adapters)

    async def _send(
        self,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
    ) -> ProviderResult:
        raise ProviderError(credentials.sdk, f"Unsupported sdk: {credentials.sdk}")

    async def call(
        self,
        participant: str,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
        token: CancellationToken,
    ) -> ProviderResult:
        adapter = self._adapters.get(credentials.sdk)
        if adapter is None:
            return await super().call(participant, credentials, instruction, context, token)
        return await adapter.call(participant, credentials, instruction, context, token)
