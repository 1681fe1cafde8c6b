"""Shared pytest fixtures."""

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ParticipantConfig, RetryConfig
from roundtable.control import SessionController
from roundtable.models import (
    CallMessage,
    InteractionMode,
    Message,
    PacingConfig,
    PacingMode,
    ParticipantCredentials,
    ProviderResult,
    ReferenceFile,
    SessionConfig,
    SessionRecord,
    StopReason,
)
from roundtable.orchestrator import Orchestrator
from roundtable.output import SessionArchive
from roundtable.pacing import PacingController
from roundtable.providers.base import ProviderClient

# Smallest valid PNG header; enough for MIME-based handling.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class ScriptedProvider(ProviderClient):
    """Test double ProviderClient.

    Each participant (identified by `credentials.model`) replies from its
    script in order; exceptions in a script are raised from `_send`. Once a
    script runs out, replies are "<name> turn <n>".
    """

    def __init__(
        self,
        script: dict[str, list] | None = None,
        *,
        delay: float = 0.0,
        retry: RetryConfig | None = None,
    ) -> None:
        super().__init__(retry or RetryConfig(max_retries=0))
        self.script = {name: list(replies) for name, replies in (script or {}).items()}
        self.delay = delay
        self.calls: list[tuple[str, str, list[CallMessage]]] = []

    def calls_for(self, name: str) -> list[tuple[str, str, list[CallMessage]]]:
        return [c for c in self.calls if c[0] == name]

    async def _send(
        self,
        credentials: ParticipantCredentials,
        instruction: str,
        context: Sequence[CallMessage],
    ) -> ProviderResult:
        name = credentials.model
        self.calls.append((name, instruction, list(context)))
        if self.delay:
            await asyncio.sleep(self.delay)
        queue = self.script.get(name)
        reply = queue.pop(0) if queue else f"{name} turn {len(self.calls_for(name))}"
        if isinstance(reply, BaseException):
            raise reply
        return ProviderResult(content=reply, stop_reason=StopReason.OK, model=name, token_count=10)


class RecordingArchive(SessionArchive):
    """Test double SessionArchive that keeps what it was given."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or Path("saved")
        self.saved: list[tuple[SessionRecord, list[Message], list[ReferenceFile]]] = []

    def save(self, record, messages, reference_files) -> Path:
        self.saved.append((record, list(messages), list(reference_files)))
        return self.path


class TickRecorder(SessionController):
    """SessionController that also records pacing ticks and states."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ticks: list[int] = []
        self.states: list = []

    def on_pacing_tick(self, seconds_remaining: int) -> None:
        super().on_pacing_tick(seconds_remaining)
        self.ticks.append(seconds_remaining)

    def on_state_change(self, state) -> None:
        super().on_state_change(state)
        self.states.append(state)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll `predicate` on the event loop until it holds."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


def make_credentials(*names: str, missing: Sequence[str] = ()) -> dict[str, ParticipantCredentials]:
    return {
        name: ParticipantCredentials(
            sdk="test",
            model=name,
            api_key="" if name in missing else f"key-{name}",
        )
        for name in names
    }


@pytest.fixture
def credentials() -> dict[str, ParticipantCredentials]:
    return make_credentials("gpt", "claude", "gemini", "grok")


@pytest.fixture
def fast_pacing() -> PacingController:
    return PacingController(tick_seconds=0.001)


@pytest.fixture
def timed() -> PacingConfig:
    return PacingConfig(mode=PacingMode.TIMED, delay_seconds=1)


@pytest.fixture
def sequential_config(timed: PacingConfig) -> SessionConfig:
    return SessionConfig(
        topic="Should cities ban cars from their centres?",
        mode=InteractionMode.SEQUENTIAL,
        participants=("gpt", "claude", "gemini"),
        round_limit=2,
        pacing=timed,
    )


@pytest.fixture
def adversarial_config(timed: PacingConfig) -> SessionConfig:
    return SessionConfig(
        topic="Nuclear power is the best path to decarbonisation",
        mode=InteractionMode.ADVERSARIAL,
        participants=("gpt", "claude", "gemini"),
        judge="gemini",
        round_limit=2,
        pacing=timed,
    )


@pytest.fixture
def png_file() -> ReferenceFile:
    return ReferenceFile(filename="chart.png", mime_type="image/png", data=PNG_BYTES)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def orchestrator(provider: ScriptedProvider, fast_pacing: PacingController) -> Orchestrator:
    return Orchestrator(provider, pacing=fast_pacing)


@pytest.fixture
def archive() -> RecordingArchive:
    return RecordingArchive()


@pytest.fixture
def controller(orchestrator: Orchestrator, archive: RecordingArchive) -> TickRecorder:
    return TickRecorder(orchestrator, archive)


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    participants = {
        "gpt": ParticipantConfig("gpt", "openai", "gpt-4o", "TEST_OPENAI_KEY", "GPT"),
        "claude": ParticipantConfig("claude", "anthropic", "claude-sonnet-4-20250514", "TEST_CLAUDE_KEY", "Claude"),
    }
    return AppConfig(
        defaults=DefaultsConfig(
            rounds=2,
            max_rounds=10,
            output_dir=tmp_path / "output",
            participants=["gpt", "claude"],
        ),
        participants=participants,
        available_participants={"gpt", "claude"},
    )
