"""Host-side session controller: owns state, message log and user commands."""

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from datetime import datetime
from pathlib import Path

from roundtable.models import (
    MODERATOR,
    Message,
    ParticipantCredentials,
    ReferenceFile,
    RunOutcome,
    SessionConfig,
    SessionRecord,
    SessionState,
)
from roundtable.observer import CancellationToken, SessionObserver
from roundtable.orchestrator import Orchestrator, attachable_files
from roundtable.output import SessionArchive
from roundtable.validation import MAX_ROUNDS, validate_session_config

logger = logging.getLogger(__name__)


class SessionController(SessionObserver):
    """Observer implementation that a host (CLI, tests) drives one session through.

    Every state transition wakes `wait_for_state_change`, so a paused run
    resumes as soon as `resume()` is called. Subclasses override the `on_*`
    hooks to render progress and call `super()` to keep the bookkeeping.

    Args:
        orchestrator: Runs the turns.
        archive: Receives the session after completion or an explicit stop.
        max_rounds: Upper bound enforced by validation.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        archive: SessionArchive | None = None,
        *,
        max_rounds: int = MAX_ROUNDS,
    ) -> None:
        self._orchestrator = orchestrator
        self._archive = archive
        self._max_rounds = max_rounds
        self._state = SessionState.IDLE
        self._messages: list[Message] = []
        self._token = CancellationToken()
        self._state_changed = asyncio.Event()
        self._advance: asyncio.Event | None = None
        self._stop_requested = False

        self.config: SessionConfig | None = None
        self.round = 0
        self.turn_index = 0
        self.active_participant: str | None = None
        self.seconds_remaining: int | None = None
        self.saved_path: Path | None = None

    # -- observer callbacks --------------------------------------------------

    def on_state_change(self, state: SessionState) -> None:
        self._set_state(state)

    def on_turn_advance(self, round_number: int, turn_index: int) -> None:
        self.round = round_number
        self.turn_index = turn_index

    def on_active_participant_change(self, participant: str | None) -> None:
        self.active_participant = participant

    def on_message(self, message: Message) -> None:
        self._messages.append(message)

    def on_pacing_tick(self, seconds_remaining: int) -> None:
        self.seconds_remaining = seconds_remaining

    def await_manual_advance(self) -> Awaitable[None]:
        self._advance = asyncio.Event()
        return self._advance.wait()

    def current_state(self) -> SessionState:
        return self._state

    def current_messages(self) -> Sequence[Message]:
        return tuple(self._messages)

    def wait_for_state_change(self) -> Awaitable[None]:
        return self._state_changed.wait()

    # -- host commands -------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def awaiting_advance(self) -> bool:
        return self._advance is not None and not self._advance.is_set()

    def pause(self) -> None:
        if self._state == SessionState.RUNNING:
            self._set_state(SessionState.PAUSED)

    def resume(self) -> None:
        if self._state == SessionState.PAUSED:
            self._set_state(SessionState.RUNNING)

    def stop(self) -> None:
        """Cancel the run; the stopped session is still archived."""
        if self._state not in (SessionState.RUNNING, SessionState.PAUSED):
            return
        self._stop_requested = True
        self._advance = None
        self._token.cancel()
        self._set_state(SessionState.IDLE)

    def advance(self) -> None:
        """Release the manual pacing gate. No-op when nothing is waiting."""
        if self._advance is not None:
            self._advance.set()

    def inject_message(self, text: str, files: Iterable[ReferenceFile] = ()) -> Message:
        """Append a moderator message; participants see it on their next turn.

        Raises:
            ValueError: If the text is blank and no files are attached.
        """
        files = tuple(files)
        if not text.strip() and not files:
            raise ValueError("Moderator message is empty")
        message = Message(
            speaker=MODERATOR,
            content=text.strip(),
            round=max(self.round, 1),
            files=files,
        )
        self._messages.append(message)
        logger.debug("Moderator message injected in round %d", message.round)
        return message

    async def run(
        self,
        config: SessionConfig,
        credentials: Mapping[str, ParticipantCredentials],
    ) -> RunOutcome:
        """Validate `config`, run it to the end and hand the result to the archive.

        Raises:
            SessionConfigError: If the configuration is invalid.
            RuntimeError: If a session is already active on this controller.
        """
        if self._state in (SessionState.RUNNING, SessionState.PAUSED):
            raise RuntimeError("A session is already running")
        validate_session_config(config, self._max_rounds)

        self.config = config
        self._messages = []
        self._token = CancellationToken()
        self._stop_requested = False
        self.round = 0
        self.turn_index = 0
        self.active_participant = None
        self.seconds_remaining = None
        self.saved_path = None
        started_at = datetime.now()

        outcome = await self._orchestrator.run(config, credentials, self, self._token)
        self.active_participant = None
        self._advance = None
        logger.info("Session finished: %s", outcome.value)

        if outcome == RunOutcome.COMPLETED:
            self._save(config, "completed", started_at)
        elif outcome == RunOutcome.CANCELLED and self._stop_requested:
            self._save(config, "stopped", started_at)
        return outcome

    # -- internals -----------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        self._state_changed.set()
        self._state_changed = asyncio.Event()

    def _save(self, config: SessionConfig, status: str, started_at: datetime) -> None:
        if self._archive is None:
            return
        record = SessionRecord(
            config=config,
            status=status,
            rounds_reached=max((m.round for m in self._messages if m.speaker != MODERATOR), default=0),
            started_at=started_at,
            finished_at=datetime.now(),
        )
        self.saved_path = self._archive.save(record, list(self._messages), attachable_files(config))
