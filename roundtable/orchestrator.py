"""Turn scheduling: who speaks, with what context, how fast, and what happens on failure."""

import logging
from collections.abc import Mapping
from datetime import datetime

from roundtable.context import DEFAULT_WINDOW, build_context, build_judge_context
from roundtable.failures import DEFAULT_THRESHOLD, FailureMonitor
from roundtable.models import (
    ArtworkVariant,
    InteractionMode,
    Message,
    ParticipantCredentials,
    ReferenceFile,
    RunOutcome,
    SessionConfig,
    SessionState,
    StopReason,
    TurnSlot,
)
from roundtable.observer import CancellationToken, SessionObserver, cancellable, wait_while_paused
from roundtable.pacing import PacingController
from roundtable.prompts import message_kind_for, resolve_prompt, role_label_for
from roundtable.providers.base import ProviderClient

logger = logging.getLogger(__name__)

_SINGLE_ROUND_VARIANTS = (ArtworkVariant.INDIVIDUAL, ArtworkVariant.SCORED)


def effective_round_limit(config: SessionConfig) -> int:
    """Artwork individual/scored critiques always run a single round."""
    if config.mode == InteractionMode.ARTWORK and config.artwork_variant in _SINGLE_ROUND_VARIANTS:
        return 1
    return config.round_limit


def has_judge(config: SessionConfig) -> bool:
    return config.mode == InteractionMode.ADVERSARIAL and config.judge is not None


def turn_participants(config: SessionConfig) -> list[str]:
    """Participants who take regular turns, in configured order."""
    if has_judge(config):
        return [p for p in config.participants if p != config.judge]
    return list(config.participants)


def build_schedule(config: SessionConfig) -> list[TurnSlot]:
    """Flatten the whole session into ordered turn slots.

    Each round lists the regular participants in order; with a judge, one
    judge slot follows all of them.
    """
    speakers = turn_participants(config)
    slots: list[TurnSlot] = []
    for round_number in range(1, effective_round_limit(config) + 1):
        for turn_index, participant in enumerate(speakers):
            slots.append(TurnSlot(round=round_number, turn_index=turn_index, participant=participant))
        if has_judge(config):
            slots.append(
                TurnSlot(round=round_number, turn_index=len(speakers), participant=config.judge, is_judge=True)
            )
    return slots


def attachable_files(config: SessionConfig) -> list[ReferenceFile]:
    """Reference files sent on first calls; the artwork always comes first."""
    files = list(config.reference_files)
    if config.mode == InteractionMode.ARTWORK and config.artwork is not None:
        files.insert(0, config.artwork)
    return files


def _is_configured(credentials: Mapping[str, ParticipantCredentials], participant: str) -> bool:
    creds = credentials.get(participant)
    return creds is not None and creds.is_configured


class Orchestrator:
    """Drives one session: sequential calls, pacing, auto-pause and cancellation.

    Args:
        provider: Client used for every participant call.
        pacing: Pacing controller; a default one-second-tick controller if omitted.
        failure_threshold: Consecutive failed turns that force a pause.
        context_window: Trailing messages shown to debaters (judges get twice as many).
    """

    def __init__(
        self,
        provider: ProviderClient,
        *,
        pacing: PacingController | None = None,
        failure_threshold: int = DEFAULT_THRESHOLD,
        context_window: int = DEFAULT_WINDOW,
    ) -> None:
        self._provider = provider
        self._pacing = pacing or PacingController()
        self._failure_threshold = failure_threshold
        self._context_window = context_window

    async def run(
        self,
        config: SessionConfig,
        credentials: Mapping[str, ParticipantCredentials],
        observer: SessionObserver,
        token: CancellationToken,
    ) -> RunOutcome:
        """Run the session to completion, cancellation or an internal fault.

        Provider error results become error-tagged messages; they never raise.

        Returns:
            COMPLETED after the last slot, CANCELLED when the token fired or the
            host stopped the session, FAILED on an unrecoverable internal fault.
        """
        if token.cancelled:
            return RunOutcome.CANCELLED

        try:
            return await self._run(config, credentials, observer, token)
        except Exception:
            logger.exception("Session aborted by an internal fault")
            if not token.cancelled:
                observer.on_active_participant_change(None)
                observer.on_state_change(SessionState.FAILED)
            return RunOutcome.FAILED

    async def _run(
        self,
        config: SessionConfig,
        credentials: Mapping[str, ParticipantCredentials],
        observer: SessionObserver,
        token: CancellationToken,
    ) -> RunOutcome:
        schedule = build_schedule(config)
        last_active = max(
            (i for i, s in enumerate(schedule) if _is_configured(credentials, s.participant)),
            default=-1,
        )
        monitor = FailureMonitor(self._failure_threshold)
        first_call_done: set[str] = set()
        files = attachable_files(config)
        is_artwork = config.mode == InteractionMode.ARTWORK

        logger.info(
            "Starting %s session: %d turns over %d rounds",
            config.mode.value, len(schedule), effective_round_limit(config),
        )
        observer.on_state_change(SessionState.RUNNING)

        for position, slot in enumerate(schedule):
            if token.cancelled:
                return RunOutcome.CANCELLED
            if not await wait_while_paused(observer, token):
                return RunOutcome.CANCELLED

            if not _is_configured(credentials, slot.participant):
                logger.info("Skipping %s in round %d: no credentials", slot.participant, slot.round)
                continue
            creds = credentials[slot.participant]

            observer.on_turn_advance(slot.round, slot.turn_index)
            observer.on_active_participant_change(slot.participant)

            instruction = resolve_prompt(config, slot.participant)
            history = observer.current_messages()
            if slot.is_judge:
                context = build_judge_context(
                    history, slot.round, slot.participant, config, window=self._context_window * 2,
                )
            else:
                context = build_context(
                    history,
                    slot.participant,
                    config,
                    files,
                    is_first_call=slot.participant not in first_call_done,
                    is_artwork=is_artwork,
                    window=self._context_window,
                )

            finished, result = await cancellable(
                self._provider.call(slot.participant, creds, instruction, context, token),
                token,
            )
            if not finished or token.cancelled:
                return RunOutcome.CANCELLED

            failed = result.stop_reason != StopReason.OK
            message = Message(
                speaker=slot.participant,
                content=result.content,
                round=slot.round,
                created_at=datetime.now(),
                error=result.content if failed else None,
                role_label=role_label_for(config, slot.participant),
                kind=message_kind_for(config, slot.participant),
            )
            observer.on_message(message)
            observer.on_active_participant_change(None)

            if not failed:
                first_call_done.add(slot.participant)

            if monitor.record_outcome(not failed):
                logger.warning(
                    "%d consecutive failed turns; pausing until the host resumes",
                    monitor.consecutive_failures,
                )
                observer.on_state_change(SessionState.PAUSED)
                if not await wait_while_paused(observer, token):
                    return RunOutcome.CANCELLED
                monitor.reset()
                continue

            if position == last_active:
                break
            if not await self._pacing.wait(config.pacing, observer, token):
                return RunOutcome.CANCELLED

        if token.cancelled:
            return RunOutcome.CANCELLED
        observer.on_active_participant_change(None)
        observer.on_state_change(SessionState.COMPLETED)
        logger.info("Session completed")
        return RunOutcome.COMPLETED
