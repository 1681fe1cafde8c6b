"""Host-facing observer interface and cooperative cancellation."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Sequence
from typing import Any

from roundtable.models import Message, SessionState


class CancellationToken:
    """One-shot cancellation signal shared between the host and a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for `seconds` unless cancelled first. Returns False on cancellation."""
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False


async def cancellable(aw: Awaitable[Any], token: CancellationToken) -> tuple[bool, Any]:
    """Await `aw` unless the token fires first.

    Returns:
        (True, result) when `aw` finished, (False, None) when cancelled first.
        The abandoned awaitable is cancelled. Exceptions raised by `aw` propagate.
    """
    if token.cancelled:
        if asyncio.iscoroutine(aw):
            aw.close()
        return False, None

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return True, task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    return False, None


class SessionObserver(ABC):
    """Callbacks the orchestrator uses to report progress and read host state."""

    poll_interval: float = 0.5

    @abstractmethod
    def on_state_change(self, state: SessionState) -> None:
        ...

    @abstractmethod
    def on_turn_advance(self, round_number: int, turn_index: int) -> None:
        ...

    @abstractmethod
    def on_active_participant_change(self, participant: str | None) -> None:
        ...

    @abstractmethod
    def on_message(self, message: Message) -> None:
        ...

    @abstractmethod
    def on_pacing_tick(self, seconds_remaining: int) -> None:
        """Countdown tick; AWAITING_ADVANCE while gated on the host, 0 when done."""
        ...

    @abstractmethod
    def await_manual_advance(self) -> Awaitable[None]:
        """Arm the manual gate and return an awaitable that completes on advance."""
        ...

    @abstractmethod
    def current_state(self) -> SessionState:
        ...

    @abstractmethod
    def current_messages(self) -> Sequence[Message]:
        ...

    def wait_for_state_change(self) -> Awaitable[None]:
        """Return an awaitable that completes when the state may have changed.

        It must be bound to the state current at the call, so a change made
        before it is first awaited still wakes it. The default just sleeps for
        `poll_interval`; hosts that can signal changes should override it so
        resumes are picked up immediately.
        """
        return asyncio.sleep(self.poll_interval)


async def wait_while_paused(observer: SessionObserver, token: CancellationToken) -> bool:
    """Block while the host reports `paused`.

    Returns:
        True when the session is running again, False on cancellation or when
        the state moved anywhere other than `running`.
    """
    while observer.current_state() == SessionState.PAUSED:
        finished, _ = await cancellable(observer.wait_for_state_change(), token)
        if not finished or token.cancelled:
            return False
    return not token.cancelled and observer.current_state() == SessionState.RUNNING
