"""Inter-turn delay: timed countdown or a manual gate awaiting the host."""

import logging

from roundtable.models import AWAITING_ADVANCE, PacingConfig, PacingMode, SessionState
from roundtable.observer import CancellationToken, SessionObserver, cancellable, wait_while_paused

logger = logging.getLogger(__name__)


class PacingController:
    """Waits between turns according to the session's pacing config.

    Args:
        tick_seconds: Length of one countdown step. One second in production;
            tests shrink it.
    """

    def __init__(self, tick_seconds: float = 1.0) -> None:
        self._tick_seconds = tick_seconds

    async def wait(
        self,
        pacing: PacingConfig,
        observer: SessionObserver,
        token: CancellationToken,
    ) -> bool:
        """Return True to continue with the next turn, False to stop the run."""
        if token.cancelled:
            return False
        if pacing.mode == PacingMode.MANUAL:
            return await self._wait_manual(observer, token)
        return await self._wait_timed(pacing.delay_seconds, observer, token)

    async def _wait_timed(self, delay: int, observer: SessionObserver, token: CancellationToken) -> bool:
        for remaining in range(delay, 0, -1):
            if token.cancelled:
                return False
            if observer.current_state() == SessionState.PAUSED:
                logger.debug("Countdown suspended at %ds", remaining)
                if not await wait_while_paused(observer, token):
                    return False
            if observer.current_state() != SessionState.RUNNING:
                return False
            observer.on_pacing_tick(remaining)
            if not await token.sleep(self._tick_seconds):
                return False
        if token.cancelled:
            return False
        observer.on_pacing_tick(0)
        return True

    async def _wait_manual(self, observer: SessionObserver, token: CancellationToken) -> bool:
        gate = observer.await_manual_advance()
        observer.on_pacing_tick(AWAITING_ADVANCE)
        finished, _ = await cancellable(gate, token)
        if not finished or token.cancelled:
            return False
        if observer.current_state() == SessionState.PAUSED:
            if not await wait_while_paused(observer, token):
                return False
        if observer.current_state() != SessionState.RUNNING:
            return False
        observer.on_pacing_tick(0)
        return True
