"""Consecutive-failure bookkeeping for the auto-pause policy."""

DEFAULT_THRESHOLD = 2


class FailureMonitor:
    """Counts back-to-back failed turns.

    `record_outcome` returns True exactly when the running count reaches the
    threshold; acting on it (pausing) is the orchestrator's job.
    """

    def __init__(self, threshold: int = DEFAULT_THRESHOLD) -> None:
        if threshold < 1:
            raise ValueError(f"threshold must be >= 1, got {threshold}")
        self.threshold = threshold
        self.consecutive_failures = 0

    def record_outcome(self, success: bool) -> bool:
        if success:
            self.consecutive_failures = 0
            return False
        self.consecutive_failures += 1
        return self.consecutive_failures == self.threshold

    def reset(self) -> None:
        self.consecutive_failures = 0
