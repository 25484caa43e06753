# =======================================================================================
# app/services/attempt_counter.py - Consecutive Failure Counter
# =======================================================================================


class FailedAttemptCounter:
    """
    Consecutive failed authentications at the door.

    A success clears the count, so a legitimate user is never penalised for
    somebody else's earlier failures. Pure state: raising the alarm is the
    caller's job.
    """

    def __init__(self, threshold: int = 5):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def record_attempt(self, success: bool) -> int:
        if success:
            self._count = 0
        else:
            self._count += 1
        return self._count

    def should_trigger_alarm(self) -> bool:
        return self._count >= self.threshold

    def reset(self) -> None:
        self._count = 0

    def restore(self, count: int) -> None:
        """Put back a count saved before a transaction that did not commit."""
        self._count = max(int(count), 0)
