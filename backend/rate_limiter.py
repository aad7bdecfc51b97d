"""
Rate Limiter - Sliding-window attempt limits for submission and sign-in.

Provides:
- RateLimiter: bounded attempt history pruned lazily on each check
- check_submission_allowed(): user-facing gate for form submission
- Module-level submission limiter (in-memory only, reset on restart)
"""

import math
import time
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from config.settings import settings


class RateLimiter:
    """
    Allow at most max_attempts within a sliding time window.

    The clock must return seconds as a float (time.monotonic by default).
    Attempt history lives in memory only.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_minutes: float = 15,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.window = window_minutes * 60
        self._clock = clock
        self._attempts: List[float] = []

    def _prune(self, now: float) -> None:
        self._attempts = [t for t in self._attempts if now - t < self.window]

    @property
    def attempts(self) -> List[float]:
        """Attempts currently inside the window."""
        self._prune(self._clock())
        return list(self._attempts)

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_attempts - len(self.attempts))

    def is_allowed(self) -> bool:
        """Record an attempt if the window has room; deny without recording otherwise."""
        now = self._clock()
        self._prune(now)

        if len(self._attempts) >= self.max_attempts:
            return False

        self._attempts.append(now)
        return True

    def time_until_next_attempt(self) -> Optional[timedelta]:
        """Wait until the oldest attempt leaves the window; None when not exhausted."""
        now = self._clock()
        self._prune(now)

        if len(self._attempts) < self.max_attempts or not self._attempts:
            return None

        elapsed = now - self._attempts[0]
        return timedelta(seconds=max(0.0, self.window - elapsed))

    def reset(self) -> None:
        self._attempts = []


def wait_message(wait: Optional[timedelta]) -> str:
    """User-facing wait message, minutes rounded up."""
    seconds = wait.total_seconds() if wait else 0
    minutes = max(1, math.ceil(seconds / 60))
    unit = "minute" if minutes == 1 else "minutes"
    return f"Too many submission attempts. Please wait {minutes} {unit} before trying again."


def check_submission_allowed(limiter: RateLimiter) -> Tuple[bool, Optional[str]]:
    """
    Gate a form submission attempt.

    Returns:
        Tuple of (is_allowed, error_message)
    """
    if not limiter.is_allowed():
        return False, wait_message(limiter.time_until_next_attempt())
    return True, None


# Global submission limiter
_submission_limiter: Optional[RateLimiter] = None


def get_submission_limiter() -> RateLimiter:
    """Get or create the process-wide submission limiter."""
    global _submission_limiter
    if _submission_limiter is None:
        _submission_limiter = RateLimiter(
            max_attempts=settings.SUBMIT_MAX_ATTEMPTS,
            window_minutes=settings.SUBMIT_WINDOW_MINUTES,
        )
    return _submission_limiter
