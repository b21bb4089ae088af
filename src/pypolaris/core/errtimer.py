"""Error-latching timer used by the polling loops."""

from __future__ import annotations

import time
from typing import Callable


class RetryTimer:
    """Tracks how long a streak of errors has lasted.

    The countdown starts with the first recorded error and is only stopped by
    recording ``None``. Repeated errors replace the stored error but never
    restart the countdown, so the grace period is measured from the first
    failure of the streak.
    """

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize a stopped timer.

        Args:
            timeout: Seconds an error streak may last before the timer expires.
            clock: Monotonic clock returning seconds.

        Raises:
            ValueError: ``timeout`` is not positive.
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be positive: {timeout}")
        self.timeout = timeout
        self._clock = clock
        self._expires_at: float | None = None
        self.err: BaseException | None = None

    @property
    def active(self) -> bool:
        """True while an error streak is being timed."""
        return self.err is not None

    @property
    def expires_at(self) -> float | None:
        """Clock value at which the timer expires, ``None`` when stopped."""
        return self._expires_at

    def record(self, err: BaseException | None) -> None:
        """Record the outcome of an attempt.

        Args:
            err: Error of the failed attempt, ``None`` for a successful one.
        """
        if err is not None and self.err is None:
            self._expires_at = self._clock() + self.timeout
        elif err is None and self.err is not None:
            self._expires_at = None
        self.err = err

    def remaining(self) -> float | None:
        """Return seconds until expiry, ``None`` when stopped."""
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        """Return True once the current error streak has lasted ``timeout``."""
        return self._expires_at is not None and self._clock() >= self._expires_at
