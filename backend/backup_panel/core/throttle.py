"""Global login throttle with exponential backoff.

One instance is shared by every login path in the process. It counts
consecutive failed login attempts regardless of who made them; the panel
has a single administrative identity, so per-identity tracking buys
nothing.

Policy:
- Fewer than 3 consecutive failures: always allowed.
- From the 3rd failure on, the next attempt waits 2 ** (failures - 3)
  minutes after the last failure (1, 2, 4, 8, ... minutes).
- Waiting out the window permits one more attempt but does NOT clear the
  counter. Only a successful login resets it to 0.

Concurrency: check/record are atomic under a threading lock, and
serialized() gives callers an asyncio lock to hold across the whole
check -> verify -> record sequence.
"""

import asyncio
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

# Failures tolerated before lockout windows start
DEFAULT_FREE_ATTEMPTS = 3

# Window for the first lockout; doubles with each further failure
DEFAULT_BASE_WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of LoginThrottle.check().

    Attributes:
        allowed: True if a login attempt may proceed.
        retry_after_seconds: Whole seconds to wait when not allowed, else 0.
    """

    allowed: bool
    retry_after_seconds: int = 0


class LoginThrottle:
    """Process-wide counter of consecutive failed logins.

    The clock is injectable; it must be monotonic.
    """

    def __init__(
        self,
        *,
        free_attempts: int = DEFAULT_FREE_ATTEMPTS,
        base_window_seconds: float = DEFAULT_BASE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._free_attempts = free_attempts
        self._base_window_seconds = base_window_seconds
        self._clock = clock
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._state_lock = threading.Lock()
        self._attempt_lock = asyncio.Lock()

    @property
    def failure_count(self) -> int:
        with self._state_lock:
            return self._failure_count

    def window_seconds(self, failure_count: int) -> float:
        """Lockout window that applies after `failure_count` failures."""
        if failure_count < self._free_attempts:
            return 0.0
        return self._base_window_seconds * 2 ** (failure_count - self._free_attempts)

    def check(self) -> ThrottleDecision:
        """Decide whether a login attempt may proceed now.

        Returns:
            ThrottleDecision with the remaining wait rounded up to whole seconds.
        """
        with self._state_lock:
            if self._failure_count < self._free_attempts or self._last_failure_at is None:
                return ThrottleDecision(allowed=True)

            window = self.window_seconds(self._failure_count)
            elapsed = self._clock() - self._last_failure_at
            if elapsed < window:
                return ThrottleDecision(
                    allowed=False,
                    retry_after_seconds=max(1, math.ceil(window - elapsed)),
                )
            return ThrottleDecision(allowed=True)

    def record_failure(self) -> int:
        """Count a failed attempt.

        Returns:
            The failure count after incrementing.
        """
        with self._state_lock:
            self._failure_count += 1
            self._last_failure_at = self._clock()
            return self._failure_count

    def record_success(self) -> None:
        """Reset the counter after a successful login."""
        with self._state_lock:
            self._failure_count = 0
            self._last_failure_at = None

    def serialized(self) -> asyncio.Lock:
        """Lock to hold for a whole login attempt.

        Usage:
            async with throttle.serialized():
                decision = throttle.check()
                ...
        """
        return self._attempt_lock
