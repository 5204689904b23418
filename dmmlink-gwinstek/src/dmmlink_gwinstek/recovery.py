"""Failure counting and transport re-acquisition policy."""

from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_BACKOFF = 2.0


class RecoveryPolicy:
    """Decides when to give up on the current transport and re-probe.

    Every timed-out or empty cycle counts one failure; a completed cycle
    resets the count. Once the count exceeds *failure_threshold* the caller
    should run :meth:`recover`, which resets the count, invokes the
    re-acquisition callback once and sleeps *backoff* seconds if that failed.

    Args:
        failure_threshold: Consecutive failures tolerated before recovery.
        backoff: Seconds to sleep after a failed re-acquisition.
        sleep: Sleep function, replaceable for tests.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        backoff: float = DEFAULT_BACKOFF,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if failure_threshold < 0:
            raise ValueError("failure_threshold must be >= 0")
        if backoff < 0:
            raise ValueError("backoff must be >= 0")
        self._failure_threshold = failure_threshold
        self._backoff = backoff
        self._sleep = sleep
        self._failures = 0
        self._attempts = 0

    @property
    def failures(self) -> int:
        """Consecutive failed cycles since the last success or recovery."""
        return self._failures

    @property
    def attempts(self) -> int:
        """Number of re-acquisition attempts made so far."""
        return self._attempts

    @property
    def should_recover(self) -> bool:
        """Return True once the failure streak exceeds the threshold."""
        return self._failures > self._failure_threshold

    def record_failure(self) -> int:
        """Count one failed cycle and return the new streak length."""
        self._failures += 1
        logger.debug("Read failure %d/%d", self._failures, self._failure_threshold)
        return self._failures

    def record_success(self) -> None:
        """Reset the failure streak after a completed cycle."""
        self._failures = 0

    def recover(self, reacquire: Callable[[], bool]) -> bool:
        """Run one re-acquisition attempt.

        Args:
            reacquire: Callback that closes the old transport and tries to
                find the instrument again, returning True on success.

        Returns:
            The callback's result.
        """
        self._attempts += 1
        self._failures = 0
        logger.warning("Excess read failures; trying to reacquire the meter")
        if reacquire():
            return True
        logger.error(
            "Unable to find a port with the multimeter, sleeping for %.1f seconds",
            self._backoff,
        )
        self._sleep(self._backoff)
        return False
