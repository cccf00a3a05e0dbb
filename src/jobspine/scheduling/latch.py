"""One-shot barrier between startup reconciliation and the dispatch loop.

The dispatch loop should not claim jobs before the reconciler has created,
disabled and re-enabled them according to the current code and
configuration. It waits here, but only for a bounded time: running
without a fresh reconciliation beats not running at all.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from jobspine.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = timedelta(seconds=30)


class JobInitializationLatch:
    """Released once by the reconciler, awaited by the dispatch loop.

    Args:
        expects_reconciler: When ``False`` nothing will ever release the
            latch, so it starts released.
        timeout: Upper bound for :meth:`wait`.
    """

    def __init__(self, expects_reconciler: bool, timeout: timedelta = DEFAULT_TIMEOUT) -> None:
        self._released = threading.Event()
        self.timeout = timeout
        if not expects_reconciler:
            self._released.set()

    @property
    def released(self) -> bool:
        return self._released.is_set()

    def release(self) -> None:
        self._released.set()

    def wait(self) -> bool:
        """Block until released or the timeout passes.

        Returns:
            ``True`` if released, ``False`` on timeout (logged as an error;
            the caller proceeds anyway).
        """
        if self._released.wait(self.timeout.total_seconds()):
            return True
        logger.error(
            "job_initialization_timeout",
            timeout_seconds=self.timeout.total_seconds(),
            message="Job initialization did not complete in time; scheduling anyway",
        )
        return False


__all__ = ["JobInitializationLatch", "DEFAULT_TIMEOUT"]
