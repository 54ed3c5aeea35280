"""Single-flight admission control for the build pipeline.

At most one build may be in flight. Callers that lose the race are
rejected immediately; there is no queue and no fairness.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class SlotBusyError(Exception):
    """Raised when another build already holds the slot."""

    def __init__(
        self,
        message: str = "Server is busy processing another build. Please try again later.",
        code: str = "slot_busy",
    ) -> None:
        super().__init__(message)
        self.code = code


class BuildSlot:
    """A non-blocking, single-holder admission slot.

    The busy flag is the only process-wide mutable state of the pipeline.
    Instances are owned by the application, so independent slots can
    coexist (one per app, one per test).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy = False

    @property
    def busy(self) -> bool:
        """Whether a build currently holds the slot."""
        with self._lock:
            return self._busy

    def try_acquire(self) -> bool:
        """Claim the slot without blocking.

        Returns:
            True if the slot was claimed, False if it was already busy.
        """
        with self._lock:
            if self._busy:
                return False
            self._busy = True
        logger.debug("Build slot acquired")
        return True

    def acquire(self) -> None:
        """Claim the slot or fail fast.

        Raises:
            SlotBusyError: If another build holds the slot.
        """
        if not self.try_acquire():
            raise SlotBusyError()

    def release(self) -> None:
        """Free the slot.

        Raises:
            RuntimeError: If the slot is not held.
        """
        with self._lock:
            if not self._busy:
                raise RuntimeError("release of an idle build slot")
            self._busy = False
        logger.debug("Build slot released")


__all__ = ["BuildSlot", "SlotBusyError"]
