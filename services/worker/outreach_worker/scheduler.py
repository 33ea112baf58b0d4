"""Per-kind sweep locks for scheduled triggers.

A trigger that fires while the previous sweep of the same kind is still
running is skipped, never queued behind it.
"""

import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class SweepOutcome:
    """Result of one trigger."""

    kind: str
    ran: bool
    result: Any = None


class Scheduler:
    """Owns one non-blocking lock per task kind."""

    def __init__(self, jitter_seconds: float = 0.0, rng: Optional[random.Random] = None):
        self.jitter_seconds = jitter_seconds
        self.rng = rng or random.Random()
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, kind: str) -> threading.Lock:
        with self._guard:
            if kind not in self._locks:
                self._locks[kind] = threading.Lock()
            return self._locks[kind]

    def jitter(self) -> float:
        """Random start offset within ``[0, jitter_seconds]``."""
        if self.jitter_seconds <= 0:
            return 0.0
        return self.rng.uniform(0, self.jitter_seconds)

    def try_run(self, kind: str, fn: Callable[[], Any]) -> SweepOutcome:
        """Run ``fn`` unless a sweep of ``kind`` already holds the lock.

        Exceptions from ``fn`` propagate after the lock is released.
        """
        lock = self._lock_for(kind)
        if not lock.acquire(blocking=False):
            logger.info(f"{kind} sweep already running, skipping this trigger")
            return SweepOutcome(kind=kind, ran=False)

        try:
            logger.info(f"Running scheduled {kind} sweep")
            return SweepOutcome(kind=kind, ran=True, result=fn())
        finally:
            lock.release()
