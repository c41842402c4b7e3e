"""Periodic background refresh of the live dataset."""

import threading
from typing import Optional

from unlisted.config import REFRESH_INTERVAL_SECONDS
from unlisted.errors import CycleFailed, PersistenceFailure
from unlisted.logging_config import get_logger
from unlisted.pipeline import DatasetSwap

__all__ = ["RefreshScheduler"]

logger = get_logger("scheduler")


class RefreshScheduler:
    """Runs ``DatasetSwap.refresh()`` every ``interval`` seconds on a daemon thread.

    On start the cached snapshots are published if present; otherwise a
    refresh runs right away. A failed cycle is logged and the next tick
    tries again.
    """

    def __init__(self, swap: DatasetSwap, interval: float = REFRESH_INTERVAL_SECONDS):
        if interval <= 0:
            raise ValueError("refresh interval must be positive")
        self.swap = swap
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "RefreshScheduler":
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="refresh-scheduler", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> bool:
        """Run one refresh, returning whether it published."""
        self.runs += 1
        try:
            self.swap.refresh()
        except CycleFailed as e:
            self.failures += 1
            logger.error(f"Scheduled refresh failed, keeping the current dataset: {e}")
            return False
        except Exception:
            # One bad tick must not end the refresh loop
            self.failures += 1
            logger.exception("Scheduled refresh raised an unexpected error")
            return False
        return True

    def _warm_start(self) -> bool:
        try:
            return self.swap.warm_start()
        except PersistenceFailure as e:
            logger.error(f"Could not load cached snapshots: {e}")
            return False
        except Exception:
            logger.exception("Unexpected error loading cached snapshots")
            return False

    def _run(self) -> None:
        if not self._warm_start():
            self.run_once()
        while not self._stop.wait(self.interval):
            self.run_once()
        logger.info("Refresh scheduler stopped")
