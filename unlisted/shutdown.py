"""Signal handling for the foreground refresh loop (``cli --watch``).

The first SIGINT/SIGTERM asks the loop to stop; the scheduler is then
stopped and the previous handlers restored. A second signal forces exit.
"""

import signal
import sys
import threading
from typing import Callable, Dict, Optional

from unlisted.logging_config import get_logger
from unlisted.scheduler import RefreshScheduler

__all__ = ["ShutdownHandler", "run_until_signalled"]

logger = get_logger("shutdown")

SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHandler:
    """Turns SIGINT/SIGTERM into a stop request for one refresh scheduler.

    Usage:
        with ShutdownHandler(scheduler.stop) as handler:
            handler.wait()
    """

    def __init__(self, on_shutdown: Callable[[], None]):
        self._on_shutdown: Optional[Callable[[], None]] = on_shutdown
        self._requested = threading.Event()
        self._previous: Dict[int, object] = {}

    def install(self) -> "ShutdownHandler":
        if self._previous:
            return self
        for signum in SIGNALS:
            self._previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)
        return self

    def uninstall(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def _handle_signal(self, signum: int, frame) -> None:
        logger.warning(
            f"Received {signal.Signals(signum).name}, stopping the refresh scheduler "
            "(send again to force quit)"
        )
        self._requested.set()
        signal.signal(signum, self._force_exit)

    def _force_exit(self, signum: int, frame) -> None:
        logger.error("Force quitting")
        self.cleanup()
        sys.exit(1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a signal arrives or ``timeout`` elapses."""
        return self._requested.wait(timeout)

    def cleanup(self) -> None:
        """Run the shutdown callback once."""
        callback, self._on_shutdown = self._on_shutdown, None
        if callback is None:
            return
        try:
            callback()
        except Exception as e:
            logger.warning(f"Shutdown callback failed: {e}")

    def __enter__(self) -> "ShutdownHandler":
        return self.install()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
        self.uninstall()


def run_until_signalled(scheduler: RefreshScheduler) -> None:
    """Start ``scheduler`` and block until SIGINT/SIGTERM, then stop it."""
    with ShutdownHandler(scheduler.stop) as handler:
        scheduler.start()
        handler.wait()
    logger.info("Shutdown complete")
