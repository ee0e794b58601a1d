"""
Shutdown coordination.

Termination signals only post a stop request to the scheduler. The engine
then calls ``teardown`` once the loop has drained; teardown is guarded by a
one-shot flag so that the signal path and the normal exit path never run it
twice.
"""

import asyncio
import logging
import signal
from typing import Optional

from services.commit_engine.lock import InstanceLock
from services.commit_engine.scheduler import RunScheduler
from services.commit_engine.tracker import CommitTracker
from shared.exceptions import PersistenceError

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Persists the tracker and releases the lock exactly once."""

    def __init__(self, tracker: CommitTracker, lock: InstanceLock):
        self.tracker = tracker
        self.lock = lock
        self._done = False
        self._scheduler: Optional[RunScheduler] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed = []

    @property
    def completed(self) -> bool:
        return self._done

    def _on_signal(self, signum: int) -> None:
        logger.warning(f"Received {signal.Signals(signum).name}, shutting down")
        if self._scheduler is not None:
            self._scheduler.request_stop()

    def install(self, loop: asyncio.AbstractEventLoop, scheduler: RunScheduler) -> None:
        """Route termination signals to the scheduler's stop request."""
        self._loop = loop
        self._scheduler = scheduler
        for signum in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(
                    signum,
                    lambda received, frame: loop.call_soon_threadsafe(self._on_signal, received),
                )
            self._installed.append(signum)

    def uninstall(self) -> None:
        for signum in self._installed:
            try:
                self._loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError):
                signal.signal(signum, signal.SIG_DFL)
        self._installed = []

    def teardown(self) -> bool:
        """
        Save tracker state and release the lock.

        Returns:
            True if this call performed the teardown, False if it already ran.
        """
        if self._done:
            return False
        self._done = True

        try:
            self.tracker.save()
        except PersistenceError as e:
            logger.error(str(e))
        self.lock.release()
        logger.info("Chronos flow terminated")
        return True
