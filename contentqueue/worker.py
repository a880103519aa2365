"""
Polling worker loop.

One Worker processes at most one job at a time. Several worker processes
may poll the same store; their exclusivity comes from JobStore.claim_next,
not from anything in this module.
"""

import threading
from typing import Optional

from .dispatcher import Dispatcher
from .logger import get_logger
from .store import JobStore

logger = get_logger()


class Worker:
    """Single-flight polling loop over a JobStore."""

    def __init__(self, store: JobStore, dispatcher: Dispatcher, poll_interval: float = 5.0):
        """
        Args:
            store: Job store to claim from
            dispatcher: Dispatcher that runs claimed jobs
            poll_interval: Seconds between ticks
        """
        self.store = store
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self._busy = threading.Lock()
        self._stop = threading.Event()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def tick(self) -> bool:
        """
        Claim and process at most one job.

        A tick that fires while another is still running does nothing.
        Engine defects raised while claiming or dispatching are logged and
        swallowed so polling continues.

        Returns:
            True if a job was claimed
        """
        if not self._busy.acquire(blocking=False):
            logger.debug("Previous tick still running, skipping")
            return False

        try:
            job = self.store.claim_next()
            if job is None:
                return False
            self.dispatcher.dispatch(job)
            return True
        except Exception as e:
            logger.exception("Worker loop error", error=str(e))
            return False
        finally:
            self._busy.release()

    def drain(self, max_jobs: Optional[int] = None) -> int:
        """Tick until the queue is empty (or max_jobs were taken). Returns jobs taken."""
        processed = 0
        while max_jobs is None or processed < max_jobs:
            if not self.tick():
                break
            processed += 1
        return processed

    def run_forever(self, max_ticks: Optional[int] = None) -> None:
        """
        Tick every poll_interval seconds until stop() is called.

        Args:
            max_ticks: Optional bound on the number of ticks (for tests)
        """
        self._stop.clear()
        logger.info("Worker started", poll_interval=self.poll_interval)

        ticks = 0
        while not self._stop.is_set():
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._stop.wait(self.poll_interval)

        logger.info("Worker stopped", ticks=ticks)
        logger.log_metrics_summary()

    def stop(self) -> None:
        """Ask the loop to exit once the current tick finishes."""
        self._stop.set()
