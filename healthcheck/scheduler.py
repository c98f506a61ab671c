"""
Minimal interval scheduler used when no external cron substrate is wired in.

Jobs run serially on the calling thread. A job that is still running when it
comes due again is skipped, never started twice.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    name: str
    interval: float
    func: Callable[[], object]
    next_run: float
    lock: threading.Lock = field(default_factory=threading.Lock)


class IntervalScheduler:
    """Run named jobs every ``interval`` seconds."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self._clock = clock
        self._sleep = sleep
        self._jobs: Dict[str, ScheduledJob] = {}
        self._stopped = threading.Event()

    def schedule(self, name: str, interval: float, func: Callable[[], object], run_immediately: bool = False) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        first = self._clock() if run_immediately else self._clock() + interval
        self._jobs[name] = ScheduledJob(name=name, interval=float(interval), func=func, next_run=first)
        logger.info("Scheduled job '%s' every %ss", name, interval)

    def unschedule(self, name: str) -> bool:
        removed = self._jobs.pop(name, None) is not None
        if removed:
            logger.info("Unscheduled job '%s'", name)
        return removed

    def is_scheduled(self, name: str) -> bool:
        return name in self._jobs

    def run_job(self, name: str) -> bool:
        """Run one job now. Returns False if it was already running."""
        job = self._jobs[name]
        if not job.lock.acquire(blocking=False):
            logger.warning("Job '%s' is still running; skipping this trigger", name)
            return False
        try:
            job.func()
        except Exception as e:
            # A failing job must not take the scheduler (or later runs) down
            logger.error(f"Job '{name}' raised: {e}", exc_info=True)
        finally:
            job.next_run = self._clock() + job.interval
            job.lock.release()
        return True

    def run_pending(self) -> List[str]:
        """Run every due job once; returns the names that actually ran."""
        now = self._clock()
        ran = []
        for name, job in list(self._jobs.items()):
            if job.next_run <= now and self.run_job(name):
                ran.append(name)
        return ran

    def stop(self) -> None:
        self._stopped.set()

    def run_forever(self, poll_interval: float = 1.0, max_iterations: Optional[int] = None) -> None:
        """Loop until stop() or Ctrl+C."""
        logger.info("Starting scheduler loop (jobs=%s)", sorted(self._jobs))
        iterations = 0
        while not self._stopped.is_set():
            try:
                self.run_pending()
                iterations += 1
                if max_iterations is not None and iterations >= max_iterations:
                    break
                self._sleep(poll_interval)
            except KeyboardInterrupt:
                logger.info("Stopping scheduler...")
                break
