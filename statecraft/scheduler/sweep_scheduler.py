"""Sweep Scheduler - Periodic execution of due scheduled transitions

Each run covers the half-open window [last_run, now), so consecutive runs
neither overlap nor leave a gap. The first run starts at 0 and therefore
catches up on everything that fell due while the process was down.
"""
import threading
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..domain.models import SweepReport
from ..engine.factory import EngineComponents, get_engine_components
from ..utils.logger import get_logger

logger = get_logger(__name__)


class SweepScheduler:
    """
    APScheduler wrapper running SchedulerSweep at a fixed interval.

    Single process: overlapping runs are prevented with a lock and
    max_instances=1.
    """

    def __init__(self, components: Optional[EngineComponents] = None, interval_seconds: Optional[int] = None):
        self.components = components or get_engine_components()
        self.interval_seconds = interval_seconds or settings.sweep_interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._last_run = 0
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Sweep scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="scheduled_transition_sweep",
            name="Execute due scheduled transitions",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Sweep scheduler started, interval {self.interval_seconds}s")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self._is_running = False
            logger.info("Sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def last_run(self) -> int:
        return self._last_run

    def run_once(self) -> Optional[SweepReport]:
        """Sweep [last_run, now); skipped while a previous run is still busy"""
        if not self._lock.acquire(blocking=False):
            logger.warning("Previous sweep still running, skipping")
            return None
        try:
            window_end = self.components.clock()
            report = self.components.sweep.run_sweep(self._last_run, window_end)
            self._last_run = window_end
            return report
        except Exception as e:
            # Window is not advanced; the next run retries it
            logger.error(f"Sweep failed: {e}", exc_info=True)
            return None
        finally:
            self._lock.release()


_scheduler: Optional[SweepScheduler] = None


def get_scheduler() -> SweepScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = SweepScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
