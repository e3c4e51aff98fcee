"""
Scheduler - runs the scrape cycle immediately and then on a fixed interval
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from typing import Any, Callable, Optional

from apscheduler.events import EVENT_JOB_MAX_INSTANCES
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from scraper_state import ScraperStateStore

logger = logging.getLogger(__name__)

JOB_ID = "scrape_cycle"


class CycleRunner:
    """Runs scheduled cycles and tracks whether one is in flight.

    Once stopped, ticks already handed to the worker return without
    building a cycle.
    """

    def __init__(self, cycle_factory: Callable[[], Any]) -> None:
        self.cycle_factory = cycle_factory
        self._lock = threading.Lock()
        self._stopping = False
        self._idle_evt = threading.Event()
        self._idle_evt.set()

    @property
    def in_flight(self) -> bool:
        return not self._idle_evt.is_set()

    def run(self) -> None:
        with self._lock:
            if self._stopping:
                logger.info("Scheduler stopping, skipping scrape cycle")
                return
            self._idle_evt.clear()
        try:
            outcome = self.cycle_factory().run()
            logger.debug("Scheduled cycle finished: %s", outcome)
        except Exception:
            # Never let a failed cycle kill the interval
            logger.exception("Unhandled error in scheduled scrape cycle")
        finally:
            self._idle_evt.set()

    def stop(self) -> None:
        with self._lock:
            self._stopping = True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle_evt.wait(timeout=timeout)


class SchedulerHandle:
    """
    A small façade around APScheduler so the agent can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler, runner: CycleRunner) -> None:
        self._scheduler = scheduler
        self._runner = runner
        self._stopped_evt = threading.Event()

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running) and not self._stopped_evt.is_set()

    @property
    def cycle_in_flight(self) -> bool:
        return self._runner.in_flight

    def stop(self) -> None:
        """
        Stop scheduling new cycles. A cycle already in flight finishes its own cleanup.
        """
        self._runner.stop()
        if self._scheduler.running:
            logger.info("Shutting down scheduler...")
            # wait=False -> return immediately; the in-flight cycle is allowed to finish.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        logger.info("Scheduler stopped")

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the scheduler is stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no scheduled cycle is in flight (or timeout).
        Returns True if idle before timeout, else False.
        """
        return self._runner.wait_idle(timeout)

    def next_run_time(self) -> Optional[datetime]:
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None


def _on_max_instances(event) -> None:
    logger.info("Previous scrape cycle still running, skipping tick")


def start_scheduler(
    config,
    cycle_factory: Callable[[], Any],
    state: ScraperStateStore,
    current_pid: Optional[int] = None,
) -> SchedulerHandle:
    """
    Reset stuck state, then schedule the cycle every interval_minutes with
    the first run right away. Returns a SchedulerHandle exposing stop(), join()
    and wait_for_idle().
    """
    state.reset_on_startup(current_pid if current_pid is not None else os.getpid())

    interval_minutes = config.get_interval_minutes()
    scheduler = BackgroundScheduler(
        job_defaults={
            "coalesce": True,  # run only the latest if many were missed
            "max_instances": 1,
        },
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )
    runner = CycleRunner(cycle_factory)
    scheduler.add_listener(_on_max_instances, EVENT_JOB_MAX_INSTANCES)
    scheduler.add_job(
        runner.run,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=JOB_ID,
        name="LinkedIn scrape cycle",
        next_run_time=datetime.now(),
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started: running every %s minutes (first run now)", interval_minutes)
    return SchedulerHandle(scheduler, runner)
