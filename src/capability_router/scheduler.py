"""Maintenance scheduler for the routing core.

This module wraps APScheduler to run:
- The daily cost ledger reset (cron, midnight in the configured timezone)
- The memory decay sweep (interval)
- Expired intent cache cleanup (interval)

Health probing is not scheduled here; the health monitor owns its own loop.
"""

from __future__ import annotations

from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .core.config import SchedulerConfig
from .core.logger import get_logger
from .routing.orchestrator import RoutingOrchestrator

logger = get_logger("scheduler")

DAILY_RESET_JOB = "daily_cost_reset"
MEMORY_SWEEP_JOB = "memory_decay_sweep"
CACHE_CLEANUP_JOB = "intent_cache_cleanup"


class MaintenanceScheduler:
    """Runs periodic maintenance jobs against a routing orchestrator.

    Jobs are coroutines so they execute on the event loop alongside
    request handling.

    Example:
        ```python
        scheduler = MaintenanceScheduler(orchestrator, config.scheduler)
        scheduler.start()
        ...
        scheduler.shutdown()
        ```
    """

    def __init__(self, orchestrator: RoutingOrchestrator, config: SchedulerConfig | None = None):
        """Initialize the scheduler.

        Args:
            orchestrator: Orchestrator whose ledger, memory and cache are maintained
            config: Scheduler configuration
        """
        self.orchestrator = orchestrator
        self.config = config or SchedulerConfig()
        self._run_counts: dict[str, int] = {}
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 60},
            timezone=self.config.timezone,
        )
        self._scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self._add_jobs()
        logger.info("Maintenance scheduler initialized with timezone: %s", self.config.timezone)

    def _add_jobs(self) -> None:
        self._scheduler.add_job(
            self.reset_daily_costs,
            CronTrigger(
                hour=self.config.daily_reset_hour,
                minute=self.config.daily_reset_minute,
                timezone=self.config.timezone,
            ),
            id=DAILY_RESET_JOB,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.sweep_memory,
            IntervalTrigger(minutes=self.config.memory_sweep_minutes),
            id=MEMORY_SWEEP_JOB,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.cleanup_intent_cache,
            IntervalTrigger(minutes=self.config.cache_cleanup_minutes),
            id=CACHE_CLEANUP_JOB,
            replace_existing=True,
        )

    async def reset_daily_costs(self) -> None:
        self.orchestrator.sentinel.reset()

    async def sweep_memory(self) -> dict[str, int]:
        return self.orchestrator.memory.decay_sweep()

    async def cleanup_intent_cache(self) -> int:
        return self.orchestrator.classifier.cache.cleanup_expired()

    def _job_executed(self, event: JobExecutionEvent) -> None:
        self._run_counts[event.job_id] = self._run_counts.get(event.job_id, 0) + 1
        logger.debug("Job %s executed", event.job_id)

    def _job_error(self, event: JobExecutionEvent) -> None:
        logger.error(
            "Job %s failed with exception: %s",
            event.job_id,
            event.exception,
            exc_info=event.exception,
        )

    def start(self) -> None:
        """Start the scheduler. Must be called with a running event loop.

        Raises:
            RuntimeError: If the scheduler is disabled in configuration
        """
        if not self.config.enabled:
            raise RuntimeError("Scheduler is disabled in configuration")
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Maintenance scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Maintenance scheduler stopped")

    def is_running(self) -> bool:
        return self._scheduler.running

    def get_jobs(self) -> list[dict[str, Any]]:
        """Describe scheduled jobs with their next run time."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "trigger": str(job.trigger),
                    "next_run_time": next_run.isoformat() if next_run else None,
                    "runs": self._run_counts.get(job.id, 0),
                }
            )
        return jobs
