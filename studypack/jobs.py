from typing import Callable, Dict, Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from studypack.config import Settings
from studypack.orchestrator import SchedulerOrchestrator
from studypack.schemas import BatchReport

logger = structlog.get_logger(__name__)

DAILY_PACKS_JOB = "daily_study_packs"
TOPIC_RECALC_JOB = "topic_performance_update"
WEEKLY_REPORT_JOB = "weekly_reports"


class ScheduledJobs:
    """
    Recurring batch jobs with an explicit start/stop lifecycle.

    Nothing is scheduled until start() is called; the last report of each
    job is kept in last_reports for inspection.
    """

    def __init__(
        self,
        orchestrator: SchedulerOrchestrator,
        settings: Settings,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.orchestrator = orchestrator
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler(timezone=settings.scheduler_timezone)
        self.last_reports: Dict[str, BatchReport] = {}
        self._registered = False

    def register(self) -> None:
        """Register the cron jobs (idempotent)"""
        if self._registered:
            return
        tz = self.settings.scheduler_timezone

        # Daily study pack delivery, 07:00 by default
        self._add(
            DAILY_PACKS_JOB,
            self.orchestrator.run_daily_batch,
            CronTrigger(
                hour=self.settings.daily_schedule_hour,
                minute=self.settings.daily_schedule_minute,
                timezone=tz,
            ),
        )
        # Rolling topic accuracy at midnight
        self._add(TOPIC_RECALC_JOB, self.orchestrator.run_topic_recalculation, CronTrigger(hour=0, minute=0, timezone=tz))

        if self.orchestrator.stats_provider is not None:
            # Sundays at 08:00
            self._add(
                WEEKLY_REPORT_JOB,
                self.orchestrator.run_weekly_reports,
                CronTrigger(day_of_week="sun", hour=8, minute=0, timezone=tz),
            )
        self._registered = True

    def start(self) -> None:
        self.register()
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("scheduler_started", jobs=[job.id for job in self.scheduler.get_jobs()])

    def stop(self, wait: bool = True) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("scheduler_stopped")

    def run_now(self, job_id: str) -> BatchReport:
        """Run one job synchronously, outside its schedule"""
        jobs = {
            DAILY_PACKS_JOB: self.orchestrator.run_daily_batch,
            TOPIC_RECALC_JOB: self.orchestrator.run_topic_recalculation,
            WEEKLY_REPORT_JOB: self.orchestrator.run_weekly_reports,
        }
        if job_id not in jobs:
            raise KeyError(job_id)
        return self._wrap(job_id, jobs[job_id])()

    def _add(self, job_id: str, func: Callable[[], BatchReport], trigger: CronTrigger) -> None:
        self.scheduler.add_job(
            self._wrap(job_id, func),
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("job_registered", job=job_id, trigger=str(trigger))

    def _wrap(self, job_id: str, func: Callable[[], BatchReport]) -> Callable[[], BatchReport]:
        def run() -> BatchReport:
            report = func()
            self.last_reports[job_id] = report
            return report
        return run
