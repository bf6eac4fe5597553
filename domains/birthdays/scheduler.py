"""Birthday scheduler - drives materialization, dispatch and sweep daily.

Registers three cron jobs on a shared APScheduler instance, all in the
configured timezone:

- materialize: shortly before midnight, creates tomorrow's reminders
- dispatch: at the start of the day, sends today's reminders
- sweep: off-peak, deletes old reminder records

States:
- STOPPED: no jobs registered
- RUNNING: jobs registered

stop() only removes the jobs; a run already in progress finishes. Store and
sink failures are logged here and never escape into the event loop.
"""

from datetime import date, datetime, timezone
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from logger import logger
from . import config
from .date_math import local_now, local_today, resolve_timezone, shift_days
from .errors import StoreUnavailable
from .models import DispatchResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BirthdayScheduler:
    """Owns the lifecycle of the three daily birthday jobs."""

    JOB_MATERIALIZE = "birthday_materialize"
    JOB_DISPATCH = "birthday_dispatch"
    JOB_SWEEP = "birthday_sweep"
    JOB_CATCH_UP_DISPATCH = "birthday_catch_up_dispatch"

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        materializer,
        dispatcher,
        sweeper,
        timezone_name: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
        lead_days: Optional[int] = None,
        retention_days: Optional[int] = None,
        materialize_on_start: Optional[bool] = None
    ):
        """Initialize scheduler.

        Args:
            scheduler: APScheduler instance (may be shared with other jobs)
            materializer: ReminderMaterializer
            dispatcher: DeliveryDispatcher
            sweeper: RetentionSweeper
            timezone_name: IANA timezone for "what day is it" (default from config)
            clock: Returns the current instant
            lead_days: Days ahead reminders are materialized (default from config)
            retention_days: Sent reminder retention (default from config)
            materialize_on_start: Catch up today's reminders on start (default from config)

        Raises:
            ConfigurationError: If the timezone is unknown
        """
        self.scheduler = scheduler
        self.materializer = materializer
        self.dispatcher = dispatcher
        self.sweeper = sweeper
        self.timezone_name = timezone_name or config.TIMEZONE
        self.tz = resolve_timezone(self.timezone_name)
        self.clock = clock
        self.lead_days = config.REMINDER_LEAD_DAYS if lead_days is None else lead_days
        self.retention_days = config.REMINDER_RETENTION_DAYS if retention_days is None else retention_days
        self.materialize_on_start = (
            config.MATERIALIZE_ON_START if materialize_on_start is None else materialize_on_start
        )

        # Registered job IDs; empty means STOPPED
        self._job_ids: list[str] = []

    @property
    def running(self) -> bool:
        return bool(self._job_ids)

    def today(self) -> date:
        return local_today(self.clock(), self.tz)

    def start(self) -> None:
        """Register the daily jobs (STOPPED -> RUNNING)."""
        if self.running:
            logger.info("Birthday scheduler is already running")
            return

        jobs = [
            (self.JOB_MATERIALIZE, self._run_materialization, config.MATERIALIZE_HOUR, config.MATERIALIZE_MINUTE),
            (self.JOB_DISPATCH, self._run_dispatch, config.DISPATCH_HOUR, config.DISPATCH_MINUTE),
            (self.JOB_SWEEP, self._run_sweep, config.SWEEP_HOUR, config.SWEEP_MINUTE),
        ]

        for job_id, func, hour, minute in jobs:
            self.scheduler.add_job(
                func,
                CronTrigger(hour=hour, minute=minute, timezone=self.tz),
                id=job_id,
                name=job_id,
                max_instances=1,  # Prevent overlapping runs
                coalesce=True,    # Combine missed runs
                replace_existing=True
            )
            self._job_ids.append(job_id)
            logger.info(f"Registered {job_id} job ({hour:02d}:{minute:02d} {self.timezone_name})")

        if not self.scheduler.running:
            self.scheduler.start()

        if self.materialize_on_start:
            self._catch_up()

        logger.info(f"Birthday scheduler started with {len(self._job_ids)} jobs")

    def _catch_up(self) -> None:
        """Recover the runs a process that was down has missed.

        Today's reminders are materialized and, once the dispatch time has
        passed, sent by a one-off job on the event loop. Past the
        materialization time the lead-day reminders are created as well.
        """
        now = local_now(self.clock(), self.tz)
        today = now.date()
        logger.info(f"Catching up reminders for today ({today})")
        self._materialize(today)

        if (now.hour, now.minute) >= (config.MATERIALIZE_HOUR, config.MATERIALIZE_MINUTE):
            self._materialize(shift_days(today, self.lead_days))

        if (now.hour, now.minute) >= (config.DISPATCH_HOUR, config.DISPATCH_MINUTE):
            # No trigger: runs once, as soon as the scheduler wakes up
            self.scheduler.add_job(
                self._run_dispatch,
                id=self.JOB_CATCH_UP_DISPATCH,
                name=self.JOB_CATCH_UP_DISPATCH,
                replace_existing=True
            )
            logger.info(f"Scheduled catch-up dispatch for {today}")

    def stop(self) -> None:
        """Remove the daily jobs (RUNNING -> STOPPED). No-op when stopped."""
        if not self.running:
            logger.debug("Birthday scheduler is not running")
            return

        for job_id in self._job_ids:
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                logger.debug(f"Job {job_id} already removed")
            logger.info(f"Stopped job: {job_id}")

        self._job_ids.clear()
        logger.info("Birthday scheduler stopped")

    def status(self) -> dict:
        """Scheduler state for ops commands."""
        next_runs = {}
        for job_id in self._job_ids:
            job = self.scheduler.get_job(job_id)
            next_run = getattr(job, "next_run_time", None) if job else None
            next_runs[job_id] = next_run.isoformat() if next_run else None

        return {
            "running": self.running,
            "job_names": list(self._job_ids),
            "timezone": self.timezone_name,
            "next_runs": next_runs,
        }

    # ------------------------------------------------------------------
    # Manual triggers (ops/testing) - same bodies as the scheduled jobs
    # ------------------------------------------------------------------

    async def trigger_materialization_now(self) -> Optional[int]:
        logger.info("Manually triggering reminder materialization...")
        return await self._run_materialization()

    async def trigger_dispatch_now(self) -> Optional[DispatchResult]:
        logger.info("Manually triggering birthday dispatch...")
        return await self._run_dispatch()

    async def trigger_sweep_now(self) -> Optional[int]:
        logger.info("Manually triggering reminder cleanup...")
        return await self._run_sweep()

    # ------------------------------------------------------------------
    # Job bodies
    # ------------------------------------------------------------------

    async def _run_materialization(self) -> Optional[int]:
        target = shift_days(self.today(), self.lead_days)
        return self._materialize(target)

    def _materialize(self, target: date) -> Optional[int]:
        try:
            return self.materializer.materialize_for(target)
        except StoreUnavailable as e:
            logger.error(f"Materialization for {target} aborted, store unavailable: {e}")
        except Exception:
            logger.exception(f"Materialization for {target} failed")
        return None

    async def _run_dispatch(self) -> Optional[DispatchResult]:
        target = self.today()
        try:
            return await self.dispatcher.dispatch_for(target)
        except StoreUnavailable as e:
            logger.error(f"Dispatch for {target} aborted, store unavailable: {e}")
        except Exception:
            logger.exception(f"Dispatch for {target} failed")
        return None

    async def _run_sweep(self) -> Optional[int]:
        try:
            return self.sweeper.sweep(self.clock(), self.retention_days)
        except StoreUnavailable as e:
            logger.error(f"Reminder cleanup aborted, store unavailable: {e}")
        except Exception:
            logger.exception("Reminder cleanup failed")
        return None
