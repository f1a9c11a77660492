"""Scheduler for periodic scrobble loading."""

import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger


class LoadScheduler:
    """Runs the multi-user load job on an interval or cron schedule."""

    def __init__(
        self,
        logger: logging.Logger,
        load_function: Callable[[], object],
        check_interval_minutes: int = 60,
        use_cron: bool = False,
        cron_schedule: str = "0 */6 * * *",
        scheduler: Optional[BackgroundScheduler] = None
    ):
        """Initialize scheduler.

        Args:
            logger: Logger instance
            load_function: Job to run (takes no args)
            check_interval_minutes: Interval in minutes (if not using cron)
            use_cron: Whether to use cron-style scheduling
            cron_schedule: Cron schedule string (if use_cron is True)
            scheduler: APScheduler instance (injectable for tests)
        """
        self.logger = logger
        self.load_function = load_function
        self.check_interval_minutes = check_interval_minutes
        self.use_cron = use_cron
        self.cron_schedule = cron_schedule

        self.scheduler = scheduler or BackgroundScheduler()
        self._job_id = "scrobble_load"

    def build_trigger(self):
        """Build the APScheduler trigger from the configuration."""
        if self.use_cron:
            return CronTrigger.from_crontab(self.cron_schedule)
        return IntervalTrigger(minutes=self.check_interval_minutes)

    def start(self) -> None:
        """Start the scheduler."""
        try:
            trigger = self.build_trigger()
            if self.use_cron:
                self.logger.info(f"Starting scheduler with cron schedule: {self.cron_schedule}")
            else:
                self.logger.info(
                    f"Starting scheduler with interval: {self.check_interval_minutes} minutes"
                )

            # One run at a time: all users share the MusicBrainz rate limit
            self.scheduler.add_job(
                self._safe_load_function,
                trigger=trigger,
                id=self._job_id,
                name="Scrobble Load",
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )

            self.scheduler.start()
            self.logger.info("Scheduler started successfully")

        except Exception as e:
            self.logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        try:
            if self.scheduler.running:
                self.logger.info("Stopping scheduler...")
                self.scheduler.shutdown(wait=True)
                self.logger.info("Scheduler stopped")
        except Exception as e:
            self.logger.error(f"Error stopping scheduler: {e}")

    def _safe_load_function(self) -> None:
        """Run the load job without letting its errors stop the schedule."""
        try:
            self.logger.debug("Running scheduled scrobble load")
            self.load_function()
        except Exception as e:
            self.logger.error(f"Error in scheduled load: {e}", exc_info=True)

    def get_next_run_time(self) -> Optional[str]:
        """Get the next scheduled run time.

        Returns:
            Next run time as string, or None if scheduler not running
        """
        job = self.scheduler.get_job(self._job_id)
        if job and job.next_run_time:
            return str(job.next_run_time)
        return None

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self.scheduler.running
