"""
Scheduler driver for the notification jobs.

One NotificationScheduler per process, created and started explicitly at
process init. Nothing is scheduled at import time, so re-importing this
module never registers duplicate jobs.
"""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from due_date_job import deliver_due_notifications, purge_old_notifications, scan_due_tasks
from mailer import email_configured

logger = logging.getLogger(__name__)

SCAN_JOB_ID = 'due-date-scan'
DELIVERY_JOB_ID = 'notification-delivery'
RETENTION_JOB_ID = 'notification-retention'


class NotificationScheduler:
    def __init__(self, app, scheduler=None):
        self.app = app
        self.scheduler = scheduler or BackgroundScheduler(timezone='UTC')
        self.jobs = []

    @property
    def running(self):
        return self.scheduler.running

    def _in_app_context(self, func):
        def run():
            with self.app.app_context():
                func()
        run.__name__ = func.__name__
        return run

    def _register(self, job_id, func, crontab, **options):
        job = self.scheduler.add_job(
            self._in_app_context(func),
            CronTrigger.from_crontab(crontab, timezone='UTC'),
            id=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            **options,
        )
        self.jobs.append(job)
        logger.info("Registered job %s (%s)", job_id, crontab)
        return job

    def start(self, run_now=True):
        """Register the jobs and start the scheduler. A second call is a no-op."""
        if self.running:
            logger.warning("Notification scheduler already running")
            return

        config = self.app.config
        # startup scan is the cron job's first run and shares its max_instances limit
        scan_options = {'next_run_time': datetime.now(timezone.utc)} if run_now else {}
        self._register(SCAN_JOB_ID, scan_due_tasks, config['DUE_DATE_SCAN_CRON'], **scan_options)
        with self.app.app_context():
            can_email = email_configured()
        if can_email:
            self._register(DELIVERY_JOB_ID, deliver_due_notifications, config['DELIVERY_CRON'])
        else:
            logger.info("Email not configured; notification delivery job disabled")
        self._register(RETENTION_JOB_ID, purge_old_notifications, config['RETENTION_CRON'])

        self.scheduler.start()
        logger.info("Notification scheduler started with %d jobs", len(self.jobs))

    def shutdown(self, wait=False):
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        self.jobs = []
        logger.info("Notification scheduler stopped")
