import logging
import threading

import schedule

from ridesync.tasks.sync_tasks import run_scheduled_sync, run_sync_request_check

log = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler for running periodic synchronization passes."""

    def __init__(self, container, interval_minutes=30, poll_seconds=1, heartbeat_minutes=5):
        self.container = container
        self.interval_minutes = interval_minutes
        self.heartbeat_minutes = heartbeat_minutes
        self.poll_seconds = poll_seconds
        self.stop_event = threading.Event()
        self.thread = None
        self.jobs = schedule.Scheduler()

    def start(self):
        """Start the scheduler thread."""
        if self.thread is not None and self.thread.is_alive():
            log.warning("Scheduler is already running")
            return

        self.jobs.clear()
        self.jobs.every(self.interval_minutes).minutes.do(self._run_sync)
        if self.heartbeat_minutes:
            self.jobs.every(self.heartbeat_minutes).minutes.do(self._run_heartbeat)

        self.stop_event.clear()
        self.thread = threading.Thread(target=self._run, name='sync-scheduler')
        self.thread.daemon = True
        self.thread.start()
        log.info(f"Scheduler started, syncing every {self.interval_minutes} minutes")

    def stop(self):
        """Stop the scheduler thread."""
        if self.thread is None or not self.thread.is_alive():
            return

        log.info("Stopping scheduler...")
        self.stop_event.set()
        self.thread.join(timeout=5)
        self.jobs.clear()
        log.info("Scheduler stopped")

    def _run(self):
        """Main scheduler loop."""
        while not self.stop_event.is_set():
            self.jobs.run_pending()
            self.stop_event.wait(self.poll_seconds)

    def _run_heartbeat(self):
        """Run the dashboard sync-request check."""
        try:
            if run_sync_request_check(self.container):
                log.info("Sync requested from the dashboard completed")
        except Exception as e:
            log.error(f"Error in heartbeat job: {str(e)}")

    def _run_sync(self):
        """Run the scheduled sync job."""
        log.info("Running scheduled sync")
        try:
            decision, summary = run_scheduled_sync(self.container)
            if summary is not None:
                log.info(f"Scheduled sync complete: {summary.synced} synced, {summary.failed} failed")
        except Exception as e:
            log.error(f"Error in scheduled sync job: {str(e)}")


def init_scheduler(app, container):
    """Start the periodic sync scheduler unless disabled."""
    if app.config.get('TESTING') or not app.config.get('SCHEDULER_ENABLED', True):
        log.info("Scheduler disabled")
        return None

    scheduler = SyncScheduler(
        container,
        interval_minutes=app.config.get('SYNC_INTERVAL_MINUTES', 30),
        heartbeat_minutes=app.config.get('HEARTBEAT_INTERVAL_MINUTES', 5),
    )
    try:
        scheduler.start()
    except Exception as e:
        log.error(f"Failed to start scheduler: {str(e)}")
        return None
    app.extensions['ridesync_scheduler'] = scheduler
    return scheduler


def shutdown_scheduler(app):
    """Shutdown the scheduler."""
    scheduler = app.extensions.get('ridesync_scheduler')
    if scheduler is None:
        return
    try:
        scheduler.stop()
    except Exception as e:
        log.error(f"Error shutting down scheduler: {str(e)}")
