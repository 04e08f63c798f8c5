# listing_tracker/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from .errors import JobStoreError
from .utils import logger


def start_scheduler(runner, interval):
    """Run a sweep every `interval` (a timedelta) in a background thread."""
    def sweep():
        try:
            runner.run_sweep()
        except JobStoreError as e:
            logger.error("Scheduled sweep aborted: %s", e)

    scheduler = BackgroundScheduler()
    # one sweep at a time, missed runs collapse into one
    scheduler.add_job(sweep, 'interval', seconds=interval.total_seconds(), id="sweep",
                      max_instances=1, coalesce=True)
    scheduler.start()
    logger.info("Scheduler started, sweeping every %s", interval)
    return scheduler
