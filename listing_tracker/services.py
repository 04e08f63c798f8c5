# listing_tracker/services.py
"""Job lifecycle: one sweep over every active job.

Per job the phases run strictly in order: mark running, scrape, sync, mark
success or failed, notify. A failing job is recorded and the sweep moves on;
only an unreadable job store aborts the sweep.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import crud
from .config import JobConfig, Settings
from .db import SessionLocal, make_engine
from .errors import JobStoreError
from .models import JobStatus
from .notify import NotificationDispatcher, SmtpEmailSender
from .scrape import ListingScraper
from .sheets import GoogleSheetsClient, SheetSynchronizer, SyncMode
from .utils import logger


def utcnow():
    return datetime.now(timezone.utc)


@dataclass
class JobOutcome:
    job_id: str
    status: JobStatus
    new_count: int = 0
    scraped_count: int = 0
    spreadsheet_url: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    next_run: Optional[datetime] = None


@dataclass(frozen=True)
class JobSnapshot:
    """Plain copy of the fields a run reads, taken before any commit expires the row."""
    id: str
    source_url: str
    sheet_ref: Optional[str]
    sync_mode: Optional[str]
    owner_email: Optional[str]

    @classmethod
    def from_row(cls, job):
        return cls(job.id, job.source_url, job.sheet_ref, job.sync_mode, job.owner_email)


@dataclass
class SweepReport:
    outcomes: List[JobOutcome] = field(default_factory=list)

    @property
    def succeeded(self):
        return [o for o in self.outcomes if o.status == JobStatus.SUCCESS]

    @property
    def failed(self):
        return [o for o in self.outcomes if o.status == JobStatus.FAILED]


class JobRunner:
    def __init__(
        self,
        session_factory: Callable,
        scraper: ListingScraper,
        synchronizer: SheetSynchronizer,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: JobConfig = JobConfig(),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.scraper = scraper
        self.synchronizer = synchronizer
        self.dispatcher = dispatcher
        self.config = config
        self.clock = clock

    def run_sweep(self) -> SweepReport:
        report = SweepReport()
        try:
            db = self.session_factory()
        except (RuntimeError, SQLAlchemyError) as e:
            # db.get_engine() raises RuntimeError when no database is configured
            raise JobStoreError(f"Job store unavailable: {e}") from e
        try:
            try:
                jobs = [JobSnapshot.from_row(job) for job in crud.get_active_jobs(db)]
            except SQLAlchemyError as e:
                raise JobStoreError(f"Failed to fetch jobs from database: {e}") from e
            if not jobs:
                logger.info("No active jobs found")
                return report
            logger.info("Found %d active job(s) to process", len(jobs))
            for job in jobs:
                try:
                    outcome = self.run_job(db, job)
                except SQLAlchemyError as e:
                    logger.exception("Job %s aborted by a job store error: %s", job.id[:8], e)
                    db.rollback()
                    outcome = JobOutcome(job_id=job.id, status=JobStatus.FAILED, error=str(e))
                report.outcomes.append(outcome)
        finally:
            db.close()
        logger.info(
            "Sweep completed: %d succeeded, %d failed",
            len(report.succeeded), len(report.failed),
        )
        return report

    def run_job(self, db, job) -> JobOutcome:
        job_id = job.id
        started = self.clock()
        outcome = JobOutcome(job_id=job_id, status=JobStatus.RUNNING, started_at=started)
        logger.info("Processing job %s: %s -> %s", job_id[:8], job.source_url, job.sheet_ref or "(new sheet)")

        if not self._persist(db, job_id, {"status": JobStatus.RUNNING.value}):
            outcome.status = JobStatus.FAILED
            outcome.error = "could not mark job as running"
            self._notify(job, outcome)
            return outcome

        try:
            mode = SyncMode(job.sync_mode or SyncMode.APPEND_ONLY.value)
            listings = self.scraper.scrape(job.source_url)
            outcome.scraped_count = len(listings)
            logger.info("Found %d listings for job %s, checking for duplicates", len(listings), job_id[:8])
            result = self.synchronizer.sync(job.sheet_ref, listings, mode)
        except Exception as e:
            logger.exception("Job %s failed: %s", job_id[:8], e)
            outcome.status = JobStatus.FAILED
            outcome.error = str(e)
            self._persist(db, job_id, {"status": JobStatus.FAILED.value})
            self._notify(job, outcome)
            return outcome

        outcome.status = JobStatus.SUCCESS
        outcome.new_count = result.new_count
        outcome.spreadsheet_url = result.spreadsheet_url
        outcome.next_run = started + self.config.reschedule_interval
        updates = {
            "status": JobStatus.SUCCESS.value,
            "last_run": self.clock(),
            "next_run": outcome.next_run,
        }
        if result.created:
            updates["sheet_ref"] = result.spreadsheet_url
        self._persist(db, job_id, updates)
        logger.info(
            "Job %s completed: %d new listings, next run %s",
            job_id[:8], result.new_count, outcome.next_run.isoformat(),
        )
        self._notify(job, outcome)
        return outcome

    def _persist(self, db, job_id, updates):
        try:
            if crud.update_job(db, job_id, updates) is None:
                logger.warning("Job %s no longer exists, dropped update of %s", job_id[:8], sorted(updates))
                return False
            return True
        except SQLAlchemyError as e:
            logger.error("Could not update job %s with %s: %s", job_id[:8], sorted(updates), e)
            return False

    def _notify(self, job, outcome):
        if self.dispatcher is not None:
            self.dispatcher.dispatch(job, outcome)


def build_runner(settings: Settings) -> JobRunner:
    """Wire the production collaborators from `settings`."""
    if settings.database_url:
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=make_engine(settings.database_url))
    else:
        session_factory = SessionLocal
    dispatcher = None
    if settings.email.enabled:
        dispatcher = NotificationDispatcher(SmtpEmailSender(settings.email))
    else:
        logger.info("Email credentials not set, notifications disabled")
    return JobRunner(
        session_factory=session_factory,
        scraper=ListingScraper(settings.scrape),
        synchronizer=SheetSynchronizer(GoogleSheetsClient(settings.sheets), settings.sheets),
        dispatcher=dispatcher,
        config=settings.jobs,
    )
