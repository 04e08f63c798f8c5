# tests/test_services.py
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from conftest import FakeSheetsClient, make_listing
from listing_tracker.config import JobConfig
from listing_tracker.errors import JobStoreError, ScrapeError
from listing_tracker.models import Job, JobStatus
from listing_tracker.services import JobRunner
from listing_tracker.sheets import HEADERS, SheetSynchronizer, SyncResult

START = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
CREATED = datetime(2026, 10, 1, 9, 0)
SHEET = "https://docs.google.com/spreadsheets/d/1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789/edit"


def naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


class Clock:
    def __init__(self, start=START, step=timedelta(minutes=1)):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


class FakeScraper:
    def __init__(self, results, on_scrape=None):
        self.results = results
        self.on_scrape = on_scrape
        self.calls = []

    def scrape(self, url):
        self.calls.append(url)
        if self.on_scrape:
            self.on_scrape(url)
        result = self.results[url]
        if isinstance(result, Exception):
            raise result
        return result


class FakeSynchronizer:
    def __init__(self, new_count=1, error=None):
        self.new_count = new_count
        self.error = error
        self.calls = []

    def sync(self, sheet_ref, listings, mode):
        self.calls.append((sheet_ref, [l.listing_id for l in listings], mode))
        if self.error:
            raise self.error
        return SyncResult("sheet", SHEET, self.new_count)


class FakeDispatcher:
    def __init__(self):
        self.calls = []

    def dispatch(self, job, outcome):
        self.calls.append((job.id, outcome.status, outcome.new_count, outcome.error))


def add_jobs(db, n=3, **kw):
    for i in range(1, n + 1):
        db.add(Job(
            id=f"job-{i}",
            source_url=f"https://www.redfin.com/city/{i}",
            sheet_ref=SHEET,
            owner_email=f"owner{i}@example.com",
            created_at=CREATED,
            **kw,
        ))
    db.commit()


def results_for(n=3, **overrides):
    results = {f"https://www.redfin.com/city/{i}": [make_listing(f"{i}00")] for i in range(1, n + 1)}
    results.update(overrides)
    return results


def statuses(session_factory):
    s = session_factory()
    try:
        return {j.id: j for j in s.query(Job).order_by(Job.id)}
    finally:
        s.close()


def test_one_failing_job_does_not_stop_the_sweep(db, session_factory):
    add_jobs(db)
    scraper = FakeScraper(results_for(**{
        "https://www.redfin.com/city/2": ScrapeError("Scraping failed after 3 attempts: Timeout"),
    }))
    dispatcher = FakeDispatcher()
    runner = JobRunner(session_factory, scraper, FakeSynchronizer(), dispatcher, clock=Clock())

    report = runner.run_sweep()

    assert [o.status for o in report.outcomes] == [JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.SUCCESS]
    assert len(scraper.calls) == 3
    jobs = statuses(session_factory)
    assert jobs["job-1"].status == "success"
    assert jobs["job-2"].status == "failed"
    assert jobs["job-3"].status == "success"
    assert jobs["job-2"].last_run is None and jobs["job-2"].next_run is None
    assert report.failed[0].error.startswith("Scraping failed after 3 attempts")
    assert [c[:2] for c in dispatcher.calls] == [
        ("job-1", JobStatus.SUCCESS), ("job-2", JobStatus.FAILED), ("job-3", JobStatus.SUCCESS),
    ]


def test_success_schedules_next_run_from_start(db, session_factory):
    add_jobs(db, n=1)
    clock = Clock(step=timedelta(minutes=7))
    runner = JobRunner(session_factory, FakeScraper(results_for(1)), FakeSynchronizer(new_count=4),
                       clock=clock, config=JobConfig(reschedule_interval=timedelta(minutes=30)))

    (outcome,) = runner.run_sweep().outcomes

    job = statuses(session_factory)["job-1"]
    assert naive(job.next_run) == naive(START + timedelta(minutes=30))
    assert naive(job.last_run) == naive(START + timedelta(minutes=7))
    assert outcome.new_count == 4
    assert outcome.next_run == START + timedelta(minutes=30)


def test_running_is_persisted_before_scraping(db, session_factory):
    add_jobs(db, n=1)
    seen = []
    scraper = FakeScraper(results_for(1), on_scrape=lambda url: seen.append(statuses(session_factory)["job-1"].status))
    JobRunner(session_factory, scraper, FakeSynchronizer(), clock=Clock()).run_sweep()
    assert seen == ["running"]


def test_sync_failure_marks_job_failed(db, session_factory):
    add_jobs(db, n=2)
    sync = FakeSynchronizer(error=RuntimeError("403 The caller does not have permission"))
    report = JobRunner(session_factory, FakeScraper(results_for(2)), sync, clock=Clock()).run_sweep()
    assert len(report.failed) == 2
    assert all(j.status == "failed" for j in statuses(session_factory).values())


def test_inactive_jobs_are_skipped(db, session_factory):
    add_jobs(db, n=2)
    db.get(Job, "job-2").active = False
    db.commit()
    scraper = FakeScraper(results_for(2))
    report = JobRunner(session_factory, scraper, FakeSynchronizer(), clock=Clock()).run_sweep()
    assert [o.job_id for o in report.outcomes] == ["job-1"]
    assert statuses(session_factory)["job-2"].status == "idle"


def test_sync_mode_is_taken_from_the_job(db, session_factory):
    add_jobs(db, n=1, sync_mode="replace")
    sync = FakeSynchronizer()
    JobRunner(session_factory, FakeScraper(results_for(1)), sync, clock=Clock()).run_sweep()
    assert sync.calls[0][2].value == "replace"


def test_unknown_sync_mode_fails_the_job(db, session_factory):
    add_jobs(db, n=1, sync_mode="merge")
    scraper = FakeScraper(results_for(1))
    report = JobRunner(session_factory, scraper, FakeSynchronizer(), clock=Clock()).run_sweep()
    assert report.outcomes[0].status == JobStatus.FAILED
    assert scraper.calls == []


def test_created_spreadsheet_is_saved_on_the_job(db, session_factory):
    add_jobs(db, n=1)
    db.get(Job, "job-1").sheet_ref = None
    db.commit()
    client = FakeSheetsClient()
    runner = JobRunner(session_factory, FakeScraper(results_for(1)), SheetSynchronizer(client), clock=Clock())

    runner.run_sweep()
    job = statuses(session_factory)["job-1"]
    sheet_id = job.sheet_ref.rsplit("/", 1)[-1]
    assert client.sheets[sheet_id][0] == HEADERS

    # the next run appends to the same sheet instead of creating another
    runner.run_sweep()
    assert client.created == 1


def test_rerun_against_unchanged_page_adds_nothing(db, session_factory):
    add_jobs(db, n=1)
    sheet_id = SHEET.split("/d/")[1].split("/")[0]
    client = FakeSheetsClient({sheet_id: [list(HEADERS)]})
    runner = JobRunner(session_factory, FakeScraper(results_for(1)), SheetSynchronizer(client), clock=Clock())
    first = runner.run_sweep().outcomes[0]
    second = runner.run_sweep().outcomes[0]
    assert (first.new_count, second.new_count) == (1, 0)
    assert len(client.sheets[sheet_id]) == 2


def test_unreadable_job_store_aborts_sweep():
    engine = create_engine("sqlite://", poolclass=StaticPool)  # no tables
    runner = JobRunner(sessionmaker(bind=engine), FakeScraper({}), FakeSynchronizer())
    with pytest.raises(JobStoreError):
        runner.run_sweep()


def test_missing_database_configuration_is_a_job_store_error():
    def no_db():
        raise RuntimeError("DATABASE_URL not set")

    with pytest.raises(JobStoreError):
        JobRunner(no_db, FakeScraper({}), FakeSynchronizer()).run_sweep()


def test_job_deleted_mid_sweep_does_not_stop_the_rest(db, session_factory):
    add_jobs(db)

    def delete_job_2(url):
        if url.endswith("/1"):
            other = session_factory()
            try:
                other.delete(other.get(Job, "job-2"))
                other.commit()
            finally:
                other.close()

    scraper = FakeScraper(results_for(), on_scrape=delete_job_2)
    report = JobRunner(session_factory, scraper, FakeSynchronizer(), clock=Clock()).run_sweep()

    assert [(o.job_id, o.status) for o in report.outcomes] == [
        ("job-1", JobStatus.SUCCESS), ("job-2", JobStatus.FAILED), ("job-3", JobStatus.SUCCESS),
    ]
    assert "https://www.redfin.com/city/2" not in scraper.calls
    jobs = statuses(session_factory)
    assert "job-2" not in jobs
    assert jobs["job-3"].status == "success"
