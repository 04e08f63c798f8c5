# listing_tracker/main.py
"""Read-only job status API, with an optional in-process sweep scheduler."""
from fastapi import FastAPI
from listing_tracker.api.routes import router as api_router
from listing_tracker.config import Settings
from listing_tracker.db import Base, get_engine
from listing_tracker.scheduler import start_scheduler
from listing_tracker.services import build_runner
from listing_tracker.utils import logger
import listing_tracker.models  # noqa: F401 ensure models are imported so tables are known


def create_app(settings: Settings = None, runner_factory=None):
    settings = settings or Settings.from_env()
    app = FastAPI(title="listing-tracker")
    app.state.settings = settings
    app.state.runner_factory = runner_factory or (lambda: build_runner(settings))
    app.state.scheduler = None
    app.include_router(api_router)

    @app.on_event("startup")
    def on_startup():
        # Ensure the jobs table exists
        try:
            Base.metadata.create_all(bind=get_engine())
        except Exception as e:
            logger.warning("Could not create tables: %s", e)
        if settings.scheduler_enabled:
            app.state.scheduler = start_scheduler(app.state.runner_factory(), settings.jobs.reschedule_interval)

    @app.on_event("shutdown")
    def on_shutdown():
        if app.state.scheduler is not None:
            app.state.scheduler.shutdown(wait=False)

    return app


app = create_app()
