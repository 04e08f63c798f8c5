# listing_tracker/config.py
"""Configuration structures for the ingestion pipeline.

Every component receives its section at construction time; nothing reads
module-level globals at run time. `Settings.from_env()` builds the whole tree
from environment variables (a `.env` file is loaded first).

Recognized scrape options: timeout, retry_ceiling, retry_delay, user_agent,
wait_until, settle_delay, scroll_step, scroll_pause, max_scroll_steps,
headless. The job runner recognizes reschedule_interval.
"""
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class CardSelectors:
    cards: str = ".bp-Homecard, .bp-InteractiveHomecard"
    price: str = ".bp-Homecard__Price--value"
    address: str = ".bp-Homecard__Address"
    beds: str = ".bp-Homecard__Stats--beds"
    baths: str = ".bp-Homecard__Stats--baths"
    sqft: str = ".bp-Homecard__Stats--sqft"
    status: str = ".bp-Homecard__Sash"
    neighborhood: str = ".neighborhood, .bp-Homecard__Neighborhood"


@dataclass(frozen=True)
class ScrapeConfig:
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 20.0  # seconds, per navigation
    wait_until: str = "domcontentloaded"
    retry_ceiling: int = 3
    retry_delay: float = 5.0
    settle_delay: float = 2.0
    scroll_step: int = 100
    scroll_pause: float = 0.1
    max_scroll_steps: int = 500
    headless: bool = True
    selectors: CardSelectors = field(default_factory=CardSelectors)


@dataclass(frozen=True)
class SheetConfig:
    spreadsheet_title: str = "Redfin Property Listings"
    sheet_name: str = "Sheet1"
    sheet_id: int = 0
    service_account_email: Optional[str] = None
    private_key: Optional[str] = None
    service_account_file: Optional[str] = None


@dataclass(frozen=True)
class JobConfig:
    reschedule_interval: timedelta = timedelta(minutes=30)


@dataclass(frozen=True)
class EmailConfig:
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None

    @property
    def enabled(self):
        return bool(self.user and self.password)


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)
    sheets: SheetConfig = field(default_factory=SheetConfig)
    jobs: JobConfig = field(default_factory=JobConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    scheduler_enabled: bool = False

    @classmethod
    def from_env(cls):
        def flag(name, default):
            return os.getenv(name, default).lower() in ("1", "true", "yes")

        scrape = ScrapeConfig(
            user_agent=os.getenv("SCRAPE_USER_AGENT", DEFAULT_USER_AGENT),
            timeout=float(os.getenv("SCRAPE_TIMEOUT", "20")),
            retry_ceiling=int(os.getenv("SCRAPE_RETRIES", "3")),
            retry_delay=float(os.getenv("SCRAPE_RETRY_DELAY", "5")),
            headless=flag("HEADLESS", "1"),
        )
        sheets = SheetConfig(
            spreadsheet_title=os.getenv("SPREADSHEET_TITLE", SheetConfig.spreadsheet_title),
            service_account_email=os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL"),
            private_key=os.getenv("GOOGLE_PRIVATE_KEY"),
            service_account_file=os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE"),
        )
        jobs = JobConfig(
            reschedule_interval=timedelta(minutes=int(os.getenv("RESCHEDULE_MINUTES", "30"))),
        )
        email = EmailConfig(
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            user=os.getenv("EMAIL_USER"),
            password=os.getenv("EMAIL_APP_PASSWORD"),
        )
        return cls(
            database_url=os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL"),
            scrape=scrape,
            sheets=sheets,
            jobs=jobs,
            email=email,
            scheduler_enabled=flag("SCHEDULER_ENABLED", "0"),
        )
