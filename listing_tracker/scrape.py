# listing_tracker/scrape.py
import re
import time
from contextlib import contextmanager
from typing import Callable, ContextManager, List

from playwright.sync_api import sync_playwright, Error as PlaywrightError

from .config import ScrapeConfig
from .errors import NoListingsFound, ScrapeError
from .extract import cards_from_html, extract_listings
from .schemas import Listing
from .utils import logger, retry

BOT_MARKERS_RE = re.compile(r"captcha|unusual traffic|verify you are human", re.I)
SNIPPET_CHARS = 500

RETRYABLE = (PlaywrightError, NoListingsFound)


class PlaywrightSession:
    """Thin rendering-session wrapper around a Playwright page."""

    def __init__(self, page, config: ScrapeConfig):
        self.page = page
        self.config = config

    def goto(self, url):
        self.page.goto(url, wait_until=self.config.wait_until, timeout=self.config.timeout * 1000)

    def content(self):
        return self.page.content()

    def scroll_height(self):
        return self.page.evaluate("document.documentElement.scrollHeight")

    def scroll_by(self, distance):
        self.page.evaluate("(d) => window.scrollBy(0, d)", distance)


@contextmanager
def open_playwright_session(config: ScrapeConfig):
    """Launch an isolated headless Chromium; the browser is closed on exit."""
    with sync_playwright() as p:
        browser = p.chromium.launch(
            headless=config.headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        try:
            context = browser.new_context(user_agent=config.user_agent)
            page = context.new_page()
            yield PlaywrightSession(page, config)
        finally:
            browser.close()


def _giving_up(last_error, attempts):
    return ScrapeError(f"Scraping failed after {attempts} attempts: {last_error}", attempts=attempts)


class ListingScraper:
    """Render a search page and extract its listings, retrying on failure."""

    def __init__(
        self,
        config: ScrapeConfig = ScrapeConfig(),
        session_factory: Callable[[ScrapeConfig], ContextManager] = open_playwright_session,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.session_factory = session_factory
        self.sleep = sleep

    def scrape(self, url: str) -> List[Listing]:
        """Return the deduplicated listings on `url` or raise `ScrapeError`."""
        attempt = retry(
            RETRYABLE,
            tries=self.config.retry_ceiling,
            delay=self.config.retry_delay,
            backoff=1,
            sleep=self.sleep,
            giving_up=_giving_up,
        )(self.scrape_once)
        return attempt(url)

    def scrape_once(self, url: str) -> List[Listing]:
        with self.session_factory(self.config) as session:
            try:
                logger.info("Loading %s", url)
                session.goto(url)
                self._check_bot_markers(session.content(), url)
                self._auto_scroll(session)
                self.sleep(self.config.settle_delay)
                html = session.content()
            except Exception as e:
                self._log_failed_page(session, e)
                raise
        listings = extract_listings(cards_from_html(html, self.config.selectors), self.config.selectors, base_url=url)
        if not listings:
            raise NoListingsFound(f"No listings found on {url}")
        logger.info("Extracted %d listings from %s", len(listings), url)
        return listings

    def _auto_scroll(self, session):
        # height is re-measured every step so lazily loaded cards extend the loop
        scrolled = 0
        for _ in range(self.config.max_scroll_steps):
            if scrolled >= session.scroll_height():
                return
            session.scroll_by(self.config.scroll_step)
            scrolled += self.config.scroll_step
            self.sleep(self.config.scroll_pause)
        logger.warning("Stopped scrolling after %d steps", self.config.max_scroll_steps)

    def _check_bot_markers(self, content, url):
        if content and BOT_MARKERS_RE.search(content):
            logger.warning("Possible bot detection on %s: %s", url, content[:SNIPPET_CHARS])

    def _log_failed_page(self, session, error):
        logger.error("Scraping error: %s", error)
        try:
            logger.debug("Failed page content snippet: %s", session.content()[:SNIPPET_CHARS])
        except Exception as e:
            logger.debug("Could not retrieve failed page content: %s", e)
