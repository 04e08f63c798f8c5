"""Run one sweep over all active jobs, or a one-off scrape of a single URL.

    python run_jobs.py                                  # sweep the job store
    python run_jobs.py --url <search URL> --sheet <sheet URL> [--replace]

Exits non-zero only when the job store cannot be read (sweep) or the one-off
run fails.
"""
import argparse
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

from listing_tracker.config import Settings  # noqa: E402
from listing_tracker.errors import JobStoreError  # noqa: E402
from listing_tracker.scrape import ListingScraper  # noqa: E402
from listing_tracker.services import build_runner  # noqa: E402
from listing_tracker.sheets import GoogleSheetsClient, SheetSynchronizer, SyncMode  # noqa: E402
from listing_tracker.utils import logger  # noqa: E402


def run_single(settings, url, sheet_ref, mode):
    listings = ListingScraper(settings.scrape).scrape(url)
    logger.info("Found %d listings, checking for duplicates", len(listings))
    synchronizer = SheetSynchronizer(GoogleSheetsClient(settings.sheets), settings.sheets)
    result = synchronizer.sync(sheet_ref, listings, mode)
    logger.info("Spreadsheet URL: %s (%d new listings)", result.spreadsheet_url, result.new_count)
    return result


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--url", help="listing search URL for a one-off run")
    parser.add_argument("--sheet", help="spreadsheet URL or id; a new one is created when omitted")
    parser.add_argument("--replace", action="store_true",
                        help="clear and rewrite the sheet; only for sheets never append-synced")
    args = parser.parse_args(argv)
    settings = Settings.from_env()

    if args.url:
        mode = SyncMode.FULL_REPLACE if args.replace else SyncMode.APPEND_ONLY
        try:
            run_single(settings, args.url, args.sheet, mode)
        except Exception as e:
            logger.exception("Scraping failed completely: %s", e)
            return 1
        return 0

    logger.info("Starting job processor")
    try:
        report = build_runner(settings).run_sweep()
    except JobStoreError as e:
        logger.error("%s", e)
        return 1
    logger.info("Job processor completed: %d job(s), %d failed", len(report.outcomes), len(report.failed))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
