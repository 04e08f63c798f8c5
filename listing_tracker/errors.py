# listing_tracker/errors.py
"""Exception types raised by the ingestion pipeline."""


class ListingTrackerError(Exception):
    pass


class ConfigurationError(ListingTrackerError):
    """A required setting or credential is missing."""


class NoListingsFound(ListingTrackerError):
    """The page rendered but no listing cards could be extracted."""


class ScrapeError(ListingTrackerError):
    """Scraping failed on every attempt."""

    def __init__(self, message, attempts=None):
        super().__init__(message)
        self.attempts = attempts


class SheetSyncError(ListingTrackerError):
    pass


class JobStoreError(ListingTrackerError):
    """The job store could not be read."""
