"""
errors.py
---------
Failure taxonomy for the scrape pipeline.

The leaf helpers (fetcher, parser, cleaner, persistence) raise these; the
orchestrator in scraper.py catches every ScrapeError and turns it into a
plain result dict, so nothing below the job layer leaks an exception to its
caller.
"""


class ScrapeError(Exception):
    """Base class for every expected scrape failure."""

    kind = "ScrapeError"


class TransportError(ScrapeError):
    """DNS, connect, timeout or non-2xx response."""

    kind = "TransportError"


class ExtractionError(ScrapeError):
    """The expected HTML structure is missing."""

    kind = "ExtractionError"


class InvalidRate(ScrapeError):
    kind = "InvalidRate"


class InvalidDate(ScrapeError):
    kind = "InvalidDate"


class PersistenceError(ScrapeError):
    """The store write failed after a successful scrape.

    ``scraped_data`` holds the validated payload so the caller can retry just
    the save instead of scraping again.
    """

    kind = "PersistenceError"

    def __init__(self, message: str, scraped_data: dict | None = None):
        super().__init__(message)
        self.scraped_data = scraped_data


class JobFailedError(Exception):
    """Raised by ScrapingJob.handle() so the execution wrapper retries the job."""

    def __init__(self, message: str, attempts: int = 0, final: bool = False):
        super().__init__(message)
        self.attempts = attempts
        self.final = final
