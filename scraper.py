"""
scraper.py
----------
One BCV scrape = fetch -> extract -> validate, retried as a whole.

Every ScrapeError raised by the fetcher, the extractor or the date/rate
parsers is caught here and folded into a result dict; callers branch on
result["success"] and never see an exception from this module.

Success:  {"success": True,  "data": {...}, "attempts": n}
Failure:  {"success": False, "error": "...", "error_type": "...", "attempts": n}
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from errors import PersistenceError, ScrapeError
from fetcher import BCV_URL, fetch_html, make_session
from logger import get_logger
from parser import extract_raw_debug, make_soup, read_rate, read_value_date

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BcvScraper:

    def __init__(
        self,
        config: dict,
        session=None,
        fetch: Optional[Callable[[str], str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.url          = config.get("url") or BCV_URL
        self.timeout      = config.get("timeout", 30)
        self.delay        = config.get("delay", 2)
        self.max_attempts = config.get("max_attempts", 3)
        self._sleep       = sleep
        self._clock       = clock
        self._monotonic   = monotonic

        if fetch is None:
            session = session or make_session(
                config.get("user_agent"), config.get("verify_tls", False)
            )
            fetch = lambda url: fetch_html(session, url, self.timeout)  # noqa: E731
        self._fetch = fetch

    def _attempt(self) -> dict:
        html = self._fetch(self.url)
        soup = make_soup(html)

        rate       = read_rate(soup)
        value_date = read_value_date(soup)
        scraped_at = self._clock()

        return {
            "usd_rate":   rate,
            "value_date": value_date,
            "scraped_at": scraped_at,
            "source_url": self.url,
            "raw_data":   extract_raw_debug(soup, scraped_at),
        }

    def scrape_once(self) -> dict:
        return self.scrape_with_retries(max_attempts=1)

    def scrape_with_retries(
        self,
        max_attempts: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> dict:
        """
        Run up to max_attempts full attempts, sleeping delay_seconds between them.

        deadline is a time.monotonic() value; once it has passed no new attempt
        is started. The first attempt always runs.
        """
        max_attempts  = self.max_attempts if max_attempts is None else max_attempts
        delay_seconds = self.delay if delay_seconds is None else delay_seconds

        attempt  = 0
        last_exc: Optional[ScrapeError] = None

        while attempt < max_attempts:
            attempt += 1
            log.info("BCV scraping attempt %d/%d", attempt, max_attempts)
            try:
                data = self._attempt()
            except ScrapeError as exc:
                last_exc = exc
                log.warning("BCV scraping attempt %d failed (%s): %s", attempt, exc.kind, exc)
            else:
                log.info(
                    "BCV scraping successful: rate=%s value_date=%s",
                    data["usd_rate"], data["value_date"].isoformat(),
                )
                return {"success": True, "data": data, "attempts": attempt}

            if attempt >= max_attempts:
                break
            if deadline is not None and self._monotonic() + delay_seconds >= deadline:
                log.warning("Handler time budget exhausted after %d attempt(s)", attempt)
                break
            self._sleep(delay_seconds)

        log.error(
            "BCV scraping failed after %d attempt(s): %s", attempt, last_exc or "unknown error"
        )
        return {
            "success":    False,
            "error":      str(last_exc) if last_exc else "Unknown error",
            "error_type": last_exc.kind if last_exc else "ScrapeError",
            "attempts":   attempt,
        }

    def save(self, store, data: dict) -> dict:
        """Persist an already validated payload; usable to retry just the save step."""
        try:
            record_id = store.save(
                rate=data["usd_rate"],
                value_date=data["value_date"],
                scraped_at=data["scraped_at"],
                source_url=data["source_url"],
                raw_data=data.get("raw_data"),
            )
        except PersistenceError as exc:
            log.error("Error saving scraped data: %s", exc)
            return {
                "success":      False,
                "error":        f"Error saving data: {exc}",
                "error_type":   exc.kind,
                "scraped_data": data,
            }

        return {
            "success": True,
            "message": "Scraping done and data saved",
            "data": {
                "id":         record_id,
                "usd_rate":   str(data["usd_rate"]),
                "value_date": data["value_date"].isoformat(),
                "scraped_at": data["scraped_at"].isoformat(),
            },
        }

    def scrape_and_save(self, store, deadline: Optional[float] = None) -> dict:
        result = self.scrape_with_retries(deadline=deadline)
        if not result["success"]:
            return result

        saved = self.save(store, result["data"])
        saved["attempts"] = result["attempts"]
        return saved
