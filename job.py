"""
job.py
------
Lifecycle of one scraping execution.

  JobStateTracker  status entry (30 min TTL) + rolling last-success /
                   last-failure summaries (1 day TTL) in a shared cache
  ExecutionLock    named, time-boxed lock (10 min) around the scrape body
  ScrapingJob      one handler invocation: guards, scrape, state transitions
  run_job          execution wrapper: re-invokes the handler with backoff
                   until it succeeds, `tries` is reached or the retry window
                   (1 h after the first attempt) closes, then calls failed()

States: idle (no entry) -> running -> completed
                                   -> retrying -> running ...
                                   -> failed
                                   -> error
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import logger as _logger_mod
from errors import JobFailedError
from logger import get_logger

log = get_logger(__name__)

STATUS_KEY  = "bcv_scraping_job_status"
SUCCESS_KEY = "bcv_last_job_success"
FAILURE_KEY = "bcv_last_job_failure"
LOCK_KEY    = "bcv_scraping_lock"

STATUS_TTL      = 30 * 60
SUMMARY_TTL     = 24 * 60 * 60
LOCK_TTL        = 10 * 60
HANDLER_TIMEOUT = 5 * 60
RETRY_WINDOW    = 60 * 60
RECENT_WINDOW   = timedelta(hours=1)

BACKOFF_SCHEDULE = (60, 120, 240)
ACTIVE_STATUSES  = ("running", "retrying")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backoff_delay(attempt: int) -> int:
    """Seconds to wait after the given 1-based failed attempt."""
    if 1 <= attempt <= len(BACKOFF_SCHEDULE):
        return BACKOFF_SCHEDULE[attempt - 1]
    return BACKOFF_SCHEDULE[0]


class JobStateTracker:

    def __init__(
        self,
        cache,
        clock: Callable[[], datetime] = _utcnow,
        status_ttl: int = STATUS_TTL,
        summary_ttl: int = SUMMARY_TTL,
    ):
        self.cache       = cache
        self.status_ttl  = status_ttl
        self.summary_ttl = summary_ttl
        self._clock      = clock

    def current(self) -> Optional[dict]:
        return self.cache.get(STATUS_KEY)

    def is_active(self) -> bool:
        status = self.current()
        return bool(status) and status.get("status") in ACTIVE_STATUSES

    def update(
        self,
        status: str,
        job_id: str,
        attempt: int,
        is_manual: bool = False,
        requested_by: Optional[str] = None,
        **extra,
    ) -> dict:
        entry = {
            "status":       status,
            "job_id":       job_id,
            "attempt":      attempt,
            "is_manual":    is_manual,
            "requested_by": requested_by,
            "updated_at":   self._clock().isoformat(),
        }
        entry.update(extra)
        self.cache.put(STATUS_KEY, entry, self.status_ttl)
        log.debug("Job %s -> %s (attempt %d)", job_id, status, attempt)
        return entry

    def record_success(
        self,
        job_id: str,
        attempt: int,
        execution_time_ms: float,
        data: dict,
        is_manual: bool = False,
        requested_by: Optional[str] = None,
    ) -> dict:
        entry = {
            "completed_at":      self._clock().isoformat(),
            "job_id":            job_id,
            "execution_time_ms": execution_time_ms,
            "attempts":          attempt,
            "data":              data,
            "is_manual":         is_manual,
            "requested_by":      requested_by,
        }
        self.cache.put(SUCCESS_KEY, entry, self.summary_ttl)
        return entry

    def record_failure(
        self,
        job_id: str,
        attempts: int,
        error: str,
        is_manual: bool = False,
        requested_by: Optional[str] = None,
    ) -> dict:
        self.cache.forget(STATUS_KEY)
        entry = {
            "failed_at":    self._clock().isoformat(),
            "job_id":       job_id,
            "attempts":     attempts,
            "error":        error,
            "is_manual":    is_manual,
            "requested_by": requested_by,
        }
        self.cache.put(FAILURE_KEY, entry, self.summary_ttl)
        return entry

    def last_success(self) -> Optional[dict]:
        return self.cache.get(SUCCESS_KEY)

    def last_failure(self) -> Optional[dict]:
        return self.cache.get(FAILURE_KEY)

    def cancel(self) -> Optional[dict]:
        """
        Drop an active status entry and return it.

        This only stops the entry from blocking new triggers; an attempt that
        is already running keeps going.
        """
        status = self.current()
        if not status or status.get("status") not in ACTIVE_STATUSES:
            return None
        self.cache.forget(STATUS_KEY)
        log.info("Cleared active job status for job %s", status.get("job_id"))
        return status

    def clear(self) -> list[str]:
        keys = [STATUS_KEY, SUCCESS_KEY, FAILURE_KEY]
        for key in keys:
            self.cache.forget(key)
        return keys

    def summary(self) -> dict:
        current      = self.current()
        last_success = self.last_success()
        last_failure = self.last_failure()
        return {
            "has_active_job":  bool(current) and current.get("status") in ACTIVE_STATUSES,
            "current_job":     current,
            "last_success_at": last_success["completed_at"] if last_success else None,
            "last_failure_at": last_failure["failed_at"] if last_failure else None,
        }


class ExecutionLock:
    """Advisory lock: holds `name` in the cache for at most `seconds`."""

    def __init__(self, cache, name: str = LOCK_KEY, seconds: int = LOCK_TTL, owner: Optional[str] = None):
        self.cache    = cache
        self.name     = name
        self.seconds  = seconds
        self.owner    = owner or uuid.uuid4().hex
        self.acquired = False

    def __enter__(self) -> "ExecutionLock":
        self.acquired = self.cache.add(self.name, {"owner": self.owner}, self.seconds)
        if not self.acquired:
            log.warning("Lock %s is held by another execution", self.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.acquired:
            holder = self.cache.get(self.name) or {}
            # an expired lock may already belong to someone else
            if holder.get("owner") == self.owner:
                self.cache.forget(self.name)
            self.acquired = False
        return False


class ScrapingJob:

    timeout        = HANDLER_TIMEOUT
    tries          = 3
    max_exceptions = 2
    retry_window   = RETRY_WINDOW

    def __init__(
        self,
        scraper,
        store,
        tracker: JobStateTracker,
        cache,
        is_manual: bool = False,
        requested_by: Optional[str] = None,
        job_id: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        lock_seconds: int = LOCK_TTL,
    ):
        self.scraper      = scraper
        self.store        = store
        self.tracker      = tracker
        self.cache        = cache
        self.is_manual    = is_manual
        self.requested_by = requested_by
        self.job_id       = job_id or str(uuid.uuid4())[:8]
        self.lock_seconds = lock_seconds
        self.attempts     = 0
        self._clock       = clock
        self._monotonic   = monotonic

    def _set_status(self, status: str, **extra) -> dict:
        return self.tracker.update(
            status,
            job_id=self.job_id,
            attempt=self.attempts,
            is_manual=self.is_manual,
            requested_by=self.requested_by,
            **extra,
        )

    def has_recent_scraping(self) -> bool:
        return self.store.count_since(self._clock() - RECENT_WINDOW) > 0

    def handle(self) -> str:
        """
        Run one execution. Returns "completed", "skipped_recent" or
        "skipped_overlap"; raises JobFailedError when the scrape failed and
        re-raises anything unexpected after marking the status "error".
        """
        if self.attempts < 1:
            self.attempts = 1
        start = self._monotonic()
        _logger_mod.set_run_id(self.job_id)

        log.info(
            "BCV scraping job started | attempt=%d manual=%s requested_by=%s",
            self.attempts, self.is_manual, self.requested_by,
        )

        with ExecutionLock(self.cache, LOCK_KEY, self.lock_seconds, owner=self.job_id) as lock:
            if not lock.acquired:
                log.warning("Another scraping execution holds the lock — skipping")
                return "skipped_overlap"

            try:
                if not self.is_manual and self.has_recent_scraping():
                    last = self.store.most_recent()
                    log.info(
                        "Skipping automatic scraping — recent data exists (last scraped %s)",
                        last["scraped_at"].isoformat() if last else "?",
                    )
                    return "skipped_recent"

                self._set_status("running")
                result = self.scraper.scrape_and_save(self.store, deadline=start + self.timeout)
            except Exception as exc:
                self._handle_exception(exc, self._elapsed_ms(start))
                raise

            elapsed_ms = self._elapsed_ms(start)
            if result["success"]:
                self._handle_success(result, elapsed_ms)
                return "completed"
            self._handle_failure(result, elapsed_ms)

    def _elapsed_ms(self, start: float) -> float:
        return round((self._monotonic() - start) * 1000, 2)

    def _handle_success(self, result: dict, elapsed_ms: float) -> None:
        log.info(
            "BCV scraping job completed in %.2fms | rate=%s value_date=%s scrape_attempts=%s",
            elapsed_ms, result["data"]["usd_rate"], result["data"]["value_date"],
            result.get("attempts", 1),
        )
        self._set_status(
            "completed",
            execution_time_ms=elapsed_ms,
            result=result,
            completed_at=self._clock().isoformat(),
        )
        self.tracker.record_success(
            job_id=self.job_id,
            attempt=self.attempts,
            execution_time_ms=elapsed_ms,
            data=result["data"],
            is_manual=self.is_manual,
            requested_by=self.requested_by,
        )

    def _handle_failure(self, result: dict, elapsed_ms: float) -> None:
        error = result.get("error") or "Unknown error"
        will_retry = self.attempts < self.tries
        log.warning(
            "BCV scraping job failed (attempt %d/%d, will_retry=%s): %s",
            self.attempts, self.tries, will_retry, error,
        )

        if not will_retry:
            self._set_status(
                "failed",
                execution_time_ms=elapsed_ms,
                error=error,
                final_attempt=True,
            )
            raise JobFailedError(error, attempts=self.attempts, final=True)

        next_retry_at = self._clock() + timedelta(seconds=backoff_delay(self.attempts))
        self._set_status(
            "retrying",
            execution_time_ms=elapsed_ms,
            error=error,
            next_retry_at=next_retry_at.isoformat(),
        )
        raise JobFailedError(error, attempts=self.attempts)

    def _handle_exception(self, exc: Exception, elapsed_ms: float) -> None:
        log.exception("BCV scraping job exception (attempt %d): %s", self.attempts, exc)
        self._set_status("error", execution_time_ms=elapsed_ms, error=str(exc))

    def failed(self, exc: Optional[BaseException] = None) -> None:
        """Permanent failure: every retry is spent or the retry window closed."""
        error = str(exc) if exc else "Unknown error"
        log.error(
            "BCV scraping job failed permanently after %d attempt(s): %s",
            self.attempts, error,
        )
        self.tracker.record_failure(
            job_id=self.job_id,
            attempts=self.attempts,
            error=error,
            is_manual=self.is_manual,
            requested_by=self.requested_by,
        )


def run_job(
    job: ScrapingJob,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = _utcnow,
) -> str:
    """
    Invoke job.handle() until it returns, re-running it after a failure.

    A retry happens only while job.attempts < job.tries, fewer than
    job.max_exceptions unexpected exceptions were seen, and the retry would
    start before first_attempt + job.retry_window. Whichever bound is hit
    first wins; then job.failed() is called and the last error re-raised.
    """
    deadline   = clock() + timedelta(seconds=job.retry_window)
    exceptions = 0

    while True:
        job.attempts += 1
        try:
            return job.handle()
        except Exception as exc:
            if not isinstance(exc, JobFailedError):
                exceptions += 1

            delay = backoff_delay(job.attempts)
            if job.attempts >= job.tries:
                reason = f"max tries ({job.tries}) reached"
            elif exceptions >= job.max_exceptions:
                reason = f"max exceptions ({job.max_exceptions}) reached"
            elif clock() + timedelta(seconds=delay) > deadline:
                reason = "retry window closed"
            else:
                log.info("Retrying scraping job %s in %ds", job.job_id, delay)
                sleep(delay)
                continue

            log.error("Giving up on scraping job %s: %s", job.job_id, reason)
            job.failed(exc)
            raise
