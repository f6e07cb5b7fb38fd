"""
scrape.py
---------
CLI entrypoint. A run goes through:
  guard -> fetch -> extract -> validate -> persist -> job status

Usage:
    python scrape.py --help
    python scrape.py auto                # scheduler trigger, skips if data < 1h old
    python scrape.py manual --sync       # scrape inline, no job bookkeeping
    python scrape.py job                 # manual job, refuses if one is active
    python scrape.py status
    python scrape.py history --from-date 2025-06-01 --per-page 30
"""

import sys
import uuid
from datetime import datetime, timezone

# Bootstrap logger before importing anything else
import logger as _logger_mod

RUN_ID = str(uuid.uuid4())[:8]
_logger_mod.setup_logger(RUN_ID)
log = _logger_mod.get_logger("scrape")

from cache import SqliteCache
from cleaner import is_current
from config import VERSION, build_config, parse_args
from errors import JobFailedError
from job import RECENT_WINDOW, JobStateTracker, ScrapingJob, run_job
from persistence import RecordStore
from scheduling import is_scraping_time, next_execution, to_venezuela
from scraper import BcvScraper

REQUESTED_BY = "cli"


def _show_status(label: str, entry: dict | None) -> None:
    if not entry:
        log.info("%s: none", label)
        return
    log.info("%s:", label)
    for key, value in entry.items():
        if key in ("result", "data"):
            continue
        log.info("  %-18s %s", key, value)


def run_sync(scraper: BcvScraper, store: RecordStore, kind: str) -> int:
    log.info("Running %s scraping synchronously…", kind)
    start = datetime.now(timezone.utc)
    result = scraper.scrape_and_save(store)
    elapsed_ms = (datetime.now(timezone.utc) - start).total_seconds() * 1000

    if result["success"]:
        data = result["data"]
        log.info(
            "Scraping succeeded in %.0fms | USD=%s value_date=%s id=%s attempts=%d",
            elapsed_ms, data["usd_rate"], data["value_date"], data["id"], result["attempts"],
        )
        return 0
    log.error("Scraping failed after %s attempt(s): %s", result.get("attempts", "?"), result["error"])
    return 1


def run_tracked(
    scraper: BcvScraper,
    store: RecordStore,
    cache: SqliteCache,
    tracker: JobStateTracker,
    is_manual: bool,
) -> int:
    job = ScrapingJob(
        scraper, store, tracker, cache,
        is_manual=is_manual,
        requested_by=REQUESTED_BY,
    )
    log.info("Starting %s job %s", "manual" if is_manual else "automatic", job.job_id)
    try:
        outcome = run_job(job)
    except JobFailedError as exc:
        log.error("Job %s failed after %d attempt(s): %s", job.job_id, exc.attempts, exc)
        return 1
    finally:
        _logger_mod.set_run_id(RUN_ID)

    log.info("Job %s finished: %s", job.job_id, outcome)
    return 0


def handle_auto(config, scraper, store, cache, tracker) -> int:
    if not config["force"]:
        since = datetime.now(timezone.utc) - RECENT_WINDOW
        if store.count_since(since) > 0:
            last = store.most_recent()
            log.warning("Skipping scraping — recent data found")
            log.info("  last scraped: %s", last["scraped_at"].strftime("%d/%m/%Y %H:%M:%S"))
            log.info("  USD value:    %s", last["formatted_rate"])
            return 0

    if config["sync"]:
        return run_sync(scraper, store, "automatic")
    return run_tracked(scraper, store, cache, tracker, is_manual=config["force"])


def handle_manual(config, scraper, store, cache, tracker) -> int:
    if config["sync"]:
        return run_sync(scraper, store, "manual")
    return run_tracked(scraper, store, cache, tracker, is_manual=True)


def handle_job(config, scraper, store, cache, tracker) -> int:
    current = tracker.current()
    if tracker.is_active():
        log.warning("A scraping job is already in progress")
        _show_status("Current job", current)
        if not config["yes"]:
            log.info("Pass --yes to start another job anyway.")
            return 0
    return run_tracked(scraper, store, cache, tracker, is_manual=True)


def handle_status(tracker: JobStateTracker) -> int:
    _show_status("Current job", tracker.current())
    _show_status("Last success", tracker.last_success())
    _show_status("Last failure", tracker.last_failure())
    return 0


def latest_rate_summary(store: RecordStore, today=None) -> dict | None:
    """Rate for the newest value date and whether it is today's (Venezuelan) rate."""
    latest = store.latest_by_value_date()
    if latest is None:
        return None
    today = today or to_venezuela().date()
    return {
        "formatted_rate": latest["formatted_rate"],
        "value_date":     latest["value_date"],
        "scraped_at":     latest["scraped_at"],
        "is_current":     is_current(latest["value_date"], today),
    }


def handle_stats(store: RecordStore, tracker: JobStateTracker) -> int:
    stats = store.stats()
    latest = latest_rate_summary(store)
    log.info("Total records:  %d", stats["total_records"])
    if latest:
        log.info("Latest rate:    %s", latest["formatted_rate"])
        log.info("Value date:     %s (%s)", latest["value_date"].isoformat(),
                 "current" if latest["is_current"] else "not today's rate")
        log.info("Last scraping:  %s", stats["last_scraping"])
        log.info("First record:   %s", stats["oldest_date"])
    summary = tracker.summary()
    log.info("Active job:     %s", summary["has_active_job"])
    log.info("Last success:   %s", summary["last_success_at"])
    log.info("Last failure:   %s", summary["last_failure_at"])
    return 0


def handle_history(config, store: RecordStore) -> int:
    page = store.history(
        from_date=config["from_date"],
        to_date=config["to_date"],
        page=config["page"],
        per_page=config["per_page"],
    )
    log.info("Page %d/%d (%d records)", page["page"], page["last_page"], page["total"])
    for r in page["data"]:
        log.info(
            "  #%-5d %s  %-14s scraped %s",
            r["id"], r["value_date"].isoformat(), r["formatted_rate"],
            r["scraped_at"].strftime("%Y-%m-%d %H:%M:%S"),
        )
    return 0


def handle_clear(tracker: JobStateTracker) -> int:
    for key in tracker.clear():
        log.info("Cleared %s", key)
    return 0


def handle_cancel(tracker: JobStateTracker) -> int:
    cancelled = tracker.cancel()
    if cancelled is None:
        log.warning("No active job to cancel")
        return 1
    _show_status("Cancelled job", cancelled)
    return 0


def handle_time(store: RecordStore) -> int:
    now_utc = datetime.now(timezone.utc)
    local = to_venezuela(now_utc)
    log.info("UTC:        %s", now_utc.strftime("%Y-%m-%d %H:%M:%S %Z"))
    log.info("Venezuela:  %s (%s)", local.strftime("%Y-%m-%d %H:%M:%S"), local.strftime("%A"))
    log.info("Schedule:   main Mon-Fri 17:00, backup Mon-Fri 18:00, emergency Sat 12:00")

    nxt, label = next_execution(now_utc)
    log.info("Next run:   %s (%s) in %s", nxt.strftime("%Y-%m-%d %H:%M"), label, nxt - local)
    if is_scraping_time(now_utc, store):
        log.info("Inside a scraping window — automatic scraping may run now")
    else:
        log.info("Outside scraping windows")
    return 0


def main(argv: list[str] | None = None) -> int:
    args   = parse_args(argv)
    config = build_config(args)

    log.info("=" * 60)
    log.info("BCV exchange-rate scraper  v%s", VERSION)
    log.info("run_id=%s  action=%s  force=%s  sync=%s",
             RUN_ID, config["action"], config["force"], config["sync"])
    log.info("timeout=%.0fs  delay=%.1fs  max_attempts=%d  verify_tls=%s",
             config["timeout"], config["delay"], config["max_attempts"], config["verify_tls"])
    log.info("db=%s  cache_db=%s", config["db"], config["cache_db"])
    log.info("=" * 60)

    try:
        store   = RecordStore(config["db"])
        cache   = SqliteCache(config["cache_db"])
        tracker = JobStateTracker(cache)
        action  = config["action"]

        if action == "status":
            return handle_status(tracker)
        if action == "stats":
            return handle_stats(store, tracker)
        if action == "history":
            return handle_history(config, store)
        if action == "clear":
            return handle_clear(tracker)
        if action == "cancel":
            return handle_cancel(tracker)
        if action == "time":
            return handle_time(store)

        scraper = BcvScraper(config)
        if action == "auto":
            return handle_auto(config, scraper, store, cache, tracker)
        if action == "manual":
            return handle_manual(config, scraper, store, cache, tracker)
        return handle_job(config, scraper, store, cache, tracker)

    except KeyboardInterrupt:
        log.warning("Interrupted")
        return 130
    except Exception as exc:
        log.error("Fatal error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
