import argparse
import os
from datetime import date

from fetcher import BCV_URL, DEFAULT_USER_AGENT

VERSION = "1.0.0"

ACTIONS = ("auto", "manual", "job", "status", "stats", "history", "clear", "cancel", "time")

DEFAULTS = {
    "timeout":      30,
    "delay":        2,
    "max_attempts": 3,
    "user_agent":   DEFAULT_USER_AGENT,
    "verify_tls":   False,
    "url":          BCV_URL,
    "db":           "bcv_rates.db",
    "cache_db":     "bcv_cache.db",
}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scrape.py",
        description="BCV USD exchange-rate scraper",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "action",
        nargs="?",
        default="auto",
        choices=ACTIONS,
        help="auto: scheduled run honouring the recent-data guard; "
             "manual: run now; job: run a manual job unless one is active; "
             "status/stats/history: read-only views; clear/cancel: reset cached job state; "
             "time: scraping schedule in Venezuelan time.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Scrape even if a record was saved within the last hour.",
    )
    parser.add_argument(
        "--sync",
        action="store_true",
        default=False,
        help="Scrape inline instead of through the job wrapper (no status tracking).",
    )
    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        default=False,
        help="Start a job even if another one looks active.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=float(os.environ.get("SCRAPING_TIMEOUT", DEFAULTS["timeout"])),
        metavar="SECONDS",
        help="Per-request timeout in seconds.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=float(os.environ.get("SCRAPING_DELAY", DEFAULTS["delay"])),
        metavar="SECONDS",
        help="Wait between scrape attempts.",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=int(os.environ.get("SCRAPING_MAX_RETRIES", DEFAULTS["max_attempts"])),
        metavar="N",
        help="Scrape attempts per run.",
    )
    parser.add_argument(
        "--user-agent",
        default=os.environ.get("SCRAPING_USER_AGENT", DEFAULTS["user_agent"]),
        metavar="UA",
        help="User-Agent header sent with every request.",
    )
    parser.add_argument(
        "--verify-tls",
        action=argparse.BooleanOptionalAction,
        default=_env_flag("SCRAPING_VERIFY_TLS", DEFAULTS["verify_tls"]),
        help="Verify the site's TLS certificate. Enable in production.",
    )
    parser.add_argument(
        "--url",
        default=os.environ.get("BCV_URL", DEFAULTS["url"]),
        help="Page to scrape.",
    )
    parser.add_argument(
        "--db",
        default=os.environ.get("BCV_DB", DEFAULTS["db"]),
        metavar="PATH",
        help="SQLite file holding scraped rates.",
    )
    parser.add_argument(
        "--cache-db",
        default=os.environ.get("BCV_CACHE_DB", DEFAULTS["cache_db"]),
        metavar="PATH",
        help="SQLite file shared by all triggers for job status and the execution lock.",
    )
    parser.add_argument("--from-date", type=_iso_date, default=None, help="history: first value date.")
    parser.add_argument("--to-date", type=_iso_date, default=None, help="history: last value date.")
    parser.add_argument("--page", type=int, default=1, help="history: page number.")
    parser.add_argument("--per-page", type=int, default=15, help="history: rows per page.")
    parser.add_argument(
        "--version",
        action="version",
        version=f"bcv-scraper {VERSION}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> dict:
    """
    Merge parsed CLI args into a single config dict that gets logged
    and handed to the scraper and job layer.
    """
    return {
        "action":       args.action,
        "force":        args.force,
        "sync":         args.sync,
        "yes":          args.yes,
        "timeout":      args.timeout,
        "delay":        args.delay,
        "max_attempts": args.max_attempts,
        "user_agent":   args.user_agent,
        "verify_tls":   args.verify_tls,
        "url":          args.url,
        "db":           args.db,
        "cache_db":     args.cache_db,
        "from_date":    args.from_date,
        "to_date":      args.to_date,
        "page":         args.page,
        "per_page":     args.per_page,
    }
