"""
scheduling.py
-------------
When automatic scraping should run, in Venezuelan wall-clock time.

  main       Mon-Fri 17:00
  backup     Mon-Fri 18:00
  emergency  Sat 12:00, only when nothing was scraped in the last 3 days

The scheduler that actually fires triggers lives outside this project; it
asks is_scraping_time() and next_execution().
"""

from datetime import datetime, timedelta, timezone

# Venezuela has used UTC-4 without DST since 2016
VENEZUELA_TZ = timezone(timedelta(hours=-4), "VET")

MAIN_HOUR      = 17
BACKUP_HOUR    = 18
EMERGENCY_HOUR = 12
SATURDAY       = 5
MONDAY         = 0


def to_venezuela(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(VENEZUELA_TZ)


def _is_weekday(ts: datetime) -> bool:
    return ts.weekday() < SATURDAY


def is_scraping_time(now: datetime | None = None, store=None) -> bool:
    local = to_venezuela(now)

    if _is_weekday(local) and MAIN_HOUR <= local.hour < BACKUP_HOUR + 1:
        return True

    if local.weekday() == SATURDAY and local.hour == EMERGENCY_HOUR:
        if store is None:
            return True
        return store.count_since(local - timedelta(days=3)) == 0

    return False


def _next_monday_main(local: datetime) -> datetime:
    days = (MONDAY - local.weekday()) % 7 or 7
    return (local + timedelta(days=days)).replace(
        hour=MAIN_HOUR, minute=0, second=0, microsecond=0
    )


def next_execution(now: datetime | None = None) -> tuple[datetime, str]:
    local = to_venezuela(now)
    at = lambda hour: local.replace(hour=hour, minute=0, second=0, microsecond=0)  # noqa: E731

    if _is_weekday(local) and local.hour < MAIN_HOUR:
        return at(MAIN_HOUR), "main"
    if _is_weekday(local) and local.hour == MAIN_HOUR:
        return at(BACKUP_HOUR), "backup"
    if _is_weekday(local) and local.weekday() < 4:
        tomorrow = (local + timedelta(days=1)).replace(
            hour=MAIN_HOUR, minute=0, second=0, microsecond=0
        )
        return tomorrow, "main"
    if local.weekday() == SATURDAY and local.hour < EMERGENCY_HOUR:
        return at(EMERGENCY_HOUR), "emergency"
    return _next_monday_main(local), "main"
