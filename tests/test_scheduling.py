import pytest
import sys, os
from datetime import date, datetime, timedelta, timezone
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scheduling import VENEZUELA_TZ, is_scraping_time, next_execution, to_venezuela


def vet(y, m, d, hh, mm=0):
    return datetime(y, m, d, hh, mm, tzinfo=VENEZUELA_TZ)


# 2025-06-23 is a Monday
MONDAY    = (2025, 6, 23)
FRIDAY    = (2025, 6, 27)
SATURDAY  = (2025, 6, 28)
SUNDAY    = (2025, 6, 29)


class CountingStore:
    def __init__(self, count):
        self.count = count
        self.since = None

    def count_since(self, since):
        self.since = since
        return self.count



class TestToVenezuela:
    def test_utc_minus_four(self):
        utc = datetime(2025, 6, 25, 21, 0, tzinfo=timezone.utc)
        assert to_venezuela(utc).hour == 17

    def test_naive_assumed_utc(self):
        assert to_venezuela(datetime(2025, 6, 25, 21, 0)).hour == 17



class TestIsScrapingTime:
    @pytest.mark.parametrize("hour,expected", [(16, False), (17, True), (18, True), (19, False)])
    def test_weekday_window(self, hour, expected):
        assert is_scraping_time(vet(*MONDAY, hour)) is expected

    def test_accepts_utc_input(self):
        assert is_scraping_time(datetime(2025, 6, 23, 21, 30, tzinfo=timezone.utc)) is True

    def test_sunday_never(self):
        assert is_scraping_time(vet(*SUNDAY, 17)) is False

    def test_saturday_noon_without_recent_data(self):
        store = CountingStore(0)
        assert is_scraping_time(vet(*SATURDAY, 12, 30), store) is True
        assert store.since == vet(*SATURDAY, 12, 30) - timedelta(days=3)

    def test_saturday_noon_with_recent_data(self):
        assert is_scraping_time(vet(*SATURDAY, 12, 30), CountingStore(2)) is False

    def test_saturday_other_hour(self):
        assert is_scraping_time(vet(*SATURDAY, 17), CountingStore(0)) is False



class TestNextExecution:
    def test_weekday_morning_main(self):
        when, label = next_execution(vet(*MONDAY, 9))
        assert (when, label) == (vet(*MONDAY, 17), "main")

    def test_weekday_during_main_hour_backup(self):
        when, label = next_execution(vet(*MONDAY, 17, 15))
        assert (when, label) == (vet(*MONDAY, 18), "backup")

    def test_weekday_evening_next_day(self):
        when, label = next_execution(vet(*MONDAY, 20))
        assert (when, label) == (vet(2025, 6, 24, 17), "main")

    def test_friday_evening_next_monday(self):
        when, label = next_execution(vet(*FRIDAY, 19))
        assert (when, label) == (vet(2025, 6, 30, 17), "main")

    def test_saturday_morning_emergency(self):
        when, label = next_execution(vet(*SATURDAY, 8))
        assert (when, label) == (vet(*SATURDAY, 12), "emergency")

    def test_saturday_afternoon_next_monday(self):
        when, _ = next_execution(vet(*SATURDAY, 13))
        assert when.date() == date(2025, 6, 30)

    def test_sunday_next_monday(self):
        when, _ = next_execution(vet(*SUNDAY, 10))
        assert when == vet(2025, 6, 30, 17)

    def test_monday_after_backup_is_tuesday(self):
        when, _ = next_execution(vet(*MONDAY, 18, 30))
        assert when.date() == date(2025, 6, 24)
