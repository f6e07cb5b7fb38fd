import pytest
import sys, os
from datetime import date, datetime, timezone
from decimal import Decimal
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import bcv_html
from errors import ExtractionError, InvalidRate
from parser import (
    make_soup,
    read_rate,
    read_value_date_text,
    extract_rate,
    extract_value_date_text,
    extract_value_date,
    extract_raw_debug,
)


class TestExtractRate:

    def test_extracts_rate_from_page(self, sample_html):
        assert extract_rate(sample_html) == Decimal("105.4527")

    def test_ignores_other_currencies(self, sample_html):
        # the euro block also has a <strong>; only #dolar counts
        assert extract_rate(sample_html) != Decimal("121.3456")

    @pytest.mark.parametrize("raw,expected", [
        ("100,00000000", Decimal("100.0000")),
        ("50,1234",      Decimal("50.1234")),
        ("200,87654321", Decimal("200.8765")),
        ("75,99",        Decimal("75.99")),
    ])
    def test_decimal_comma_values(self, raw, expected):
        assert extract_rate(bcv_html(rate_text=raw)) == expected

    def test_missing_container_returns_none(self, no_rate_html):
        assert extract_rate(no_rate_html) is None

    def test_missing_strong_returns_none(self):
        assert extract_rate('<div id="dolar"><span>105,45</span></div>') is None

    def test_non_numeric_returns_none(self):
        assert extract_rate('<div id="dolar"><strong>invalid-rate</strong></div>') is None

    def test_zero_returns_none(self):
        assert extract_rate(bcv_html(rate_text="0,00000000")) is None

    def test_empty_html_returns_none(self):
        assert extract_rate("") is None

    def test_read_rate_raises_extraction_error(self, no_rate_html):
        with pytest.raises(ExtractionError):
            read_rate(make_soup(no_rate_html))

    def test_read_rate_raises_invalid_rate(self):
        with pytest.raises(InvalidRate):
            read_rate(make_soup(bcv_html(rate_text="abc")))


class TestExtractValueDate:

    def test_extracts_date_text(self):
        assert extract_value_date_text(bcv_html()) == "Miércoles, 25 Junio 2025"

    def test_extracts_date(self, sample_html):
        assert extract_value_date(sample_html) == date(2025, 6, 25)

    def test_missing_element_returns_none(self, no_date_html):
        assert extract_value_date_text(no_date_html) is None
        assert extract_value_date(no_date_html) is None

    def test_empty_element_returns_none(self):
        html = '<span class="date-display-single">   </span>'
        assert extract_value_date_text(html) is None

    def test_unparsable_date_returns_none(self):
        assert extract_value_date(bcv_html(date_text="Someday, 99 Nunca 2025")) is None

    def test_read_value_date_text_raises(self, no_date_html):
        with pytest.raises(ExtractionError):
            read_value_date_text(make_soup(no_date_html))

    def test_accepts_prebuilt_soup(self, sample_html):
        soup = make_soup(sample_html)
        assert extract_value_date(soup) == date(2025, 6, 25)


class TestExtractRawDebug:

    def test_has_expected_keys(self, sample_html):
        raw = extract_raw_debug(make_soup(sample_html))
        for key in ("dolar_div_html", "date_element_html", "raw_rate_text",
                    "raw_date_text", "selector_used", "scraped_at_timestamp"):
            assert key in raw

    def test_keeps_raw_texts(self, sample_html):
        raw = extract_raw_debug(make_soup(sample_html))
        assert raw["raw_rate_text"] == "105,45270000"
        assert "Junio" in raw["raw_date_text"]

    def test_timestamp_from_argument(self, sample_html):
        ts = datetime(2025, 6, 25, 21, 0, tzinfo=timezone.utc)
        raw = extract_raw_debug(make_soup(sample_html), ts)
        assert raw["scraped_at_timestamp"] == int(ts.timestamp())

    def test_missing_elements_are_none(self):
        raw = extract_raw_debug(make_soup("<html></html>"))
        assert raw["dolar_div_html"] is None
        assert raw["date_element_html"] is None
        assert raw["raw_rate_text"] is None
