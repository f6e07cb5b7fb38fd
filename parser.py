from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from bs4 import BeautifulSoup

from cleaner import parse_rate_text, parse_spanish_date
from errors import ExtractionError, ScrapeError
from logger import get_logger

log = get_logger(__name__)

RATE_CONTAINER = "#dolar"
RATE_VALUE     = "strong"
DATE_ELEMENT   = ".date-display-single"


def make_soup(html) -> BeautifulSoup:
    if isinstance(html, BeautifulSoup):
        return html
    return BeautifulSoup(html or "", "html.parser")


def read_rate_text(soup: BeautifulSoup) -> str:
    container = soup.select_one(RATE_CONTAINER)
    if container is None:
        raise ExtractionError(f"Rate container {RATE_CONTAINER} not found")
    strong = container.select_one(RATE_VALUE)
    if strong is None:
        raise ExtractionError(
            f"No <{RATE_VALUE}> value inside {RATE_CONTAINER}"
        )
    return strong.get_text(strip=True)


def read_rate(soup: BeautifulSoup) -> Decimal:
    raw = read_rate_text(soup)
    rate = parse_rate_text(raw)
    log.info("USD rate extracted: %s -> %s", raw, rate)
    return rate


def read_value_date_text(soup: BeautifulSoup) -> str:
    element = soup.select_one(DATE_ELEMENT)
    if element is None:
        raise ExtractionError(f"Date element {DATE_ELEMENT} not found")
    text = element.get_text(" ", strip=True)
    if not text:
        raise ExtractionError(f"Date element {DATE_ELEMENT} is empty")
    return text


def read_value_date(soup: BeautifulSoup) -> date:
    raw = read_value_date_text(soup)
    value_date = parse_spanish_date(raw)
    log.info("Value date extracted: %s -> %s", raw, value_date.isoformat())
    return value_date


def extract_rate(html) -> Optional[Decimal]:
    try:
        return read_rate(make_soup(html))
    except ScrapeError as exc:
        log.warning("Could not extract USD rate: %s", exc)
        return None


def extract_value_date_text(html) -> Optional[str]:
    try:
        return read_value_date_text(make_soup(html))
    except ScrapeError as exc:
        log.warning("Could not extract value date: %s", exc)
        return None


def extract_value_date(html) -> Optional[date]:
    try:
        return read_value_date(make_soup(html))
    except ScrapeError as exc:
        log.warning("Could not extract value date: %s", exc)
        return None


def extract_raw_debug(soup: BeautifulSoup, scraped_at: datetime | None = None) -> dict:
    """HTML fragments kept alongside a record for later diagnosis."""
    scraped_at = scraped_at or datetime.now(timezone.utc)
    container = soup.select_one(RATE_CONTAINER)
    date_el   = soup.select_one(DATE_ELEMENT)
    strong    = container.select_one(RATE_VALUE) if container else None
    return {
        "dolar_div_html":       container.decode_contents()[:2000] if container else None,
        "date_element_html":    date_el.decode_contents()[:500] if date_el else None,
        "raw_rate_text":        strong.get_text(strip=True) if strong else None,
        "raw_date_text":        date_el.get_text(" ", strip=True) if date_el else None,
        "selector_used":        f"{RATE_CONTAINER} {RATE_VALUE}",
        "scraped_at_timestamp": int(scraped_at.timestamp()),
    }
