import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import InvalidDate, InvalidRate
from logger import get_logger

log = get_logger(__name__)

RATE_PLACES    = Decimal("0.0001")
DISPLAY_PLACES = Decimal("0.01")
RATE_UNIT      = "Bs."

MONTHS = {
    "enero":      1,
    "febrero":    2,
    "marzo":      3,
    "abril":      4,
    "mayo":       5,
    "junio":      6,
    "julio":      7,
    "agosto":     8,
    "septiembre": 9,
    "octubre":    10,
    "noviembre":  11,
    "diciembre":  12,
}

WEEKDAYS = ("lunes", "martes", "miercoles", "jueves", "viernes", "sabado", "domingo")

_WEEKDAY_PREFIX = re.compile(r"^([a-z]+)(?:\s*,\s*|\s+)")
_DAY_MONTH_YEAR = re.compile(
    r"^(\d{1,2})\s+(?:de\s+)?([a-z]+)\s+(?:de\s+|del\s+)?(\d{4})$"
)


def normalize_token(text: str) -> str:
    """Lowercase, strip accents and collapse whitespace ("Miércoles" -> "miercoles")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"\s+", " ", stripped).strip().lower()


def parse_spanish_date(text: str) -> date:
    """
    Parse the BCV value-date label, e.g. "Miércoles, 25 Junio 2025".

    The weekday prefix is optional; "25 de junio de 2025" is accepted too.
    Raises InvalidDate on any unrecognised token or an impossible date.
    """
    cleaned = normalize_token(text)
    if not cleaned:
        raise InvalidDate("Empty value date")

    m = _WEEKDAY_PREFIX.match(cleaned)
    if m:
        if m.group(1) not in WEEKDAYS:
            raise InvalidDate(f"Unknown weekday {m.group(1)!r} in {text!r}")
        cleaned = cleaned[m.end():]

    m = _DAY_MONTH_YEAR.match(cleaned)
    if not m:
        raise InvalidDate(f"Unrecognised date layout: {text!r}")

    day, month_name, year = m.groups()
    month = MONTHS.get(month_name)
    if month is None:
        raise InvalidDate(f"Unknown month {month_name!r} in {text!r}")

    try:
        parsed = datetime.strptime(f"{day} {month:02d} {year}", "%d %m %Y").date()
    except ValueError as exc:
        raise InvalidDate(f"Out-of-range date {text!r}: {exc}") from exc

    log.debug("Value date parsed: %r -> %s", text, parsed.isoformat())
    return parsed


def quantize_rate(value, shown=None) -> Decimal:
    """Coerce value to a positive Decimal at 4 places, rounding half up."""
    shown = value if shown is None else shown
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidRate(f"Invalid USD value: {shown!r}") from exc
    if not rate.is_finite() or rate <= 0:
        raise InvalidRate(f"Invalid USD value: {shown!r}")
    try:
        return rate.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise InvalidRate(f"USD value out of range: {shown!r}") from exc


def parse_rate_text(text: str) -> Decimal:
    """
    "105,45270000" -> Decimal("105.4527").

    The source writes a decimal comma and no thousands separator.
    """
    raw = text or ""
    cleaned = re.sub(r"\s+", "", raw).replace(",", ".")
    if not cleaned:
        raise InvalidRate("Empty rate value")
    return quantize_rate(cleaned, shown=raw)


def format_rate(rate) -> str:
    """105.4527 -> "105,45 Bs." (period thousands separator, comma decimals)."""
    value = Decimal(str(rate)).quantize(DISPLAY_PLACES, rounding=ROUND_HALF_UP)
    us_style = f"{value:,.2f}"
    swapped = us_style.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{swapped} {RATE_UNIT}"


def is_current(value_date: date, today: date | None = None) -> bool:
    return value_date == (today or date.today())
