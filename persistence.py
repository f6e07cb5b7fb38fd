import json
import sqlite3
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from cleaner import format_rate, quantize_rate
from errors import InvalidRate, PersistenceError
from fetcher import BCV_URL
from logger import get_logger

log = get_logger(__name__)


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS bcv_exchange_rates (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    usd_rate        TEXT NOT NULL,          -- decimal(10,4) kept as text
    value_date      TEXT NOT NULL,          -- YYYY-MM-DD
    scraped_at      TEXT NOT NULL,          -- UTC ISO-8601, microseconds
    currency_code   TEXT NOT NULL DEFAULT 'USD',
    raw_data        TEXT,                   -- JSON blob for debugging
    source_url      TEXT NOT NULL DEFAULT 'https://www.bcv.org.ve/',
    created_at      TEXT,
    updated_at      TEXT
);
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_bcv_value_date ON bcv_exchange_rates (value_date)",
    "CREATE INDEX IF NOT EXISTS idx_bcv_scraped_at ON bcv_exchange_rates (scraped_at)",
    "CREATE INDEX IF NOT EXISTS idx_bcv_currency_value_date "
    "ON bcv_exchange_rates (currency_code, value_date)",
)

_COLUMNS = "id, usd_rate, value_date, scraped_at, currency_code, raw_data, source_url, created_at"


def to_utc_iso(ts: datetime) -> str:
    """Fixed-width UTC string so timestamps compare correctly as text."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_record(row: sqlite3.Row) -> dict:
    rate = Decimal(row["usd_rate"])
    raw_data = None
    if row["raw_data"]:
        try:
            raw_data = json.loads(row["raw_data"])
        except ValueError:
            log.debug("Record %s has non-JSON raw_data", row["id"])
            raw_data = row["raw_data"]
    return {
        "id":             row["id"],
        "usd_rate":       rate,
        "value_date":     date.fromisoformat(row["value_date"]),
        "scraped_at":     datetime.fromisoformat(row["scraped_at"]),
        "currency_code":  row["currency_code"],
        "source_url":     row["source_url"],
        "raw_data":       raw_data,
        "formatted_rate": format_rate(rate),
    }


class RecordStore:
    """Append-only sqlite table of scraped BCV rates."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        conn = self._get_conn()
        conn.close()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute(_CREATE_TABLE)
        for stmt in _CREATE_INDEXES:
            conn.execute(stmt)
        conn.commit()
        return conn

    def save(
        self,
        rate: Decimal,
        value_date: date,
        scraped_at: datetime,
        source_url: str = BCV_URL,
        raw_data: Optional[dict] = None,
        currency_code: str = "USD",
    ) -> int:
        try:
            stored_rate = quantize_rate(rate)
        except InvalidRate as exc:
            raise PersistenceError(f"Refusing to save exchange rate: {exc}") from exc

        now = to_utc_iso(datetime.now(timezone.utc))
        try:
            conn = self._get_conn()
            try:
                cur = conn.execute(
                    """INSERT INTO bcv_exchange_rates
                       (usd_rate, value_date, scraped_at, currency_code,
                        raw_data, source_url, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        str(stored_rate),
                        value_date.isoformat(),
                        to_utc_iso(scraped_at),
                        currency_code,
                        json.dumps(raw_data, ensure_ascii=False, default=str) if raw_data is not None else None,
                        source_url,
                        now,
                        now,
                    ),
                )
                conn.commit()
                record_id = cur.lastrowid
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not save exchange rate: {exc}") from exc

        log.info("Saved rate %s for %s → %s (id=%d)", stored_rate, value_date, self.db_path, record_id)
        return record_id

    def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        conn = self._get_conn()
        try:
            row = conn.execute(sql, params).fetchone()
        finally:
            conn.close()
        return _row_to_record(row) if row else None

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def _scalar(self, sql: str, params: tuple = ()) -> int:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchone()[0]
        finally:
            conn.close()

    def get(self, record_id: int) -> Optional[dict]:
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM bcv_exchange_rates WHERE id = ?", (record_id,)
        )

    def most_recent(self) -> Optional[dict]:
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM bcv_exchange_rates ORDER BY scraped_at DESC, id DESC LIMIT 1"
        )

    def oldest(self) -> Optional[dict]:
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM bcv_exchange_rates ORDER BY scraped_at ASC, id ASC LIMIT 1"
        )

    def latest_by_value_date(self) -> Optional[dict]:
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM bcv_exchange_rates "
            "ORDER BY value_date DESC, scraped_at DESC, id DESC LIMIT 1"
        )

    def count(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM bcv_exchange_rates")

    def count_since(self, since: datetime) -> int:
        return self._scalar(
            "SELECT COUNT(*) FROM bcv_exchange_rates WHERE scraped_at >= ?",
            (to_utc_iso(since),),
        )

    def history(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 15,
    ) -> dict:
        clauses, params = [], []
        if from_date:
            clauses.append("value_date >= ?")
            params.append(from_date.isoformat())
        if to_date:
            clauses.append("value_date <= ?")
            params.append(to_date.isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        per_page = max(1, per_page)
        page     = max(1, page)
        total = self._scalar(f"SELECT COUNT(*) FROM bcv_exchange_rates {where}", tuple(params))
        records = self._fetch_all(
            f"SELECT {_COLUMNS} FROM bcv_exchange_rates {where} "
            "ORDER BY scraped_at DESC, id DESC LIMIT ? OFFSET ?",
            tuple(params) + (per_page, (page - 1) * per_page),
        )
        return {
            "data":      records,
            "total":     total,
            "page":      page,
            "per_page":  per_page,
            "last_page": max(1, -(-total // per_page)),
        }

    def stats(self) -> dict:
        latest = self.most_recent()
        oldest = self.oldest()
        return {
            "total_records": self.count(),
            "latest_rate":   latest["usd_rate"] if latest else None,
            "latest_date":   latest["value_date"].strftime("%d/%m/%Y") if latest else None,
            "oldest_date":   oldest["value_date"].strftime("%d/%m/%Y") if oldest else None,
            "last_scraping": latest["scraped_at"].strftime("%d/%m/%Y %H:%M:%S") if latest else None,
        }
