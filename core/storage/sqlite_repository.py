from __future__ import annotations
import os, json, time, sqlite3
from typing import Optional, List

from core.storage.day_stats import DayStats

DB_FILE = os.path.join(os.path.abspath("."), "editpulse_days.sqlite3")

def utc_ts_ms() -> int:
    return int(time.time() * 1000)

class SqliteDayRepository:
    """One JSON document per day; last write wins."""
    def __init__(self, db_path: str = DB_FILE):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self):
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS days(
                  day TEXT PRIMARY KEY,
                  updated_utc INTEGER NOT NULL,
                  payload TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, day_key: str) -> Optional[DayStats]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT payload FROM days WHERE day = ?", (day_key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return DayStats.from_json(json.loads(row[0]))

    def put(self, day_key: str, stats: DayStats) -> None:
        payload = json.dumps(stats.to_json(), separators=(",", ":"))
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO days(day, updated_utc, payload) VALUES (?,?,?) "
                "ON CONFLICT(day) DO UPDATE SET updated_utc = excluded.updated_utc, payload = excluded.payload",
                (day_key, utc_ts_ms(), payload),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, day_key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM days WHERE day = ?", (day_key,))
            conn.commit()
        finally:
            conn.close()

    def keys(self) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT day FROM days ORDER BY day").fetchall()
        finally:
            conn.close()
        return [r[0] for r in rows]
