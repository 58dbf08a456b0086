# tests/test_sqlite_repository.py
# How to run:
#   pytest -q
#
# What this covers:
#   - SQLite-backed day documents survive a reopen
#   - Upsert, delete, ordered keys

from core.storage.day_stats import DayStats, SessionEvent, ScoreRecord, IDLE
from core.storage.session_store import SessionStore
from core.storage.sqlite_repository import SqliteDayRepository

T0 = 1_700_000_000_000

def test_put_get_reopen(tmp_path):
    db = str(tmp_path / "days.sqlite3")
    s = DayStats.fresh("2023-11-14", T0)
    s.keystrokes = 7
    s.idle_events.append(SessionEvent(IDLE, T0 + 1))
    s.score_history.append(ScoreRecord(T0 + 60_000, 2.25, True, features={"keysPerMin": 3.5}))
    s.file_entry("a.py", T0).active_ms = 1_000

    SqliteDayRepository(db).put(s.day, s)
    again = SqliteDayRepository(db)
    assert again.get(s.day) == s
    assert again.get("1999-01-01") is None

def test_upsert_delete_and_keys(tmp_path):
    repo = SqliteDayRepository(str(tmp_path / "days.sqlite3"))
    repo.put("2023-11-15", DayStats.fresh("2023-11-15", T0))
    repo.put("2023-11-14", DayStats.fresh("2023-11-14", T0))
    updated = DayStats.fresh("2023-11-15", T0)
    updated.keystrokes = 3
    repo.put("2023-11-15", updated)

    assert repo.keys() == ["2023-11-14", "2023-11-15"]
    assert repo.get("2023-11-15").keystrokes == 3
    repo.delete("2023-11-14")
    assert repo.keys() == ["2023-11-15"]

def test_session_store_over_sqlite(tmp_path):
    db = str(tmp_path / "days.sqlite3")
    store = SessionStore(SqliteDayRepository(db), clock=lambda: T0)
    with store.mutate("2023-11-14") as s:
        s.error_count = 2
    store.flush()

    reopened = SessionStore(SqliteDayRepository(db), clock=lambda: T0)
    assert reopened.days() == ["2023-11-14"]
    assert reopened.read("2023-11-14").error_count == 2
