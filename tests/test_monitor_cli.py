# tests/test_monitor_cli.py
# How to run:
#   pytest -q
#
# What this covers:
#   - Replay of JSON-lines events on a deterministic clock (windows, idle, self report)
#   - reset refuses without confirmation
#   - export / days subcommands against a SQLite file

import io
import json
import pytest
from app.analytics.config import MonitorConfig
from core.hooks.events import EditEvent, day_key
from core.storage.session_store import SessionStore
from core.storage.sqlite_repository import SqliteDayRepository
from tools.monitor_cli import replay, read_records, reset_day, main

T0 = 1_700_000_000_000
DAY = day_key(T0)

def _lines():
    recs = [
        EditEvent(at_ms=T0, file_key="a.py", inserted_len=1).to_record(),
        {"etype": "SELF_REPORT", "value": 3},
        EditEvent(at_ms=T0 + 10_000, file_key="a.py", inserted_len=1).to_record(),
        EditEvent(at_ms=T0 + 130_000, file_key="a.py", inserted_len=1).to_record(),
    ]
    return ["# recorded session", ""] + [json.dumps(r) for r in recs]

def test_replay_drives_windows_and_idle():
    cfg = MonitorConfig(baseline_windows=1, enable_logging=False)
    store = SessionStore()
    out = io.StringIO()
    results = replay(read_records(_lines()), cfg, store=store, out=out)

    # ticks at +60s, +120s and the closing one at +180s
    assert [r.at_ms for r in results] == [T0 + 60_000, T0 + 120_000, T0 + 180_000]
    assert len(out.getvalue().splitlines()) == 3

    s = store.read(DAY)
    assert s.keystrokes == 3
    assert s.idle_ms == 60_000
    assert s.active_ms == 70_000
    assert s.score_history[0].self_report == 3
    assert [e.type for e in s.idle_events] == ["idle", "resume"]

def test_read_records_rejects_garbage():
    with pytest.raises(ValueError):
        read_records(["{not json"])
    with pytest.raises(ValueError):
        read_records(["[1, 2]"])

def test_reset_requires_confirmation():
    store = SessionStore(clock=lambda: T0)
    with pytest.raises(ValueError):
        reset_day(store, DAY, confirmed=False)
    reset_day(store, DAY, confirmed=True)
    assert store.read(DAY).keystrokes == 0

def test_export_and_days_commands(tmp_path, capsys, monkeypatch):
    # keep global logging config untouched by the CLI entry point
    monkeypatch.setattr("tools.monitor_cli.configure_logging", lambda **kw: None)
    db = str(tmp_path / "days.sqlite3")
    store = SessionStore(SqliteDayRepository(db), clock=lambda: T0)
    with store.mutate(DAY) as s:
        s.keystrokes = 12
    store.flush()

    assert main(["--db", db, "days"]) == 0
    assert capsys.readouterr().out.split() == [DAY]

    out_file = tmp_path / "export.json"
    assert main(["--db", db, "export", "--day", DAY, "--out", str(out_file)]) == 0
    assert json.loads(out_file.read_text(encoding="utf-8"))["keystrokes"] == 12

    assert main(["--db", db, "export", "--day", "1999-01-01"]) == 1
    assert main(["--db", db, "reset", "--day", DAY]) == 2
    assert main(["--db", db, "reset", "--day", DAY, "--yes"]) == 0
    assert SqliteDayRepository(db).get(DAY).keystrokes == 0
