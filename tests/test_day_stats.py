# tests/test_day_stats.py
# How to run:
#   pytest -q
#
# What this covers:
#   - JSON export field names and import reconstructing an equal object
#   - open_idle() only returns a still-open idle span

from core.storage.day_stats import (
    DayStats, SessionEvent, FileStats, CodePattern, PatternLocation, ScoreRecord, IDLE, RESUME, ERROR,
)

T0 = 1_700_000_000_000

def _populated() -> DayStats:
    s = DayStats.fresh("2023-11-14", T0)
    s.keystrokes = 42
    s.active_ms = 120_000
    s.idle_ms = 5_000
    s.inter_key_avg_ms = 180
    s.idle_events = [
        SessionEvent(IDLE, T0 + 65_000, duration_ms=5_000),
        SessionEvent(RESUME, T0 + 70_000),
        SessionEvent(ERROR, T0 + 71_000, metadata={"consecutiveErrors": 1}),
    ]
    fs = s.file_entry("src/a.py", T0)
    fs.keystrokes = 40
    fs.active_ms = 100_000
    fs.code_patterns = [CodePattern("loop", 1, locations=[PatternLocation("src/a.py", 3, 4)])]
    s.code_patterns = [CodePattern("function", 2, complexity=4)]
    s.score_history = [ScoreRecord(T0 + 60_000, 0.0, False, calibrating=True,
                                   features={"keysPerMin": 12.0}, self_report=3)]
    s.undo_count = 2
    s.file_switches = 1
    return s

def test_json_field_names():
    d = _populated().to_json()
    for name in ("day", "keystrokes", "activeMs", "idleMs", "startedAt", "lastActivityAt",
                 "currentlyIdle", "interKeyAvgMs", "idleEvents", "perFile"):
        assert name in d
    assert d["idleEvents"][0] == {"type": "idle", "at": T0 + 65_000, "durationMs": 5_000}
    assert d["perFile"]["src/a.py"]["activeMs"] == 100_000
    assert d["scoreHistory"][0]["selfReport"] == 3

def test_json_import_reconstructs_equal_object():
    s = _populated()
    assert DayStats.from_json(s.to_json()) == s
    empty = DayStats.fresh("2023-11-15", T0)
    assert DayStats.from_json(empty.to_json()) == empty

def test_open_idle():
    s = DayStats.fresh("2023-11-14", T0)
    assert s.open_idle() is None
    s.idle_events.append(SessionEvent(IDLE, T0))
    assert s.open_idle() is s.idle_events[-1]
    s.idle_events[-1].duration_ms = 10
    s.idle_events.append(SessionEvent(ERROR, T0 + 20))
    assert s.open_idle() is None

def test_file_entry_creates_once():
    s = DayStats.fresh("2023-11-14", T0)
    fs = s.file_entry("a.py", T0 + 5)
    assert fs == FileStats(last_modified=T0 + 5)
    assert s.file_entry("a.py", T0 + 9) is fs
