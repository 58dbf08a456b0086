from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

# idleEvents types
IDLE = "idle"
RESUME = "resume"
ERROR = "error"
COMPILE = "compile"


@dataclass
class SessionEvent:
    type: str
    at: int
    duration_ms: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_open_idle(self) -> bool:
        return self.type == IDLE and self.duration_ms is None

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "at": self.at, "durationMs": self.duration_ms}
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "SessionEvent":
        return cls(type=d["type"], at=int(d["at"]), duration_ms=_opt_int(d.get("durationMs")),
                   metadata=d.get("metadata"))


@dataclass
class PatternLocation:
    file: str
    line: int
    column: int


@dataclass
class CodePattern:
    type: str                  # function | loop | conditional | class | bug_pattern
    count: int
    complexity: Optional[int] = None
    locations: List[PatternLocation] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "type": self.type,
            "count": self.count,
            "locations": [{"file": l.file, "line": l.line, "column": l.column} for l in self.locations],
        }
        if self.complexity is not None:
            out["complexity"] = self.complexity
        return out

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "CodePattern":
        return cls(
            type=d["type"],
            count=int(d["count"]),
            complexity=_opt_int(d.get("complexity")),
            locations=[PatternLocation(l["file"], int(l["line"]), int(l["column"])) for l in d.get("locations", [])],
        )


@dataclass
class FileStats:
    keystrokes: int = 0
    active_ms: int = 0
    errors: int = 0
    compile_attempts: int = 0
    undo_count: int = 0
    redo_count: int = 0
    last_modified: Optional[int] = None
    code_patterns: List[CodePattern] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "keystrokes": self.keystrokes,
            "activeMs": self.active_ms,
            "errors": self.errors,
            "compileAttempts": self.compile_attempts,
            "undoCount": self.undo_count,
            "redoCount": self.redo_count,
            "lastModified": self.last_modified,
            "codePatterns": [p.to_json() for p in self.code_patterns],
        }

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "FileStats":
        return cls(
            keystrokes=int(d.get("keystrokes", 0)),
            active_ms=int(d.get("activeMs", 0)),
            errors=int(d.get("errors", 0)),
            compile_attempts=int(d.get("compileAttempts", 0)),
            undo_count=int(d.get("undoCount", 0)),
            redo_count=int(d.get("redoCount", 0)),
            last_modified=_opt_int(d.get("lastModified")),
            code_patterns=[CodePattern.from_json(p) for p in d.get("codePatterns", [])],
        )


@dataclass
class ScoreRecord:
    """One window tick: the score (0 while calibrating) and the trigger decision."""
    at: int
    score: float
    triggered: bool
    calibrating: bool = False
    features: Dict[str, float] = field(default_factory=dict)
    self_report: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "at": self.at,
            "score": self.score,
            "triggered": self.triggered,
            "calibrating": self.calibrating,
            "features": dict(self.features),
            "selfReport": self.self_report,
        }

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "ScoreRecord":
        return cls(
            at=int(d["at"]),
            score=float(d["score"]),
            triggered=bool(d["triggered"]),
            calibrating=bool(d.get("calibrating", False)),
            features={k: float(v) for k, v in (d.get("features") or {}).items()},
            self_report=_opt_int(d.get("selfReport")),
        )


@dataclass
class DayStats:
    """
    Aggregate root for one calendar day (UTC ISO date).

    activeMs + idleMs never exceeds (now - startedAt); at most one idle event
    is open (duration_ms None) and it is always the last idle event.
    """
    day: str
    started_at: int
    last_activity_at: int
    keystrokes: int = 0
    active_ms: int = 0
    idle_ms: int = 0
    idle_events: List[SessionEvent] = field(default_factory=list)
    currently_idle: bool = False
    per_file: Dict[str, FileStats] = field(default_factory=dict)
    inter_key_avg_ms: Optional[int] = None
    undo_count: int = 0
    redo_count: int = 0
    compile_attempts: int = 0
    error_count: int = 0
    file_switches: int = 0
    code_patterns: List[CodePattern] = field(default_factory=list)
    score_history: List[ScoreRecord] = field(default_factory=list)

    @classmethod
    def fresh(cls, day: str, now: int) -> "DayStats":
        return cls(day=day, started_at=now, last_activity_at=now)

    def file_entry(self, key: str, now: Optional[int] = None) -> FileStats:
        fs = self.per_file.get(key)
        if fs is None:
            fs = FileStats(last_modified=now)
            self.per_file[key] = fs
        return fs

    def open_idle(self) -> Optional[SessionEvent]:
        for ev in reversed(self.idle_events):
            if ev.type == IDLE:
                return ev if ev.duration_ms is None else None
        return None

    def to_json(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "keystrokes": self.keystrokes,
            "activeMs": self.active_ms,
            "idleMs": self.idle_ms,
            "startedAt": self.started_at,
            "lastActivityAt": self.last_activity_at,
            "currentlyIdle": self.currently_idle,
            "interKeyAvgMs": self.inter_key_avg_ms,
            "idleEvents": [e.to_json() for e in self.idle_events],
            "perFile": {k: v.to_json() for k, v in self.per_file.items()},
            "undoCount": self.undo_count,
            "redoCount": self.redo_count,
            "compileAttempts": self.compile_attempts,
            "errorCount": self.error_count,
            "fileSwitches": self.file_switches,
            "codePatterns": [p.to_json() for p in self.code_patterns],
            "scoreHistory": [s.to_json() for s in self.score_history],
        }

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "DayStats":
        return cls(
            day=d["day"],
            started_at=int(d["startedAt"]),
            last_activity_at=int(d["lastActivityAt"]),
            keystrokes=int(d.get("keystrokes", 0)),
            active_ms=int(d.get("activeMs", 0)),
            idle_ms=int(d.get("idleMs", 0)),
            idle_events=[SessionEvent.from_json(e) for e in d.get("idleEvents", [])],
            currently_idle=bool(d.get("currentlyIdle", False)),
            per_file={k: FileStats.from_json(v) for k, v in (d.get("perFile") or {}).items()},
            inter_key_avg_ms=_opt_int(d.get("interKeyAvgMs")),
            undo_count=int(d.get("undoCount", 0)),
            redo_count=int(d.get("redoCount", 0)),
            compile_attempts=int(d.get("compileAttempts", 0)),
            error_count=int(d.get("errorCount", 0)),
            file_switches=int(d.get("fileSwitches", 0)),
            code_patterns=[CodePattern.from_json(p) for p in d.get("codePatterns", [])],
            score_history=[ScoreRecord.from_json(s) for s in d.get("scoreHistory", [])],
        )


def _opt_int(v: Any) -> Optional[int]:
    return None if v is None else int(v)
