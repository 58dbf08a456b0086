from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Dict, Any, Callable, Type
import time
from datetime import datetime, timezone

# --- timing helpers ---
def wall_ms() -> int:
    # Epoch milliseconds; DayStats timestamps are wall-clock so restarts line up
    return int(time.time() * 1000)

def utc_iso(at_ms: Optional[int] = None) -> str:
    ms = wall_ms() if at_ms is None else at_ms
    dt = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

def day_key(at_ms: int) -> str:
    return datetime.fromtimestamp(at_ms / 1000.0, tz=timezone.utc).date().isoformat()

DAY_MS = 24 * 60 * 60 * 1000

def day_start_ms(day: str) -> int:
    """UTC midnight opening an ISO date, in epoch ms."""
    dt = datetime.fromisoformat(day).replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)

# --- core enums ---
class EventType(Enum):
    """Top-level classifier for event routing and replay."""
    EDIT = auto()
    SELECTION = auto()
    ACTIVE_EDITOR = auto()
    DIAGNOSTICS = auto()
    UNDO_REDO = auto()
    TASK_END = auto()
    WINDOW_FOCUS = auto()

class HistoryAction(Enum):
    UNDO = "undo"
    REDO = "redo"

# --- base event ---
@dataclass(frozen=True)
class BaseEvent:
    """Common shape for all editor events."""
    etype: EventType = field(init=False)         # auto-set by subclasses
    at_ms: Optional[int] = None                  # host timestamp; None = "now" on arrival
    file_key: Optional[str] = None               # workspace-relative path when resolvable

    def to_record(self) -> Dict[str, Any]:
        return {
            "etype": self.etype.name,
            "at_ms": self.at_ms,
            "file_key": self.file_key,
        }

# --- edit event ---
@dataclass(frozen=True)
class EditEvent(BaseEvent):
    """One document change: lengths only, the inserted text never leaves the host."""
    inserted_len: int = 0
    deleted_len: int = 0
    inserted_newlines: int = 0
    changes: int = 1                             # content changes in this edit
    language_id: Optional[str] = None
    document_text: Optional[str] = None          # only set when pattern analysis is wanted

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.EDIT)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "inserted_len": self.inserted_len,
            "deleted_len": self.deleted_len,
            "inserted_newlines": self.inserted_newlines,
            "changes": self.changes,
            "language_id": self.language_id,
        })
        return base

# --- selection event ---
@dataclass(frozen=True)
class SelectionEvent(BaseEvent):
    """Primary selection moved; previous and current anchors as (line, column)."""
    prev_line: int = 0
    prev_col: int = 0
    line: int = 0
    col: int = 0

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.SELECTION)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "prev_line": self.prev_line,
            "prev_col": self.prev_col,
            "line": self.line,
            "col": self.col,
        })
        return base

@dataclass(frozen=True)
class ActiveEditorEvent(BaseEvent):
    """Active editor changed to file_key (None when no editor has focus)."""

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.ACTIVE_EDITOR)

@dataclass(frozen=True)
class DiagnosticsEvent(BaseEvent):
    """Error-severity diagnostics currently visible (a level, not a delta)."""
    error_count: int = 0

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.DIAGNOSTICS)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["error_count"] = self.error_count
        return base

@dataclass(frozen=True)
class UndoRedoEvent(BaseEvent):
    action: HistoryAction = HistoryAction.UNDO

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.UNDO_REDO)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["action"] = self.action.value
        return base

@dataclass(frozen=True)
class TaskEndEvent(BaseEvent):
    """A build/shell task finished (counted as a compile attempt)."""
    task_type: str = "shell"
    success: bool = True

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.TASK_END)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"task_type": self.task_type, "success": self.success})
        return base

@dataclass(frozen=True)
class WindowFocusEvent(BaseEvent):
    """Editor window gained or lost OS focus."""
    focused: bool = True

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.WINDOW_FOCUS)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["focused"] = self.focused
        return base


_EVENT_CLASSES: Dict[str, Type[BaseEvent]] = {
    EventType.EDIT.name: EditEvent,
    EventType.SELECTION.name: SelectionEvent,
    EventType.ACTIVE_EDITOR.name: ActiveEditorEvent,
    EventType.DIAGNOSTICS.name: DiagnosticsEvent,
    EventType.UNDO_REDO.name: UndoRedoEvent,
    EventType.TASK_END.name: TaskEndEvent,
    EventType.WINDOW_FOCUS.name: WindowFocusEvent,
}

_FIELD_CASTS: Dict[str, Callable[[Any], Any]] = {
    "action": HistoryAction,
}

def event_from_record(rec: Dict[str, Any]) -> BaseEvent:
    """
    Inverse of to_record() for replay files. Unknown keys are ignored;
    raises ValueError for an unknown etype.
    """
    name = str(rec.get("etype", "")).upper()
    cls = _EVENT_CLASSES.get(name)
    if cls is None:
        raise ValueError(f"unknown event type: {rec.get('etype')!r}")
    allowed = {f for f in cls.__dataclass_fields__ if f != "etype"}
    kwargs = {}
    for k, v in rec.items():
        if k not in allowed:
            continue
        cast = _FIELD_CASTS.get(k)
        kwargs[k] = cast(v) if cast and v is not None else v
    return cls(**kwargs)
