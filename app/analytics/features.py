# app/analytics/features.py
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Mapping
import numpy as np

from app.analytics.config import FeatureKey, FEATURE_KEYS
from core.hooks.events import wall_ms

# Deleted characters per estimated line of code. Deletions have no text, so
# deleted LOC is approximated as ceil(deleted_chars / AVG_LINE_LENGTH).
AVG_LINE_LENGTH = 40

# Selection moves at least this far count as a cursor jump
JUMP_MIN_LINES = 5
JUMP_MIN_COLS = 20


class FeatureVector(Mapping[FeatureKey, float]):
    """Immutable FeatureKey -> float mapping for exactly one window."""
    __slots__ = ("_values",)

    def __init__(self, values: Mapping[FeatureKey, float]):
        self._values = np.array([float(values.get(k, 0.0)) for k in FEATURE_KEYS], dtype=float)
        self._values.setflags(write=False)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "FeatureVector":
        return cls(dict(zip(FEATURE_KEYS, (float(x) for x in arr))))

    @classmethod
    def from_names(cls, values: Mapping[str, float]) -> "FeatureVector":
        return cls({FeatureKey(k): v for k, v in values.items()})

    def __getitem__(self, key) -> float:
        try:
            i = FEATURE_KEYS.index(FeatureKey(key))
        except ValueError:
            raise KeyError(key) from None
        return float(self._values[i])

    def __iter__(self) -> Iterator[FeatureKey]:
        return iter(FEATURE_KEYS)

    def __len__(self) -> int:
        return len(FEATURE_KEYS)

    def as_array(self) -> np.ndarray:
        return self._values

    def to_dict(self) -> Dict[str, float]:
        return {k.value: float(v) for k, v in zip(FEATURE_KEYS, self._values)}

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v:.3f}" for k, v in self.to_dict().items())
        return f"FeatureVector({inner})"


def is_cursor_jump(prev_line: int, prev_col: int, line: int, col: int) -> bool:
    return abs(line - prev_line) >= JUMP_MIN_LINES or abs(col - prev_col) >= JUMP_MIN_COLS


@dataclass
class _Counters:
    inserted_chars: int = 0
    backspaces: int = 0
    undo_redo: int = 0
    cursor_jumps: int = 0
    file_switches: int = 0
    churn_loc: int = 0


class FeatureExtractor:
    """
    Accumulates raw interaction counters over a rolling window and converts
    them to per-minute rates on snapshot():
    - rates use the wall time actually elapsed since the previous snapshot, so
      a window cut short by start/stop is not artificially depressed
    - pauseRatio is time since last activity over the nominal window length
    - errorsPerMin is the live diagnostics level, carried across windows
    """
    def __init__(self, window_seconds: float = 60.0, clock: Callable[[], int] = wall_ms):
        self.window_seconds = window_seconds
        self.clock = clock
        now = self.clock()
        self._window_start = now
        self._last_activity = now
        self._c = _Counters()
        self._error_level = 0

    def restart(self) -> None:
        now = self.clock()
        self._window_start = now
        self._last_activity = now
        self._c = _Counters()

    def mark_activity(self) -> None:
        self._last_activity = self.clock()

    def record_edit(self, inserted_len: int, deleted_len: int, inserted_newlines: int = 0) -> None:
        inserted_len = max(0, int(inserted_len))
        deleted_len = max(0, int(deleted_len))
        inserted_newlines = max(0, int(inserted_newlines))

        delta = inserted_len - deleted_len
        if delta > 0:
            self._c.inserted_chars += delta
            self._c.churn_loc += inserted_newlines
        elif delta < 0:
            self._c.backspaces += -delta
            self._c.churn_loc += math.ceil(deleted_len / AVG_LINE_LENGTH)
        else:
            # equal-length replace: only line breaks count as churn
            self._c.churn_loc += inserted_newlines
        self.mark_activity()

    def record_cursor_jump(self) -> None:
        self._c.cursor_jumps += 1
        self.mark_activity()

    def record_file_switch(self) -> None:
        self._c.file_switches += 1
        self.mark_activity()

    def record_undo_redo(self) -> None:
        self._c.undo_redo += 1
        self.mark_activity()

    def record_errors_now(self, count: int) -> None:
        self._error_level = max(0, int(count))

    def snapshot(self) -> FeatureVector:
        now = self.clock()
        elapsed_s = max(1.0, (now - self._window_start) / 1000.0)
        idle_s = max(0.0, (now - self._last_activity) / 1000.0)
        pause_ratio = min(1.0, idle_s / max(1.0, self.window_seconds))

        def per_min(raw: int) -> float:
            return raw * 60.0 / elapsed_s

        c = self._c
        feats = FeatureVector({
            FeatureKey.KEYS_PER_MIN: per_min(c.inserted_chars),
            FeatureKey.BACKSPACES_PER_MIN: per_min(c.backspaces),
            FeatureKey.PAUSE_RATIO: pause_ratio,
            FeatureKey.ERRORS_PER_MIN: float(self._error_level),
            FeatureKey.UNDO_REDO_PER_MIN: per_min(c.undo_redo),
            FeatureKey.CURSOR_JUMPS_PER_MIN: per_min(c.cursor_jumps),
            FeatureKey.FILE_SWITCHES_PER_MIN: per_min(c.file_switches),
            FeatureKey.CODE_CHURN_LOC_PER_MIN: per_min(c.churn_loc),
        })

        # reset window
        self._window_start = now
        self._c = _Counters()
        return feats

    @property
    def window_start(self) -> int:
        return self._window_start

    @property
    def last_activity(self) -> int:
        return self._last_activity
