from __future__ import annotations
import os, threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional
import structlog

from core.hooks.events import utc_iso, wall_ms

log = structlog.get_logger()

CSV_COLUMNS = (
    "timestamp", "keysPerMin", "backspacesPerMin", "pauseRatio", "errorsPerMin",
    "undoRedoPerMin", "cursorJumpsPerMin", "fileSwitchesPerMin", "codeChurnLocPerMin",
    "score", "triggered", "selfReport",
)
CSV_HEADER = ",".join(CSV_COLUMNS) + "\n"

# feature columns and their decimal places
_FEATURE_PRECISION = (
    ("keysPerMin", 2), ("backspacesPerMin", 2), ("pauseRatio", 3), ("errorsPerMin", 2),
    ("undoRedoPerMin", 2), ("cursorJumpsPerMin", 2), ("fileSwitchesPerMin", 2),
    ("codeChurnLocPerMin", 2),
)


@dataclass
class CsvRow:
    at_ms: int
    features: Dict[str, float]
    score: float
    triggered: bool
    self_report: Optional[int] = None

    def render(self) -> str:
        cells = [utc_iso(self.at_ms)]
        for name, places in _FEATURE_PRECISION:
            cells.append(f"{float(self.features.get(name, 0.0)):.{places}f}")
        cells.append(f"{self.score:.2f}")
        cells.append("1" if self.triggered else "0")
        cells.append("" if self.self_report is None else str(int(self.self_report)))
        return ",".join(cells) + "\n"


class CsvLogSink:
    """
    Append-only per-window CSV log with a small write buffer.
    - header written once, when the file is missing or empty
    - rows flush when max_rows are buffered or flush_sec has passed
    - a failed write keeps rows buffered (bounded) for the next flush
    - the newest buffered row can still take a self report
    """
    def __init__(
        self,
        path: str,
        flush_sec: float = 0.0,
        max_rows: int = 1,
        max_buffer: int = 1000,
        clock: Callable[[], int] = wall_ms,
    ):
        self.path = path
        self.flush_sec = flush_sec
        self.max_rows = max(1, max_rows)
        self.clock = clock
        self._buf: Deque[CsvRow] = deque(maxlen=max_buffer)
        self._lock = threading.RLock()
        self._next_flush = self.clock() + int(self.flush_sec * 1000)

    def add_row(self, row: CsvRow) -> None:
        with self._lock:
            if len(self._buf) == self._buf.maxlen:
                log.warning("csv.buffer.full", dropped_at=self._buf[0].at_ms)
            self._buf.append(row)
        self.flush_if_needed()

    def annotate_last(self, self_report: int) -> bool:
        """Attach a self report to the newest unflushed row; False if none is buffered."""
        with self._lock:
            if not self._buf:
                return False
            self._buf[-1].self_report = int(self_report)
            return True

    def pending(self) -> int:
        with self._lock:
            return len(self._buf)

    def flush_if_needed(self, force: bool = False) -> None:
        now = self.clock()
        with self._lock:
            if not self._buf:
                self._next_flush = now + int(self.flush_sec * 1000)
                return
            if not force and len(self._buf) < self.max_rows and now < self._next_flush:
                return
            batch = list(self._buf)
            self._next_flush = now + int(self.flush_sec * 1000)

            if self._write(batch):
                self._buf.clear()

    def flush(self) -> None:
        self.flush_if_needed(force=True)

    def _write(self, batch) -> bool:
        text = "".join(r.render() for r in batch)
        try:
            parent = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(parent, exist_ok=True)
            needs_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
            with open(self.path, "a", encoding="utf-8", newline="") as f:
                if needs_header:
                    f.write(CSV_HEADER)
                f.write(text)
            return True
        except OSError as e:
            log.warning("csv.flush.error", path=self.path, rows=len(batch), err=str(e))
            return False
