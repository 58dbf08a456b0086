from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Optional

@dataclass
class EditorContext:
    file_key: Optional[str] = None
    language_id: Optional[str] = None
    since_ms: int = 0

class ContextState:
    """Which file activity is currently attributed to."""
    def __init__(self):
        self._lock = threading.RLock()
        self._current = EditorContext()

    def update(self, file_key: Optional[str], language_id: Optional[str], since_ms: int) -> bool:
        """Returns True when the focused file actually changed."""
        with self._lock:
            changed = file_key != self._current.file_key
            lang = language_id if language_id is not None or changed else self._current.language_id
            self._current = EditorContext(file_key=file_key, language_id=lang,
                                          since_ms=since_ms if changed else self._current.since_ms)
            return changed

    def get_current(self) -> EditorContext:
        with self._lock:
            return self._current

    def clear(self) -> None:
        with self._lock:
            self._current = EditorContext()
