from __future__ import annotations
import random
import sys
import threading
import time
from typing import Optional, Tuple, Callable, Iterable
import structlog

from queue import Queue

from core.hooks.events import ActiveEditorEvent, WindowFocusEvent
from core.utils.queueing import safe_put

log = structlog.get_logger()

# Provider signature: returns (app_name, pid, title)
FocusProvider = Callable[[], Tuple[str, Optional[int], Optional[str]]]

EDITOR_APPS = ("code", "code - insiders", "codium", "cursor", "pycharm", "idea", "sublime_text", "subl", "gvim", "emacs")

# --- platform-specific providers ---

def _provider_windows() -> Tuple[str, Optional[int], Optional[str]]:
    try:
        import win32gui, win32process
        import psutil
        hwnd = win32gui.GetForegroundWindow()
        title = win32gui.GetWindowText(hwnd) if hwnd else ""
        tid, pid = win32process.GetWindowThreadProcessId(hwnd) if hwnd else (None, None)
        name = "unknown"
        if pid:
            try:
                name = psutil.Process(pid).name()
            except Exception:
                pass
        return (name or "unknown", pid, title or None)
    except Exception:
        return ("unknown", None, None)

def _provider_macos() -> Tuple[str, Optional[int], Optional[str]]:
    try:
        from AppKit import NSWorkspace
        ws = NSWorkspace.sharedWorkspace()
        app = ws.frontmostApplication()
        name = str(app.localizedName()) if app else "unknown"
        pid = int(app.processIdentifier()) if app else None
        return (name.lower(), pid, None)
    except Exception:
        return ("unknown", None, None)

def _provider_linux() -> Tuple[str, Optional[int], Optional[str]]:
    # Active-window lookup depends on the WM/compositor; no portable answer.
    return ("unknown", None, None)

def default_provider() -> FocusProvider:
    if sys.platform.startswith("win"):
        return _provider_windows
    if sys.platform == "darwin":
        return _provider_macos
    return _provider_linux

def is_editor(app_name: str, editors: Iterable[str] = EDITOR_APPS) -> bool:
    name = (app_name or "").lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name in editors

def file_from_title(title: Optional[str]) -> Optional[str]:
    """'main.py - project - Visual Studio Code' -> 'main.py' (leading dirty marker stripped)."""
    if not title:
        return None
    head = title.split(" - ")[0].strip().lstrip("●*").strip()
    return head or None

class FocusTracker:
    """
    Polls the foreground window. When an editor is in front, its window title
    stands in for the active file: emits ActiveEditorEvent on title change and
    WindowFocusEvent when the editor gains or loses focus.
    """
    def __init__(self, out_q: Queue, provider: Optional[FocusProvider] = None, poll_sec: float = 0.25,
                 editors: Iterable[str] = EDITOR_APPS):
        self.out_q = out_q
        self.provider = provider or default_provider()
        self.editors = tuple(editors)
        self._thr: Optional[threading.Thread] = None
        self._stop = threading.Event()

        self._interval = poll_sec
        self._min_interval = poll_sec
        self._max_interval = 1.0
        self._unchanged_ticks = 0

        self._last: Tuple[str, Optional[int], Optional[str]] = ("", None, None)
        self._editor_focused = False

    def start(self) -> None:
        if self._thr and self._thr.is_alive(): return
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, daemon=True)
        self._thr.start()
        log.info("focus.start")

    def stop(self) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout=1.0)
            self._thr = None
        log.info("focus.stop")

    def poll_once(self) -> bool:
        """One provider read; returns True if focus changed."""
        current = self.provider()
        if current == self._last:
            return False
        self._last = current
        name, _pid, title = current
        in_editor = is_editor(name, self.editors)
        if in_editor != self._editor_focused:
            self._editor_focused = in_editor
            safe_put(self.out_q, WindowFocusEvent(focused=in_editor))
        if in_editor:
            safe_put(self.out_q, ActiveEditorEvent(file_key=file_from_title(title)))
        return True

    def _loop(self):
        while not self._stop.is_set():
            if self.poll_once():
                # reset backoff
                self._interval = self._min_interval
                self._unchanged_ticks = 0
            else:
                self._unchanged_ticks += 1
                if self._interval < self._max_interval and self._unchanged_ticks % 5 == 0:
                    self._interval = min(self._interval * 1.5, self._max_interval)
            time.sleep(self._interval * (0.9 + random.random() * 0.2))
