from __future__ import annotations
import threading
import time
from queue import Queue, Empty
from typing import Callable, Optional
import structlog

from app.analytics.config import MonitorConfig
from app.controller.event_bus import event_queue
from app.controller.monitor import Monitor, WindowResult
from core.hooks.events import BaseEvent
from core.storage.csv_log import CsvLogSink
from core.storage.session_store import SessionStore
from core.storage.sqlite_repository import SqliteDayRepository

log = structlog.get_logger()

class MonitorRuntime:
    """
    Hosts a Monitor on a background consumer thread.

    Hooks only enqueue events; the consumer thread is the single place where
    events are handled and where the idle-check and window-tick cadences fire,
    so Monitor state is never touched concurrently.
    """
    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        on_window: Optional[Callable[[WindowResult], None]] = None,
        on_trigger: Optional[Callable[[WindowResult], None]] = None,
        use_keyboard: bool = True,
        use_focus: bool = True,
        queue: Optional[Queue] = None,
        store: Optional[SessionStore] = None,
    ):
        self.cfg = config or MonitorConfig()
        self.q: Queue = queue if queue is not None else event_queue
        store = store or SessionStore(SqliteDayRepository(self.cfg.db_path))
        sink = CsvLogSink(self.cfg.log_path) if self.cfg.enable_logging else None
        self.monitor = Monitor(self.cfg, store=store, sink=sink, on_window=on_window, on_trigger=on_trigger)
        self.use_keyboard = use_keyboard
        self.use_focus = use_focus

        self._consumer_thr: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()

    def start(self) -> None:
        if self.monitor.running:
            return
        self.monitor.start()
        self._stop_evt.clear()
        self._consumer_thr = threading.Thread(target=self._consume_loop, daemon=True)
        self._consumer_thr.start()
        self.monitor.subscribe("consumer", self._stop_consumer)

        # hook libraries are imported lazily: pynput needs a display
        if self.use_keyboard:
            from core.hooks.keyboard_listener import KeyboardHook
            kbd = KeyboardHook(self.q)
            kbd.start()
            self.monitor.subscribe("keyboard", kbd.stop)
        if self.use_focus:
            from core.focus.focus_tracker import FocusTracker
            focus = FocusTracker(self.q, poll_sec=0.5)
            focus.start()
            self.monitor.subscribe("focus", focus.stop)
        log.info("runtime.start", keyboard=self.use_keyboard, focus=self.use_focus)

    def stop(self) -> None:
        # disposes hooks first (reverse order), then the consumer, then flushes
        self.monitor.stop()
        log.info("runtime.stop")

    def submit(self, ev: BaseEvent) -> None:
        """Enqueue an event from the host (editor bridge, tests)."""
        self.q.put(ev)

    def _stop_consumer(self) -> None:
        self._stop_evt.set()
        if self._consumer_thr:
            self._consumer_thr.join(timeout=2.0)
            self._consumer_thr = None

    def _handle(self, ev: BaseEvent) -> None:
        try:
            self.monitor.handle(ev)
        except Exception as e:
            log.warning("monitor.handle.error", etype=getattr(getattr(ev, "etype", None), "name", None), err=str(e))

    def _consume_loop(self):
        idle_every = self.cfg.idle_check_seconds
        window_every = self.cfg.window_seconds
        next_idle = time.monotonic() + idle_every
        next_tick = time.monotonic() + window_every

        while not self._stop_evt.is_set():
            wait = min(next_idle, next_tick) - time.monotonic()
            try:
                ev: Optional[BaseEvent] = self.q.get(timeout=min(0.5, max(0.0, wait)))
            except Empty:
                ev = None
            if ev is not None:
                self._handle(ev)

            now = time.monotonic()
            if now >= next_idle:
                next_idle = now + idle_every
                try:
                    self.monitor.check_idle()
                except Exception as e:
                    log.warning("monitor.idle_check.error", err=str(e))
            if now >= next_tick:
                next_tick = now + window_every
                try:
                    self.monitor.tick()
                except Exception as e:
                    log.warning("monitor.tick.error", err=str(e))

        # hooks are already stopped; handle what they left behind
        while True:
            try:
                ev = self.q.get_nowait()
            except Empty:
                break
            self._handle(ev)
