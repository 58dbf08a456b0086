from __future__ import annotations
import math
from typing import Callable, Optional
import structlog

from core.hooks.events import wall_ms, day_key, day_start_ms, DAY_MS
from core.storage.day_stats import SessionEvent, IDLE, RESUME
from core.storage.session_store import SessionStore

log = structlog.get_logger()

# weight of the previous average in the inter-key moving average
INTER_KEY_SMOOTHING = 0.8


class TimeAccountant:
    """
    Two-state {Active, Idle} timeline over today's DayStats.

    mark_activity() and check_idle() both mutate the same timeline; the time
    between the last activity and "now" is credited exactly once:
    - while active, every mark_activity() credits (now - lastActivityAt)
    - on resume, the open idle span [idleStart, now] goes to idleMs and only
      [lastActivityAt, idleStart] goes to activeMs
    """
    def __init__(self, store: SessionStore, clock: Callable[[], int] = wall_ms):
        self.store = store
        self.clock = clock
        self._last_key_at: Optional[int] = None
        self._day: Optional[str] = None
        self._last_file: Optional[str] = None

    def today(self) -> str:
        return day_key(self.clock())

    def mark_activity(self, file_key: Optional[str] = None) -> Optional[SessionEvent]:
        """Returns the resume event when this activity ended an idle span."""
        now = self.clock()
        day = day_key(now)
        self._roll_over(day, now)
        resumed: Optional[SessionEvent] = None
        with self.store.mutate(day) as s:
            active_until = now
            if s.currently_idle:
                span = s.open_idle()
                if span is not None:
                    span.duration_ms = max(0, now - span.at)
                    s.idle_ms += span.duration_ms
                    active_until = span.at
                s.currently_idle = False
                resumed = SessionEvent(type=RESUME, at=now)
                s.idle_events.append(resumed)

            delta = max(0, active_until - s.last_activity_at)
            if delta > 0:
                s.active_ms += delta
                if file_key:
                    self.store.attribute_file(day, file_key, delta_active_ms=delta, delta_keystrokes=0)
            s.last_activity_at = max(s.last_activity_at, now)
        self._last_file = file_key

        if resumed is not None:
            log.info("idle.resume", day=day, at=now)
        return resumed

    def check_idle(self, idle_threshold_ms: int) -> Optional[SessionEvent]:
        """Opens an idle span when nothing happened for idle_threshold_ms; returns it."""
        now = self.clock()
        day = day_key(now)
        self._roll_over(day, now)
        opened: Optional[SessionEvent] = None
        with self.store.mutate(day) as s:
            if not s.currently_idle and now - s.last_activity_at >= idle_threshold_ms:
                s.currently_idle = True
                opened = SessionEvent(type=IDLE, at=now)
                s.idle_events.append(opened)
        if opened is not None:
            log.info("idle.start", day=day, at=now, threshold_ms=idle_threshold_ms)
        return opened

    def resume_session(self, idle_threshold_ms: int) -> Optional[SessionEvent]:
        """
        Called when monitoring (re)starts. Downtime longer than the idle
        threshold becomes an idle span starting at the last recorded activity,
        so the next mark_activity() does not credit it as active time.
        """
        now = self.clock()
        day = day_key(now)
        if self._day is None:
            earlier = [d for d in self.store.days() if d < day]
            self._day = earlier[-1] if earlier else None
        self._roll_over(day, now)
        opened: Optional[SessionEvent] = None
        with self.store.mutate(day) as s:
            gap = now - s.last_activity_at
            if not s.currently_idle and gap >= idle_threshold_ms:
                s.currently_idle = True
                opened = SessionEvent(type=IDLE, at=s.last_activity_at, metadata={"reason": "restart"})
                s.idle_events.append(opened)
        self._last_key_at = None
        if opened is not None:
            log.info("idle.restart_gap", day=day, gap_ms=gap)
        return opened

    def record_keystroke(self, file_key: Optional[str], changes: int = 1) -> None:
        """Keystroke counters and the inter-key moving average, then activity."""
        now = self.clock()
        day = day_key(now)
        self._roll_over(day, now)
        changes = max(0, int(changes))
        with self.store.mutate(day) as s:
            s.keystrokes += changes
            if self._last_key_at is not None:
                gap = max(0, now - self._last_key_at)
                if s.inter_key_avg_ms is None:
                    s.inter_key_avg_ms = gap
                else:
                    blended = s.inter_key_avg_ms * INTER_KEY_SMOOTHING + gap * (1.0 - INTER_KEY_SMOOTHING)
                    s.inter_key_avg_ms = int(math.floor(blended + 0.5))
            if file_key:
                self.store.attribute_file(day, file_key, delta_active_ms=0, delta_keystrokes=changes)
        self._last_key_at = now
        self.mark_activity(file_key)

    def _roll_over(self, day: str, now: int) -> None:
        """
        First touch of a new day: an idle span still open on the previous day
        is closed at that day's end (or now, if earlier), and the wait before
        it is credited as active, as a resume would have done.
        """
        prev, self._day = self._day, day
        if prev is None or prev == day:
            return
        day_end = min(now, day_start_ms(prev) + DAY_MS)
        closed: Optional[SessionEvent] = None
        with self.store.mutate(prev) as s:
            if not s.currently_idle:
                return
            span = s.open_idle()
            if span is not None:
                span.duration_ms = max(0, day_end - span.at)
                s.idle_ms += span.duration_ms
                delta = max(0, span.at - s.last_activity_at)
                if delta > 0:
                    s.active_ms += delta
                    if self._last_file:
                        self.store.attribute_file(prev, self._last_file, delta_active_ms=delta, delta_keystrokes=0)
                    s.last_activity_at = span.at
                closed = span
            s.currently_idle = False
        self._last_key_at = None
        log.info("day.rollover", closed_day=prev, day=day,
                 idle_ms=closed.duration_ms if closed is not None else None)
