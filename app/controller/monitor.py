from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import structlog

from app.analytics.baseline import BaselineCalibrator
from app.analytics.code_patterns import AnalysisScheduler, CodePatternAnalyzer, summarize_files
from app.analytics.config import MonitorConfig
from app.analytics.features import FeatureExtractor, FeatureVector, is_cursor_jump
from app.analytics.risk import HysteresisTrigger, RiskScorer
from app.controller.context_state import ContextState
from app.controller.time_accountant import TimeAccountant
from core.hooks.events import (
    BaseEvent, EditEvent, SelectionEvent, ActiveEditorEvent, DiagnosticsEvent,
    UndoRedoEvent, TaskEndEvent, WindowFocusEvent, HistoryAction, wall_ms, day_key,
)
from core.storage.csv_log import CsvLogSink, CsvRow
from core.storage.day_stats import SessionEvent, ScoreRecord, ERROR, COMPILE
from core.storage.session_store import SessionStore
from core.utils.subscriptions import SubscriptionList

log = structlog.get_logger()

SELF_REPORT_MIN = 1
SELF_REPORT_MAX = 5


@dataclass(frozen=True)
class WindowResult:
    """Everything one window tick produced; handed to UI/log sinks."""
    at_ms: int
    day: str
    features: FeatureVector
    normalized: Optional[FeatureVector]
    score: float
    triggered: bool
    calibrating: bool
    baseline_count: int

    def to_record(self) -> Dict[str, Any]:
        rec: Dict[str, Any] = dict(self.features.to_dict())
        rec.update({
            "at_ms": self.at_ms,
            "day": self.day,
            "score": self.score,
            "triggered": self.triggered,
            "calibrating": self.calibrating,
            "baseline_count": self.baseline_count,
        })
        return rec


class Monitor:
    """
    Wires editor events into time accounting, window features, baseline
    calibration and risk scoring.

    Single-threaded by contract: handle(), check_idle() and tick() must not run
    concurrently (MonitorRuntime calls all three from one consumer thread).
    While calibrator.count() < baseline_windows a tick only feeds the baseline
    and scores 0; afterwards it normalizes, scores and runs the trigger.
    """
    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        store: Optional[SessionStore] = None,
        sink: Optional[CsvLogSink] = None,
        clock: Callable[[], int] = wall_ms,
        on_window: Optional[Callable[[WindowResult], None]] = None,
        on_trigger: Optional[Callable[[WindowResult], None]] = None,
    ):
        self.cfg = config or MonitorConfig()
        self.clock = clock
        self.store = store or SessionStore(clock=clock)
        self.sink = sink
        self.accountant = TimeAccountant(self.store, clock=clock)
        self.extractor = FeatureExtractor(self.cfg.window_seconds, clock=clock)
        self.calibrator = BaselineCalibrator()
        self.scorer = RiskScorer(self.cfg.weights)
        self.trigger = HysteresisTrigger(self.cfg.score_threshold, self.cfg.consecutive_windows)
        self.ctx = ContextState()
        self.patterns = CodePatternAnalyzer()
        self.analysis = AnalysisScheduler(self.cfg.pattern_analysis_seconds, clock=clock)
        self.subscriptions = SubscriptionList()

        self._on_window = on_window
        self._on_trigger = on_trigger
        self._pending_self_report: Optional[int] = None
        self._consecutive_errors = 0
        self._running = False

    # ---- lifecycle ----

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self.accountant.resume_session(self.cfg.idle_ms)
        self.extractor.restart()
        self._running = True
        log.info("monitor.start", day=self.today(), window_s=self.cfg.window_seconds,
                 baseline_windows=self.cfg.baseline_windows, threshold=self.cfg.score_threshold)

    def stop(self) -> None:
        if not self._running:
            return
        disposed = self.subscriptions.dispose_all()
        if self.sink is not None:
            self.sink.flush()
        self.store.flush()
        self._running = False
        log.info("monitor.stop", disposed=disposed)

    def subscribe(self, name: str, teardown: Callable[[], None]):
        return self.subscriptions.add(name, teardown)

    def today(self) -> str:
        return day_key(self.clock())

    # ---- events ----

    def handle(self, ev: BaseEvent) -> None:
        if isinstance(ev, EditEvent):
            self._on_edit(ev)
        elif isinstance(ev, SelectionEvent):
            self._on_selection(ev)
        elif isinstance(ev, ActiveEditorEvent):
            self._on_active_editor(ev)
        elif isinstance(ev, DiagnosticsEvent):
            self._on_diagnostics(ev)
        elif isinstance(ev, UndoRedoEvent):
            self._on_undo_redo(ev)
        elif isinstance(ev, TaskEndEvent):
            self._on_task_end(ev)
        elif isinstance(ev, WindowFocusEvent):
            if ev.focused:
                self.extractor.mark_activity()
                self.accountant.mark_activity(self.ctx.get_current().file_key)
        else:
            log.debug("monitor.event.ignored", etype=getattr(getattr(ev, "etype", None), "name", None))

    def _switch_to(self, file_key: Optional[str], language_id: Optional[str] = None) -> bool:
        prev = self.ctx.get_current().file_key
        changed = self.ctx.update(file_key, language_id, self.clock())
        if changed and file_key is not None and prev is not None:
            self.extractor.record_file_switch()
            with self.store.mutate(self.today()) as s:
                s.file_switches += 1
            return True
        return False

    def _on_edit(self, ev: EditEvent) -> None:
        file_key = ev.file_key or self.ctx.get_current().file_key
        if ev.file_key:
            self._switch_to(ev.file_key, ev.language_id)
        self.extractor.record_edit(ev.inserted_len, ev.deleted_len, ev.inserted_newlines)
        self.accountant.record_keystroke(file_key, ev.changes)

        if ev.document_text is not None and file_key and self.analysis.allow(file_key):
            self._analyze(file_key, ev.document_text, ev.language_id or self.ctx.get_current().language_id)

    def _analyze(self, file_key: str, text: str, language_id: Optional[str]) -> None:
        found = self.patterns.analyze(text, language_id, file_key)
        with self.store.mutate(self.today()) as s:
            s.file_entry(file_key, self.clock()).code_patterns = found
            s.code_patterns = summarize_files({k: fs.code_patterns for k, fs in s.per_file.items()})
        log.debug("patterns.analyzed", file=file_key, kinds=[p.type for p in found])

    def _on_selection(self, ev: SelectionEvent) -> None:
        if is_cursor_jump(ev.prev_line, ev.prev_col, ev.line, ev.col):
            self.extractor.record_cursor_jump()
        else:
            self.extractor.mark_activity()
        self.accountant.mark_activity(ev.file_key or self.ctx.get_current().file_key)

    def _on_active_editor(self, ev: ActiveEditorEvent) -> None:
        self._switch_to(ev.file_key)
        if ev.file_key is not None:
            self.extractor.mark_activity()
            self.accountant.mark_activity(ev.file_key)

    def _on_diagnostics(self, ev: DiagnosticsEvent) -> None:
        self.extractor.record_errors_now(ev.error_count)
        if ev.error_count <= 0:
            self._consecutive_errors = 0
            return
        self._consecutive_errors += 1
        now = self.clock()
        with self.store.mutate(day_key(now)) as s:
            s.error_count += 1
            if ev.file_key:
                s.file_entry(ev.file_key, now).errors += 1
            s.idle_events.append(SessionEvent(type=ERROR, at=now,
                                              metadata={"consecutiveErrors": self._consecutive_errors}))

    def _on_undo_redo(self, ev: UndoRedoEvent) -> None:
        file_key = ev.file_key or self.ctx.get_current().file_key
        self.extractor.record_undo_redo()
        with self.store.mutate(self.today()) as s:
            fs = s.file_entry(file_key, self.clock()) if file_key else None
            if ev.action == HistoryAction.UNDO:
                s.undo_count += 1
                if fs is not None:
                    fs.undo_count += 1
            else:
                s.redo_count += 1
                if fs is not None:
                    fs.redo_count += 1
        self.accountant.mark_activity(file_key)

    def _on_task_end(self, ev: TaskEndEvent) -> None:
        file_key = ev.file_key or self.ctx.get_current().file_key
        now = self.clock()
        with self.store.mutate(day_key(now)) as s:
            s.compile_attempts += 1
            if file_key:
                s.file_entry(file_key, now).compile_attempts += 1
            s.idle_events.append(SessionEvent(type=COMPILE, at=now,
                                              metadata={"success": ev.success, "taskType": ev.task_type}))
        if ev.success:
            self._consecutive_errors = 0

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    # ---- timers ----

    def check_idle(self) -> Optional[SessionEvent]:
        return self.accountant.check_idle(self.cfg.idle_ms)

    def tick(self) -> WindowResult:
        now = self.clock()
        day = day_key(now)
        feats = self.extractor.snapshot()

        normalized: Optional[FeatureVector] = None
        score = 0.0
        triggered = False
        calibrating = self.calibrator.count() < self.cfg.baseline_windows
        if calibrating:
            self.calibrator.add(feats)
            if self.calibrator.count() == self.cfg.baseline_windows:
                log.info("baseline.ready", windows=self.calibrator.count())
        else:
            normalized = self.calibrator.normalize(feats)
            score = self.scorer.score(normalized)
            triggered = self.trigger.update(score)

        self_report, self._pending_self_report = self._pending_self_report, None
        self.store.append(day, ScoreRecord(at=now, score=score, triggered=triggered, calibrating=calibrating,
                                           features=feats.to_dict(), self_report=self_report))
        if self.sink is not None and self.cfg.enable_logging:
            self.sink.add_row(CsvRow(at_ms=now, features=feats.to_dict(), score=score,
                                     triggered=triggered, self_report=self_report))

        result = WindowResult(at_ms=now, day=day, features=feats, normalized=normalized, score=score,
                              triggered=triggered, calibrating=calibrating,
                              baseline_count=self.calibrator.count())
        log.debug("window.tick", day=day, score=round(score, 3), calibrating=calibrating,
                  streak=self.trigger.state.above_threshold_streak)

        if triggered:
            top = list(self.scorer.contributions(normalized).items())[:3]
            log.info("risk.trigger", score=round(score, 3), threshold=self.cfg.score_threshold, top=top)
            if self._on_trigger:
                self._on_trigger(result)
        if self._on_window:
            self._on_window(result)

        self.store.flush()
        self.store.evict_except(day)
        return result

    # ---- peripherals ----

    def record_self_report(self, value: int) -> bool:
        """
        Attach a 1-5 self report to the latest window of today. The CSV row is
        annotated only while it is still buffered. Before the first window of
        the day the report is held for that window. Returns True if it was
        attached to an existing window.
        """
        value = int(value)
        if not SELF_REPORT_MIN <= value <= SELF_REPORT_MAX:
            raise ValueError(f"self report must be {SELF_REPORT_MIN}..{SELF_REPORT_MAX}, got {value}")
        with self.store.mutate(self.today()) as s:
            last = s.score_history[-1] if s.score_history else None
            if last is not None:
                last.self_report = value
        if last is not None:
            in_csv = self.sink is not None and self.sink.annotate_last(value)
            log.info("self_report.attached", value=value, at=last.at, csv_row=in_csv)
            return True
        self._pending_self_report = value
        log.info("self_report.pending", value=value)
        return False

    def export_day(self, day: Optional[str] = None) -> Dict[str, Any]:
        return self.store.read(day or self.today()).to_json()

    def reset_day(self, day: Optional[str] = None) -> None:
        day = day or self.today()
        self.store.reset(day)
        if day == self.today():
            self.ctx.clear()
            self.extractor.restart()
            self.trigger.reset()
            self._consecutive_errors = 0
        self.store.flush()
