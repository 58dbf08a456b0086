from __future__ import annotations
import argparse, json, signal, sys, threading
from typing import Any, Dict, Iterable, List, Optional, TextIO
import structlog

from app.analytics.config import MonitorConfig
from app.controller.monitor import Monitor, WindowResult
from app.logging_config import configure_logging
from core.hooks.events import BaseEvent, event_from_record, wall_ms, day_key
from core.storage.csv_log import CsvLogSink
from core.storage.session_store import SessionStore
from core.storage.sqlite_repository import SqliteDayRepository

log = structlog.get_logger()

SELF_REPORT = "SELF_REPORT"


class ReplayClock:
    """Millisecond clock that only moves when the replay says so."""
    def __init__(self, now_ms: int = 0):
        self.now_ms = int(now_ms)

    def set(self, at_ms: int) -> None:
        # never run backwards; out-of-order records land on the current time
        self.now_ms = max(self.now_ms, int(at_ms))

    def __call__(self) -> int:
        return self.now_ms


def load_config(path: Optional[str]) -> MonitorConfig:
    if not path:
        return MonitorConfig()
    with open(path, "r", encoding="utf-8") as f:
        return MonitorConfig.from_mapping(json.load(f))


def read_records(lines: Iterable[str]) -> List[Dict[str, Any]]:
    out = []
    for n, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            rec = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"line {n}: not JSON ({e.msg})") from e
        if not isinstance(rec, dict):
            raise ValueError(f"line {n}: expected an object")
        out.append(rec)
    return out


def replay(records: List[Dict[str, Any]], cfg: MonitorConfig, store: Optional[SessionStore] = None,
           sink: Optional[CsvLogSink] = None, out: Optional[TextIO] = None) -> List[WindowResult]:
    """
    Feed recorded events through a Monitor on a replay clock. Idle checks and
    window ticks fire at their configured cadence, interleaved with the events
    by timestamp; records without at_ms happen at the current replay time.
    A record {"etype": "SELF_REPORT", "value": n} files a self report.
    """
    if not records:
        return []
    first = next((r["at_ms"] for r in records if r.get("at_ms") is not None), 0)
    clock = ReplayClock(first)
    store = store or SessionStore(clock=clock)
    store.clock = clock
    if sink is not None:
        sink.clock = clock
    results: List[WindowResult] = []

    def on_window(res: WindowResult) -> None:
        results.append(res)
        if out is not None:
            out.write(json.dumps(res.to_record(), sort_keys=True) + "\n")

    mon = Monitor(cfg, store=store, sink=sink, clock=clock, on_window=on_window)
    idle_every = int(cfg.idle_check_seconds * 1000)
    window_every = int(cfg.window_seconds * 1000)
    mon.start()
    next_idle = clock() + idle_every
    next_tick = clock() + window_every

    def run_timers_until(t: int) -> None:
        nonlocal next_idle, next_tick
        while min(next_idle, next_tick) <= t:
            if next_idle <= next_tick:
                clock.set(next_idle)
                mon.check_idle()
                next_idle += idle_every
            else:
                clock.set(next_tick)
                mon.tick()
                next_tick += window_every

    for rec in records:
        at = rec.get("at_ms")
        if at is not None:
            run_timers_until(int(at))
            clock.set(int(at))
        if str(rec.get("etype", "")).upper() == SELF_REPORT:
            mon.record_self_report(int(rec.get("value", 0)))
            continue
        ev: BaseEvent = event_from_record(rec)
        mon.handle(ev)

    # close the window the last event fell into
    run_timers_until(next_tick)
    mon.stop()
    log.info("replay.done", events=len(records), windows=len(results),
             triggers=sum(1 for r in results if r.triggered))
    return results


def reset_day(store: SessionStore, day: str, confirmed: bool) -> None:
    if not confirmed:
        raise ValueError(f"refusing to reset {day} without --yes")
    store.reset(day)
    store.flush()


def run_live(cfg: MonitorConfig) -> None:
    from app.controller.runner import MonitorRuntime

    done = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: done.set())

    def on_trigger(res: WindowResult) -> None:
        print(f"[editpulse] elevated risk at {res.day}: score {res.score:.2f}", flush=True)

    rt = MonitorRuntime(cfg, on_trigger=on_trigger)
    rt.start()
    log.info("app.start", msg="Edit Pulse running; Ctrl+C to stop")
    done.wait()
    rt.stop()
    log.info("app.stop", msg="Exited cleanly")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="editpulse", description="Edit Pulse behavioral risk monitor")
    ap.add_argument("--config", help="JSON file with camelCase options")
    ap.add_argument("--db", help="override dbPath")
    ap.add_argument("--debug", action="store_true")
    ap.add_argument("--console-logs", action="store_true", help="human-readable logs instead of JSON")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Monitor live keyboard and window focus")

    p_replay = sub.add_parser("replay", help="Replay a JSON-lines event file")
    p_replay.add_argument("file")
    p_replay.add_argument("--dry-run", action="store_true", help="keep day stats in memory, write no CSV")

    p_export = sub.add_parser("export", help="Print one day's stats as JSON")
    p_export.add_argument("--day", help="ISO date (default: today, UTC)")
    p_export.add_argument("--out", help="write to file instead of stdout")

    p_reset = sub.add_parser("reset", help="Wipe one day's stats")
    p_reset.add_argument("--day", help="ISO date (default: today, UTC)")
    p_reset.add_argument("--yes", action="store_true", help="confirm the reset")

    sub.add_parser("days", help="List stored days")

    args = ap.parse_args(argv)
    configure_logging(debug=args.debug, json_logs=not args.console_logs)
    cfg = load_config(args.config)
    db_path = args.db or cfg.db_path

    if args.cmd == "run":
        run_live(cfg)
        return 0

    if args.cmd == "replay":
        with open(args.file, "r", encoding="utf-8") as f:
            records = read_records(f)
        if args.dry_run:
            store, sink = SessionStore(), None
        else:
            store = SessionStore(SqliteDayRepository(db_path))
            sink = CsvLogSink(cfg.log_path) if cfg.enable_logging else None
        replay(records, cfg, store=store, sink=sink, out=sys.stdout)
        return 0

    store = SessionStore(SqliteDayRepository(db_path))

    if args.cmd == "days":
        for d in store.days():
            print(d)
        return 0

    day = args.day or day_key(wall_ms())

    if args.cmd == "export":
        if args.day and day not in store.days():
            print(f"no stats for {day}", file=sys.stderr)
            return 1
        text = json.dumps(store.read(day).to_json(), indent=2)
        if args.out:
            with open(args.out, "w", encoding="utf-8") as f:
                f.write(text + "\n")
        else:
            print(text)
        return 0

    if args.cmd == "reset":
        try:
            reset_day(store, day, args.yes)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 2
        print(f"reset {day}")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
