from __future__ import annotations
import copy
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Set
import structlog

from core.hooks.events import wall_ms
from core.storage.day_stats import DayStats, ScoreRecord

log = structlog.get_logger()


class DayStatsRepository(Protocol):
    """Persistence seam for DayStats, keyed by ISO date."""
    def get(self, day_key: str) -> Optional[DayStats]: ...
    def put(self, day_key: str, stats: DayStats) -> None: ...
    def delete(self, day_key: str) -> None: ...
    def keys(self) -> List[str]: ...


class InMemoryDayRepository:
    """Dict-backed repository; stores deep copies so callers never alias it."""
    def __init__(self):
        self._days: Dict[str, DayStats] = {}

    def get(self, day_key: str) -> Optional[DayStats]:
        stats = self._days.get(day_key)
        return copy.deepcopy(stats) if stats is not None else None

    def put(self, day_key: str, stats: DayStats) -> None:
        self._days[day_key] = copy.deepcopy(stats)

    def delete(self, day_key: str) -> None:
        self._days.pop(day_key, None)

    def keys(self) -> List[str]:
        return sorted(self._days)


class SessionStore:
    """
    Day-keyed working set over a repository.

    Every mutation goes through mutate(), which holds a re-entrant lock for the
    whole read-modify-write, so readers on other threads (CLI export,
    dashboards) never observe a half-applied update. flush() writes the days
    touched since the last flush back to the repository.
    """
    def __init__(self, repo: Optional[DayStatsRepository] = None, clock: Callable[[], int] = wall_ms):
        self.repo: DayStatsRepository = repo if repo is not None else InMemoryDayRepository()
        self.clock = clock
        self._lock = threading.RLock()
        self._days: Dict[str, DayStats] = {}
        self._dirty: Set[str] = set()

    def get_or_create(self, day_key: str) -> DayStats:
        with self._lock:
            stats = self._days.get(day_key)
            if stats is None:
                stats = self.repo.get(day_key)
                if stats is None:
                    stats = DayStats.fresh(day_key, self.clock())
                    self._dirty.add(day_key)
                    log.info("store.day.created", day=day_key)
                self._days[day_key] = stats
            return stats

    @contextmanager
    def mutate(self, day_key: str) -> Iterator[DayStats]:
        with self._lock:
            stats = self.get_or_create(day_key)
            yield stats
            self._dirty.add(day_key)

    def read(self, day_key: str) -> DayStats:
        """Consistent deep copy of a day, safe to hand to other threads."""
        with self._lock:
            return copy.deepcopy(self.get_or_create(day_key))

    def append(self, day_key: str, row: ScoreRecord) -> None:
        with self.mutate(day_key) as stats:
            stats.score_history.append(row)

    def attribute_file(self, day_key: str, key: str, delta_active_ms: int, delta_keystrokes: int) -> None:
        now = self.clock()
        with self.mutate(day_key) as stats:
            fs = stats.file_entry(key, now)
            fs.active_ms += max(0, int(delta_active_ms))
            fs.keystrokes += max(0, int(delta_keystrokes))
            if delta_keystrokes > 0:
                fs.last_modified = now

    def reset(self, day_key: str) -> DayStats:
        """Wipe a day. Confirmation is the caller's job."""
        with self._lock:
            fresh = DayStats.fresh(day_key, self.clock())
            self._days[day_key] = fresh
            self._dirty.add(day_key)
            log.info("store.day.reset", day=day_key)
            return fresh

    def days(self) -> List[str]:
        with self._lock:
            return sorted(set(self.repo.keys()) | set(self._days))

    def flush(self) -> int:
        with self._lock:
            dirty = sorted(self._dirty)
            for key in dirty:
                self.repo.put(key, self._days[key])
            self._dirty.clear()
        if dirty:
            log.debug("store.flush", days=dirty)
        return len(dirty)

    def evict_except(self, day_key: str) -> None:
        """Drop cached days other than day_key (after rollover, once flushed)."""
        with self._lock:
            for key in list(self._days):
                if key != day_key and key not in self._dirty:
                    del self._days[key]
