# core/utils/subscriptions.py
from __future__ import annotations
import threading
from typing import Callable, List, Optional
import structlog

log = structlog.get_logger()

class Subscription:
    """Capability handle for one event source or timer; dispose() runs its teardown once."""
    def __init__(self, name: str, teardown: Callable[[], None]):
        self.name = name
        self._teardown: Optional[Callable[[], None]] = teardown
        self._lock = threading.Lock()

    @property
    def disposed(self) -> bool:
        return self._teardown is None

    def dispose(self) -> bool:
        with self._lock:
            teardown, self._teardown = self._teardown, None
        if teardown is None:
            return False
        teardown()
        return True

class SubscriptionList:
    """Owned by a lifecycle object; disposed in reverse registration order on stop."""
    def __init__(self):
        self._subs: List[Subscription] = []
        self._lock = threading.Lock()

    def add(self, name: str, teardown: Callable[[], None]) -> Subscription:
        sub = Subscription(name, teardown)
        with self._lock:
            self._subs.append(sub)
        return sub

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)

    def dispose_all(self) -> int:
        with self._lock:
            subs, self._subs = self._subs, []
        count = 0
        for sub in reversed(subs):
            try:
                if sub.dispose():
                    count += 1
            except Exception as e:
                log.warning("subscription.dispose.error", name=sub.name, err=str(e))
        return count
