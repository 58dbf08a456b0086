# core/utils/queueing.py
from __future__ import annotations
from queue import Queue, Full, Empty
import structlog

log = structlog.get_logger()

def safe_put(q: Queue, item) -> bool:
    """
    Put without blocking; if the queue is full, drop the oldest event and retry.
    Hook threads never stall on a slow consumer. Returns False if an event was dropped.
    """
    try:
        q.put_nowait(item)
        return True
    except Full:
        try:
            dropped = q.get_nowait()
            log.debug("queue.drop_oldest", etype=getattr(getattr(dropped, "etype", None), "name", None))
        except Empty:
            pass
        q.put_nowait(item)
        return False
