# app/controller/event_bus.py
from __future__ import annotations
from queue import Queue

# Shared by every event source (editor bridge, keyboard hook, focus tracker).
# Only MonitorRuntime's consumer thread reads from it.
event_queue: Queue = Queue(maxsize=5000)
