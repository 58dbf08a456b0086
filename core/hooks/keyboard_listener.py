# core/hooks/keyboard_listener.py
from __future__ import annotations
from typing import Set, Optional
from queue import Queue
from pynput import keyboard
import structlog

from .events import BaseEvent, EditEvent, UndoRedoEvent, HistoryAction
from core.utils.queueing import safe_put

log = structlog.get_logger()

MOD_KEYS = {
    keyboard.Key.shift: "shift",
    keyboard.Key.shift_r: "shift",
    keyboard.Key.shift_l: "shift",
    keyboard.Key.ctrl: "ctrl",
    keyboard.Key.ctrl_l: "ctrl",
    keyboard.Key.ctrl_r: "ctrl",
    keyboard.Key.alt: "alt",
    keyboard.Key.alt_l: "alt",
    keyboard.Key.alt_r: "alt",
    keyboard.Key.cmd: "cmd",      # macOS / some Linux
    keyboard.Key.cmd_l: "cmd",
    keyboard.Key.cmd_r: "cmd",
}

DELETE_KEYS = {keyboard.Key.backspace, keyboard.Key.delete}

def key_to_event(key, mods: Set[str]) -> Optional[BaseEvent]:
    """
    Map one key press to an editor-shaped event. Without an editor bridge
    there is no document, so file_key stays None and only aggregate time
    is credited.
    """
    shortcut = "ctrl" in mods or "cmd" in mods
    if isinstance(key, keyboard.KeyCode):
        ch = (key.char or "").lower()
        if shortcut:
            if ch == "z":
                action = HistoryAction.REDO if "shift" in mods else HistoryAction.UNDO
                return UndoRedoEvent(action=action)
            if ch == "y":
                return UndoRedoEvent(action=HistoryAction.REDO)
            return None
        if key.char:
            return EditEvent(inserted_len=1)
        return None
    if key in DELETE_KEYS:
        return EditEvent(deleted_len=1)
    if key == keyboard.Key.enter:
        return EditEvent(inserted_len=1, inserted_newlines=1)
    if key in (keyboard.Key.space, keyboard.Key.tab):
        return EditEvent(inserted_len=1)
    return None

class KeyboardHook:
    """Background pynput keyboard listener emitting edit/undo events into a queue."""
    def __init__(self, out_q: Queue):
        self.out_q = out_q
        self._mods: Set[str] = set()
        self._listener: Optional[keyboard.Listener] = None

    def start(self) -> None:
        if self._listener and self._listener.running:
            return
        self._listener = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
            suppress=False
        )
        self._listener.daemon = True
        self._listener.start()
        log.info("kbd.start")

    def stop(self) -> None:
        if self._listener:
            self._listener.stop()
            self._listener = None
        log.info("kbd.stop")

    def _on_press(self, key):
        if key in MOD_KEYS:
            self._mods.add(MOD_KEYS[key])
            return
        ev = key_to_event(key, self._mods)
        if ev is not None:
            safe_put(self.out_q, ev)

    def _on_release(self, key):
        if key in MOD_KEYS:
            self._mods.discard(MOD_KEYS[key])
