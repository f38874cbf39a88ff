"""Global hotkey monitor based on pynput.

Publishes raw signals: ``down`` once the key has been held past the
long-press threshold, ``up`` when such a hold ends, ``quick-press`` when the
key is released before the threshold.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from gestures import start_timer
from interfaces import Timer, TimerFactory
from models import HotkeySignal

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

LONG_PRESS_S = 0.3

Publish = Callable[[HotkeySignal], object]


class HotkeyMonitor:
    def __init__(
        self,
        hotkey_name: str = "Key.cmd",
        long_press_s: float = LONG_PRESS_S,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = start_timer,
    ) -> None:
        self._hotkey_name = hotkey_name
        self._long_press_s = long_press_s
        self._clock = clock
        self._timer_factory = timer_factory
        self._listener: Optional[object] = None
        self._publish: Optional[Publish] = None
        self._pressed = False
        self._holding = False
        self._pressed_at = 0.0
        self._hold_timer: Optional[Timer] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._listener is not None

    def start(self, publish: Publish) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._publish = publish
        self._listener = keyboard.Listener(on_press=self.on_press, on_release=self.on_release)
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        with self._lock:
            self._cancel_hold_timer()
            self._pressed = False
            self._holding = False

    def on_press(self, key: object) -> None:
        if str(key) != self._hotkey_name:
            return
        with self._lock:
            # Auto-repeat delivers further presses while held.
            if self._pressed:
                return
            self._pressed = True
            self._holding = False
            self._pressed_at = self._clock()
            self._hold_timer = self._timer_factory(self._long_press_s, self._on_hold)

    def on_release(self, key: object) -> None:
        if str(key) != self._hotkey_name:
            return
        with self._lock:
            if not self._pressed:
                return
            self._pressed = False
            self._cancel_hold_timer()
            if self._holding:
                self._holding = False
                self._emit(HotkeySignal.UP)
            elif self._clock() - self._pressed_at >= self._long_press_s:
                # Timer lost the race with the release; still a hold.
                self._emit(HotkeySignal.DOWN)
                self._emit(HotkeySignal.UP)
            else:
                self._emit(HotkeySignal.QUICK_PRESS)

    def _on_hold(self) -> None:
        with self._lock:
            if not self._pressed or self._holding:
                return
            self._holding = True
            self._hold_timer = None
            self._emit(HotkeySignal.DOWN)

    def _cancel_hold_timer(self) -> None:
        if self._hold_timer is not None:
            self._hold_timer.cancel()
            self._hold_timer = None

    def _emit(self, signal: HotkeySignal) -> None:
        # Runs under the lock; publish must not block.
        if self._publish is not None:
            self._publish(signal)
