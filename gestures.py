"""Turns raw hotkey signals into start/stop gestures.

A double quick-press starts a session, any single quick-press stops it.
Holding the key (``down`` then ``up``) is the push-to-talk grammar and maps
straight to start/stop.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional

from interfaces import Timer, TimerFactory
from models import Gesture, HotkeySignal, SessionState

logger = logging.getLogger(__name__)

DOUBLE_PRESS_WINDOW_S = 0.4


class Interpretation(NamedTuple):
    gesture: Optional[Gesture]
    last_press_at: float
    arm_timer: bool


def interpret(
    signal: HotkeySignal,
    state: SessionState,
    last_press_at: float,
    now: float,
    window_s: float = DOUBLE_PRESS_WINDOW_S,
) -> Interpretation:
    """Decide the gesture for one signal. ``last_press_at`` of 0 means no pending press."""
    if signal == HotkeySignal.DOWN:
        gesture = Gesture.START if state == SessionState.IDLE else None
        return Interpretation(gesture, last_press_at, False)
    if signal == HotkeySignal.UP:
        gesture = Gesture.STOP if state == SessionState.LISTENING else None
        return Interpretation(gesture, last_press_at, False)

    if state == SessionState.LISTENING:
        return Interpretation(Gesture.STOP, last_press_at, False)
    if state != SessionState.IDLE:
        return Interpretation(None, last_press_at, False)

    gap = now - last_press_at
    if last_press_at > 0 and 0 < gap < window_s:
        # Second press of a double-press; a third press must start over.
        return Interpretation(Gesture.START, 0.0, False)
    return Interpretation(None, now, True)


def start_timer(delay_s: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    timer.start()
    return timer


@dataclass
class _DebounceState:
    last_press_at: float = 0.0
    timer: Optional[Timer] = None


class HotkeyInterpreter:
    def __init__(
        self,
        get_state: Callable[[], SessionState],
        on_gesture: Callable[[Gesture], None],
        window_s: float = DOUBLE_PRESS_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = start_timer,
    ) -> None:
        self._get_state = get_state
        self._on_gesture = on_gesture
        self._window_s = window_s
        self._clock = clock
        self._timer_factory = timer_factory
        self._debounce = _DebounceState()
        self._lock = threading.Lock()

    @property
    def last_press_at(self) -> float:
        return self._debounce.last_press_at

    @property
    def has_pending_timer(self) -> bool:
        return self._debounce.timer is not None

    def handle(self, signal: HotkeySignal) -> Optional[Gesture]:
        with self._lock:
            if signal == HotkeySignal.QUICK_PRESS:
                self._cancel_timer()
            result = interpret(
                signal,
                self._get_state(),
                self._debounce.last_press_at,
                self._clock(),
                self._window_s,
            )
            self._debounce.last_press_at = result.last_press_at
            if result.arm_timer:
                timer: Optional[Timer] = None

                def _expire() -> None:
                    self._expire(timer)

                timer = self._timer_factory(self._window_s, _expire)
                self._debounce.timer = timer

        if result.gesture is not None:
            logger.debug("Hotkey %s -> %s", signal.value, result.gesture.value)
            self._on_gesture(result.gesture)
        return result.gesture

    def reset(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._debounce.last_press_at = 0.0

    def _expire(self, timer: Optional[Timer]) -> None:
        with self._lock:
            if timer is None or self._debounce.timer is not timer:
                return
            self._debounce.timer = None
            self._debounce.last_press_at = 0.0

    def _cancel_timer(self) -> None:
        if self._debounce.timer is not None:
            self._debounce.timer.cancel()
            self._debounce.timer = None
