from __future__ import annotations

from typing import Callable

import pytest


class ManualTimer:
    def __init__(self, delay_s: float, callback: Callable[[], None]) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled and not self.fired:
            self.fired = True
            self.callback()


class ManualTimers:
    """Timer factory whose timers only fire when the test says so."""

    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay_s: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay_s, callback)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.created if not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.pending):
            timer.fire()


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSurface:
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def send(self, channel: str, payload: object = None) -> None:
        self.events.append((channel, payload))

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.events]

    def payloads(self, channel: str) -> list[object]:
        return [payload for name, payload in self.events if name == channel]


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()
