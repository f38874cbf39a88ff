"""Tests for HotkeyMonitor signal production (no real keyboard)."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest

from hotkey import HotkeyMonitor
from models import HotkeySignal

HOTKEY = "Key.cmd"


@pytest.fixture
def signals() -> list[HotkeySignal]:
    return []


@pytest.fixture
def monitor(clock, timers, signals) -> HotkeyMonitor:  # noqa: ANN001
    monitor = HotkeyMonitor(hotkey_name=HOTKEY, long_press_s=0.3, clock=clock, timer_factory=timers)
    with patch("hotkey.keyboard") as mock_keyboard:
        mock_keyboard.Listener.return_value = MagicMock()
        monitor.start(signals.append)
    return monitor


def test_tap_emits_quick_press(monitor, clock, signals) -> None:  # noqa: ANN001
    monitor.on_press(HOTKEY)
    clock.advance(0.1)
    monitor.on_release(HOTKEY)

    assert signals == [HotkeySignal.QUICK_PRESS]


def test_hold_emits_down_then_up(monitor, clock, timers, signals) -> None:  # noqa: ANN001
    monitor.on_press(HOTKEY)
    clock.advance(0.35)
    timers.fire_all()
    assert signals == [HotkeySignal.DOWN]

    monitor.on_release(HOTKEY)
    assert signals == [HotkeySignal.DOWN, HotkeySignal.UP]


def test_release_after_threshold_before_timer_counts_as_hold(monitor, clock, signals) -> None:  # noqa: ANN001
    monitor.on_press(HOTKEY)
    clock.advance(0.5)
    monitor.on_release(HOTKEY)

    assert signals == [HotkeySignal.DOWN, HotkeySignal.UP]


def test_auto_repeat_and_other_keys_are_ignored(monitor, clock, timers, signals) -> None:  # noqa: ANN001
    monitor.on_press("Key.shift")
    monitor.on_press(HOTKEY)
    monitor.on_press(HOTKEY)
    monitor.on_press(HOTKEY)
    monitor.on_release("Key.shift")
    clock.advance(0.05)
    monitor.on_release(HOTKEY)
    monitor.on_release(HOTKEY)

    assert signals == [HotkeySignal.QUICK_PRESS]
    assert len(timers.created) == 1


def test_start_without_pynput_raises() -> None:
    with patch("hotkey.keyboard", None):
        with pytest.raises(RuntimeError):
            HotkeyMonitor().start(lambda signal: None)


def test_stop_stops_listener(monitor) -> None:  # noqa: ANN001
    assert monitor.is_running is True
    monitor.stop()
    assert monitor.is_running is False


def test_release_during_hold_signal_is_published_after_down(clock, timers) -> None:  # noqa: ANN001
    monitor = HotkeyMonitor(hotkey_name=HOTKEY, long_press_s=0.3, clock=clock, timer_factory=timers)
    published: list[HotkeySignal] = []
    releasers: list[threading.Thread] = []

    def publish(signal: HotkeySignal) -> None:
        if signal == HotkeySignal.DOWN and not releasers:
            # The key comes up on the listener thread while DOWN is being published.
            releaser = threading.Thread(target=monitor.on_release, args=(HOTKEY,))
            releasers.append(releaser)
            releaser.start()
            releaser.join(timeout=0.1)
        published.append(signal)

    with patch("hotkey.keyboard") as mock_keyboard:
        mock_keyboard.Listener.return_value = MagicMock()
        monitor.start(publish)

    monitor.on_press(HOTKEY)
    clock.advance(0.35)
    timers.fire_all()
    releasers[0].join(timeout=2)

    assert not releasers[0].is_alive()
    assert published == [HotkeySignal.DOWN, HotkeySignal.UP]
