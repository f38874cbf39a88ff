"""Text injection through the clipboard and a paste keystroke."""

from __future__ import annotations

import logging
import sys
import time

from errors import NO_ACTIVE_TARGET
from models import InjectionResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


def paste_modifier() -> Key:
    return Key.cmd if sys.platform == "darwin" else Key.ctrl


def _press_paste() -> None:
    keyboard = Controller()
    modifier = paste_modifier()
    keyboard.press(modifier)
    try:
        keyboard.press("v")
        keyboard.release("v")
    finally:
        keyboard.release(modifier)


class ClipboardTextInjector:
    """Puts the transcript on the clipboard and sends the platform paste shortcut.

    After a successful paste the previous clipboard content comes back, unless
    something else replaced the transcript in the meantime. When the paste
    fails the transcript is left on the clipboard so it can be pasted by hand.
    """

    def __init__(self, restore_delay_s: float = 0.1) -> None:
        self._restore_delay_s = restore_delay_s

    def inject_text(self, text: str) -> InjectionResult:
        if not text.strip():
            return InjectionResult(success=False, reason="empty text", clipboard_restored=True)
        if pyperclip is None or Controller is None or Key is None:
            return InjectionResult(
                success=False,
                reason="clipboard/keyboard dependency missing",
                clipboard_restored=False,
            )

        try:
            previous = pyperclip.paste()
            pyperclip.copy(text)
            _press_paste()
        except Exception as exc:
            logger.warning("Paste failed, transcript left on the clipboard: %s", exc)
            return InjectionResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=False,
            )

        # The target app reads the clipboard asynchronously after the keystroke.
        time.sleep(self._restore_delay_s)
        return InjectionResult(success=True, reason="ok", clipboard_restored=self._restore(text, previous))

    @staticmethod
    def _restore(text: str, previous: str) -> bool:
        try:
            if pyperclip.paste() != text:
                logger.debug("Clipboard changed during paste, not restoring")
                return False
            pyperclip.copy(previous)
        except Exception:
            logger.exception("Could not restore the clipboard")
            return False
        return True
