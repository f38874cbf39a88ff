"""Fan-out of state and progress events to presentation surfaces."""

from __future__ import annotations

import logging
import threading
from typing import Any

from interfaces import StatusSurface

logger = logging.getLogger(__name__)

STATE_CHANGED = "state-changed"
TEXT_RESULT = "text-result"
AUDIO_LEVEL = "audio-level"
SHOW_WINDOW = "show-window"
HIDE_WINDOW = "hide-window"
MODEL_REQUIRED = "model-required"
DOWNLOAD_PROGRESS = "download-progress"
DOWNLOAD_COMPLETE = "download-complete"
DOWNLOAD_ERROR = "download-error"


class StatusNotifier:
    """One-way ``send(channel, payload)`` broadcast, no acknowledgment."""

    def __init__(self) -> None:
        self._surfaces: list[StatusSurface] = []
        self._lock = threading.Lock()

    def register(self, surface: StatusSurface) -> None:
        with self._lock:
            if surface not in self._surfaces:
                self._surfaces.append(surface)

    def unregister(self, surface: StatusSurface) -> None:
        with self._lock:
            if surface in self._surfaces:
                self._surfaces.remove(surface)

    def send(self, channel: str, payload: Any = None) -> None:
        with self._lock:
            surfaces = list(self._surfaces)
        for surface in surfaces:
            try:
                surface.send(channel, payload)
            except Exception:
                logger.exception("Status surface %r failed on %s", surface, channel)
