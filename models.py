"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class SessionState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    TYPING = "typing"


class SessionEvent(str, Enum):
    START = "start"
    STOP = "stop"
    CANCEL = "cancel"
    TEXT = "text"
    RESET = "reset"


class HotkeySignal(str, Enum):
    DOWN = "down"
    UP = "up"
    QUICK_PRESS = "quick-press"


class Gesture(str, Enum):
    START = "start"
    STOP = "stop"


@dataclass(frozen=True)
class ModelSpec:
    id: str
    label: str
    file: str
    size_mb: int
    description: str
    quality_rank: int


@dataclass
class ModelState:
    spec: ModelSpec
    installed: bool
    path: Path
    size_bytes: Optional[int] = None

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def quality_rank(self) -> int:
        return self.spec.quality_rank


@dataclass
class DownloadProgress:
    model_id: str
    downloaded_bytes: int
    total_bytes: Optional[int] = None
    percent: Optional[float] = None

    def to_payload(self) -> dict:
        return {
            "modelId": self.model_id,
            "downloadedBytes": self.downloaded_bytes,
            "totalBytes": self.total_bytes,
            "percent": self.percent,
        }


@dataclass
class ProbeResult:
    url: str
    ok: bool
    kbps: float = 0.0
    duration_ms: int = 0
    # HTTP status code or a network error code such as "timeout".
    reason: Union[int, str, None] = None


@dataclass
class InjectionResult:
    success: bool
    reason: str
    clipboard_restored: bool
