"""Protocol interfaces used by SessionController and the model pipeline."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from models import InjectionResult


class Recorder(Protocol):
    def start(self) -> None: ...

    def stop(self) -> bytes: ...


class Transcriber(Protocol):
    def transcribe(self, audio: bytes) -> str: ...

    def close(self) -> None: ...


class TextInjector(Protocol):
    def inject_text(self, text: str) -> InjectionResult: ...


class ModelSource(Protocol):
    def effective_model(self) -> Optional[str]: ...


class PreferenceStore(Protocol):
    def get_model_id(self) -> Optional[str]: ...

    def set_model_id(self, model_id: str) -> None: ...

    def clear_model_id(self) -> None: ...


class StatusSurface(Protocol):
    def send(self, channel: str, payload: Any = None) -> None: ...


class Timer(Protocol):
    def cancel(self) -> None: ...


# Schedules ``callback`` after ``delay_s`` seconds and returns a cancellable handle.
TimerFactory = Callable[[float, Callable[[], None]], Timer]
