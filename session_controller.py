"""State-machine based session orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import INJECTION_FAILED, RECORDING_FAILED, TRANSCRIPTION_FAILED
from gestures import start_timer
from interfaces import ModelSource, Recorder, StatusSurface, TextInjector, Timer, TimerFactory
from models import Gesture, InjectionResult, SessionEvent, SessionState
from notifier import HIDE_WINDOW, MODEL_REQUIRED, SHOW_WINDOW, STATE_CHANGED, TEXT_RESULT
from transcriber import TranscriberBinder

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, str], None]
ModelMissingCallback = Callable[[], None]

IDLE_DELAY_S = 1.0

_TRANSITIONS = {
    (SessionState.IDLE, SessionEvent.START): SessionState.LISTENING,
    (SessionState.LISTENING, SessionEvent.STOP): SessionState.TRANSCRIBING,
    (SessionState.LISTENING, SessionEvent.CANCEL): SessionState.IDLE,
    (SessionState.TRANSCRIBING, SessionEvent.TEXT): SessionState.TYPING,
    (SessionState.TRANSCRIBING, SessionEvent.RESET): SessionState.IDLE,
    (SessionState.TYPING, SessionEvent.RESET): SessionState.IDLE,
}


def next_state(state: SessionState, event: SessionEvent) -> Optional[SessionState]:
    """Return the target state, or None when ``event`` is not allowed in ``state``."""
    return _TRANSITIONS.get((state, event))


def spawn_worker(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="session-worker", daemon=True).start()


class SessionController:
    def __init__(
        self,
        recorder: Recorder,
        transcribers: TranscriberBinder,
        injector: TextInjector,
        models: ModelSource,
        notifier: Optional[StatusSurface] = None,
        idle_delay_s: float = IDLE_DELAY_S,
        on_model_missing: Optional[ModelMissingCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        timer_factory: TimerFactory = start_timer,
        spawn: Callable[[Callable[[], None]], None] = spawn_worker,
    ) -> None:
        self._recorder = recorder
        self._transcribers = transcribers
        self._injector = injector
        self._models = models
        self._notifier = notifier
        self._idle_delay_s = idle_delay_s
        self._on_model_missing = on_model_missing
        self._on_error = on_error
        self._timer_factory = timer_factory
        self._spawn = spawn

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._reset_timer: Optional[Timer] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> int:
        return self._session_id

    def handle_gesture(self, gesture: Gesture) -> bool:
        if gesture == Gesture.START:
            return self.start_session()
        if gesture == Gesture.STOP:
            return self.stop_session()
        return False

    def start_session(self) -> bool:
        with self._lock:
            if self._state != SessionState.IDLE:
                return False
            model_id = self._models.effective_model()
            if model_id is None:
                logger.info("No speech model installed, asking for a download")
                self._send(MODEL_REQUIRED)
                if self._on_model_missing:
                    self._on_model_missing()
                return False
            try:
                self._transcribers.bind(model_id)
                self._recorder.start()
            except Exception as exc:
                logger.exception("Could not start recording")
                self._emit_error(RECORDING_FAILED, str(exc))
                return False
            self._session_id += 1
            self._apply(SessionEvent.START)
            self._send(SHOW_WINDOW)
            return True

    def stop_session(self) -> bool:
        with self._lock:
            if not self._apply(SessionEvent.STOP):
                return False
            session_id = self._session_id
        self._spawn(lambda: self._finish_session(session_id))
        return True

    def cancel_session(self, reason: str) -> None:
        """Drop a recording in progress; transcription is never interrupted."""
        with self._lock:
            if self._state != SessionState.LISTENING:
                return
            logger.info("Cancelling session %s: %s", self._session_id, reason)
            self._safe_stop_recorder()
            self._apply(SessionEvent.CANCEL)
            self._send(HIDE_WINDOW)

    def shutdown(self) -> None:
        self.cancel_session("shutdown")
        with self._lock:
            if self._reset_timer is not None:
                self._reset_timer.cancel()
                self._reset_timer = None
        self._transcribers.close()

    def _finish_session(self, session_id: int) -> None:
        try:
            audio = self._recorder.stop()
            if len(audio) > 0:
                self._transcribe_and_type(audio)
            else:
                logger.info("Session %s captured no audio", session_id)
        except Exception as exc:
            logger.exception("Session %s failed", session_id)
            self._emit_error(TRANSCRIPTION_FAILED, str(exc))
        finally:
            self._schedule_reset()

    def _transcribe_and_type(self, audio: bytes) -> None:
        transcriber = self._transcribers.current
        if transcriber is None:
            raise RuntimeError("no transcriber bound")
        text = transcriber.transcribe(audio)
        if not text or not text.strip():
            return
        with self._lock:
            self._apply(SessionEvent.TEXT)
        result = self._run_injection(text)
        if not result.success:
            logger.warning("Text injection failed: %s", result.reason)
            self._emit_error(INJECTION_FAILED, result.reason)
        self._send(TEXT_RESULT, text)

    def _run_injection(self, text: str) -> InjectionResult:
        try:
            return self._injector.inject_text(text)
        except Exception as exc:
            logger.exception("Text injector raised")
            return InjectionResult(success=False, reason=str(exc), clipboard_restored=False)

    def _schedule_reset(self) -> None:
        with self._lock:
            if self._reset_timer is not None:
                self._reset_timer.cancel()
            self._reset_timer = self._timer_factory(self._idle_delay_s, self._reset_to_idle)

    def _reset_to_idle(self) -> None:
        with self._lock:
            self._reset_timer = None
            if self._apply(SessionEvent.RESET):
                self._send(HIDE_WINDOW)

    def _safe_stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception:
            logger.exception("Recorder failed to stop")

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            try:
                self._on_error(code, message)
            except Exception:
                logger.exception("Error callback failed")

    def _send(self, channel: str, payload: object = None) -> None:
        if self._notifier is not None:
            self._notifier.send(channel, payload)

    def _apply(self, event: SessionEvent) -> bool:
        target = next_state(self._state, event)
        if target is None:
            return False
        from_state = self._state
        self._state = target
        logger.debug("Session %s: %s -> %s", self._session_id, from_state.value, target.value)
        self._send(STATE_CHANGED, target.value)
        return True
