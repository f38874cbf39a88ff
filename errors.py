"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

from typing import Optional, Union

UNKNOWN_MODEL = "UNKNOWN_MODEL"
MODEL_NOT_INSTALLED = "MODEL_NOT_INSTALLED"
DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
RECORDING_FAILED = "RECORDING_FAILED"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
INJECTION_FAILED = "INJECTION_FAILED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"

ERROR_MESSAGES = {
    UNKNOWN_MODEL: "Unknown speech model.",
    MODEL_NOT_INSTALLED: "The selected model is not installed.",
    DOWNLOAD_FAILED: "Model download failed on every source, please retry.",
    RECORDING_FAILED: "Microphone could not be opened.",
    TRANSCRIPTION_FAILED: "Transcription failed.",
    INJECTION_FAILED: "Text could not be typed, it is kept in the clipboard.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
}

# Network failure classes that justify moving on to the next source.
TIMEOUT = "timeout"
UNREACHABLE = "unreachable"
DNS_FAILURE = "dns"
RETRYABLE_NETWORK_CODES = frozenset({TIMEOUT, UNREACHABLE, DNS_FAILURE})


def is_retryable_status(status_code: Optional[int]) -> bool:
    if status_code is None:
        return False
    return status_code in (403, 404, 429) or status_code >= 500


class VoixError(Exception):
    code = "VOIX_ERROR"

    def user_message(self) -> str:
        return ERROR_MESSAGES.get(self.code, str(self))


class UnknownModelError(VoixError, ValueError):
    code = UNKNOWN_MODEL

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model id: {model_id}")
        self.model_id = model_id


class ModelNotInstalledError(VoixError):
    code = MODEL_NOT_INSTALLED

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Model is not installed: {model_id}")
        self.model_id = model_id


class DownloadError(VoixError):
    """A failed probe or download attempt against one source."""

    code = DOWNLOAD_FAILED

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
        download_started: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.download_started = download_started

    @property
    def failure(self) -> Union[int, str, None]:
        return self.status_code if self.status_code is not None else self.reason

    @property
    def retryable(self) -> bool:
        if self.download_started:
            return False
        if self.reason in RETRYABLE_NETWORK_CODES:
            return True
        return is_retryable_status(self.status_code)


class TranscriptionError(VoixError):
    code = TRANSCRIPTION_FAILED
