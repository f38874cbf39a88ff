"""whisper.cpp transcription through the ``whisper-cli`` binary.

Captured PCM is written to a temporary WAV file, the CLI is run against the
bound model with ``-otxt`` and the text file it produces is read back.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import tempfile
import threading
import time
import wave
from pathlib import Path
from typing import Callable, Optional

from errors import ModelNotInstalledError, TranscriptionError
from interfaces import Transcriber
from model_store import ModelStore

logger = logging.getLogger(__name__)

WHISPER_BINARY = "whisper-cli"
_SEGMENT_RE = re.compile(r"^\[[^\]]*\]\s*(.*)$")


def find_whisper_binary(configured: Optional[str] = None) -> str:
    if configured:
        return configured
    return shutil.which(WHISPER_BINARY) or WHISPER_BINARY


def write_wav(
    path: Path,
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> None:
    """Wrap raw PCM bytes in a WAV container."""
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)


def parse_stdout(output: str) -> str:
    """Fallback when no text file was written: strip ``[t0 --> t1]`` prefixes."""
    lines = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        match = _SEGMENT_RE.match(line)
        lines.append(match.group(1).strip() if match else line)
    return " ".join(part for part in lines if part)


class WhisperCliTranscriber:
    def __init__(
        self,
        model_path: Path,
        binary: Optional[str] = None,
        language: str = "en",
        threads: int = 4,
        sample_rate: int = 16000,
    ) -> None:
        self.model_path = Path(model_path)
        self._binary = find_whisper_binary(binary)
        self._language = language
        self._threads = threads
        self._sample_rate = sample_rate
        self._temp_dir = Path(tempfile.mkdtemp(prefix="voix-audio-"))

    def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise TranscriptionError("Audio data is empty")
        if not self.model_path.exists():
            raise TranscriptionError(f"Whisper model not found at {self.model_path}")

        stamp = int(time.time() * 1000)
        audio_path = self._temp_dir / f"recording_{stamp}.wav"
        output_base = self._temp_dir / f"output_{stamp}"
        output_txt = output_base.with_suffix(".txt")
        write_wav(audio_path, audio, sample_rate=self._sample_rate)
        try:
            return self._run(audio_path, output_base, output_txt)
        finally:
            for path in (audio_path, output_txt):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError:
                    logger.warning("Failed to delete temporary file %s", path)

    def _run(self, audio_path: Path, output_base: Path, output_txt: Path) -> str:
        args = [
            self._binary,
            "-m", str(self.model_path),
            "-f", str(audio_path),
            "-l", self._language,
            "-t", str(self._threads),
            "-otxt",
            "-of", str(output_base),
        ]
        logger.debug("Running %s", " ".join(args))
        try:
            completed = subprocess.run(args, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise TranscriptionError(f"Could not run {self._binary}: {exc}") from exc
        if completed.returncode != 0:
            raise TranscriptionError(
                f"Whisper failed with code {completed.returncode}: {completed.stderr.strip()}"
            )
        if output_txt.exists():
            return output_txt.read_text(encoding="utf-8").strip()
        return parse_stdout(completed.stdout)

    def close(self) -> None:
        shutil.rmtree(self._temp_dir, ignore_errors=True)


TranscriberFactory = Callable[[Path], Transcriber]


class TranscriberBinder:
    """Keeps exactly one engine, bound to the most recently requested model."""

    def __init__(self, store: ModelStore, factory: TranscriberFactory) -> None:
        self._store = store
        self._factory = factory
        self._lock = threading.Lock()
        self._model_id: Optional[str] = None
        self._current: Optional[Transcriber] = None

    @property
    def model_id(self) -> Optional[str]:
        return self._model_id

    @property
    def current(self) -> Optional[Transcriber]:
        return self._current

    def bind(self, model_id: str) -> Transcriber:
        with self._lock:
            if self._current is not None and self._model_id == model_id:
                return self._current
            path = self._store.resolve_path(model_id)
            if path is None:
                raise ModelNotInstalledError(model_id)
            self._close_current()
            logger.info("Binding transcriber to %s (%s)", model_id, path)
            self._current = self._factory(path)
            self._model_id = model_id
            return self._current

    def close(self) -> None:
        with self._lock:
            self._close_current()

    def _close_current(self) -> None:
        if self._current is None:
            return
        try:
            self._current.close()
        except Exception:
            logger.exception("Failed to close transcriber for %s", self._model_id)
        self._current = None
        self._model_id = None


def cpu_threads() -> int:
    return max(1, min(8, os.cpu_count() or 4))


def whisper_factory(binary: Optional[str] = None, language: str = "en") -> TranscriberFactory:
    def _build(model_path: Path) -> Transcriber:
        return WhisperCliTranscriber(
            model_path, binary=binary, language=language, threads=cpu_threads()
        )

    return _build
