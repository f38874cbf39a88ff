"""Microphone recorder adapter."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

LevelCallback = Callable[[float], None]


def audio_level(samples: Any) -> float:
    """RMS level of int16 samples scaled to 0..1."""
    data = np.asarray(samples, dtype=np.float32)
    if data.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(data / 32768.0))))
    return max(0.0, min(1.0, rms * 4.0))


class SoundDeviceRecorder:
    """Buffers PCM16 audio between ``start()`` and ``stop()``."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        on_level: Optional[LevelCallback] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._on_level = on_level
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._buffer = bytearray()

    @property
    def is_recording(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None or np is None:
                raise RuntimeError("sounddevice and numpy are required for recording")
            self._buffer = bytearray()
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
            self._running = True

    def stop(self) -> bytes:
        with self._lock:
            if self._running:
                self._running = False
                if self._stream is not None:
                    self._stream.stop()
                    self._stream.close()
                    self._stream = None
            audio = bytes(self._buffer)
            self._buffer = bytearray()
            return audio

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or np is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        samples = np.asarray(indata, dtype=np.int16)
        self._buffer.extend(samples.tobytes())
        if self._on_level is not None:
            self._on_level(audio_level(samples))
