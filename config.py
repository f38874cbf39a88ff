"""Environment settings and the JSON-based preference store."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

APP_NAME = "Voix"
PREFERENCES_FILE = "preferences.json"

CAS_BRIDGE_URL = "https://cas-bridge.xethub.hf.co/ggerganov/whisper.cpp/resolve/main"
BASE_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"
MIRROR_URL = "https://hf-mirror.com/ggerganov/whisper.cpp/resolve/main"

DEFAULT_BASE_URLS = (CAS_BRIDGE_URL, BASE_URL, MIRROR_URL)
DEFAULT_FALLBACK_HOSTS = ("hf-mirror.com", "cas-bridge.xethub.hf.co", "huggingface.co")


def app_data_dir() -> Path:
    return Path(user_data_dir(APP_NAME, appauthor=False))


def _split_list(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(entry.strip() for entry in raw.split(",") if entry.strip())


def _millis(env: Mapping[str, str], name: str, default_ms: int, allow_zero: bool = False) -> float:
    """Read a millisecond value and return it in seconds."""
    raw = env.get(name)
    if not raw:
        return default_ms / 1000.0
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default_ms / 1000.0
    if value > 0 or (allow_zero and value == 0):
        return value / 1000.0
    return default_ms / 1000.0


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    connect_timeout_s: float = 6.0
    probe_timeout_s: float = 2.0
    probe_max_wait_s: float = 1.2
    probe_bytes: int = 256 * 1024
    fallback_hosts: tuple[str, ...] = DEFAULT_FALLBACK_HOSTS
    skip_probe: bool = False
    models_dir: Path = field(default_factory=lambda: app_data_dir() / "models")
    legacy_models_dir: Path = field(default_factory=lambda: Path.cwd() / "models")
    base_urls: tuple[str, ...] = DEFAULT_BASE_URLS
    whisper_binary: Optional[str] = None
    language: str = "en"
    hotkey: str = "Key.cmd"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        models_dir = env.get("VOIX_MODELS_DIR", "").strip()
        return cls(
            connect_timeout_s=_millis(env, "VOIX_MODEL_CONNECT_TIMEOUT_MS", 6000),
            probe_timeout_s=_millis(env, "VOIX_MODEL_PROBE_TIMEOUT_MS", 2000),
            probe_max_wait_s=_millis(env, "VOIX_MODEL_PROBE_MAX_WAIT_MS", 1200, allow_zero=True),
            probe_bytes=_positive_int(env, "VOIX_MODEL_PROBE_BYTES", 256 * 1024),
            fallback_hosts=_split_list(env.get("VOIX_MODEL_FALLBACK_HOSTS")) or DEFAULT_FALLBACK_HOSTS,
            skip_probe=env.get("VOIX_MODEL_SKIP_PROBE") == "1",
            models_dir=Path(models_dir) if models_dir else app_data_dir() / "models",
            base_urls=_split_list(env.get("VOIX_MODEL_BASE_URLS")) or DEFAULT_BASE_URLS,
            whisper_binary=env.get("VOIX_WHISPER_BIN") or None,
            language=env.get("VOIX_LANGUAGE") or "en",
            hotkey=env.get("VOIX_HOTKEY") or "Key.cmd",
            log_level=(env.get("VOIX_LOG_LEVEL") or "INFO").upper(),
        )


class JsonPreferenceStore:
    """Persists the explicit model choice as ``{"modelId": "<id>"}``."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or app_data_dir() / PREFERENCES_FILE

    @property
    def path(self) -> Path:
        return self._path

    def get_model_id(self) -> Optional[str]:
        value = self._read_all().get("modelId")
        return str(value) if value else None

    def set_model_id(self, model_id: str) -> None:
        data = self._read_all()
        data["modelId"] = model_id
        self._write_all(data)

    def clear_model_id(self) -> None:
        data = self._read_all()
        data.pop("modelId", None)
        if data:
            self._write_all(data)
        elif self._path.exists():
            self._path.unlink()

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
