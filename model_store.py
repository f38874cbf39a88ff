"""On-disk layout of installed models (primary and legacy directories)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from model_catalog import MODEL_CATALOG, require_model_spec
from models import ModelState

logger = logging.getLogger(__name__)


class ModelStore:
    def __init__(self, models_dir: Path, legacy_dir: Optional[Path] = None) -> None:
        self.models_dir = Path(models_dir)
        self.legacy_dir = Path(legacy_dir) if legacy_dir is not None else None

    def ensure_dir(self) -> Path:
        self.models_dir.mkdir(parents=True, exist_ok=True)
        return self.models_dir

    def primary_path(self, model_id: str) -> Path:
        return self.models_dir / require_model_spec(model_id).file

    def partial_path(self, model_id: str) -> Path:
        final = self.primary_path(model_id)
        return final.with_name(final.name + ".partial")

    def _legacy_path(self, model_id: str) -> Optional[Path]:
        if self.legacy_dir is None:
            return None
        return self.legacy_dir / require_model_spec(model_id).file

    def resolve_path(self, model_id: str) -> Optional[Path]:
        """Return the installed file for ``model_id``, primary directory first."""
        primary = self.primary_path(model_id)
        if primary.exists():
            return primary
        legacy = self._legacy_path(model_id)
        if legacy is not None and legacy.exists():
            return legacy
        return None

    def is_installed(self, model_id: str) -> bool:
        return self.resolve_path(model_id) is not None

    def installed_ids(self) -> list[str]:
        return [spec.id for spec in MODEL_CATALOG if self.is_installed(spec.id)]

    def best_installed_id(self) -> Optional[str]:
        installed = [spec for spec in MODEL_CATALOG if self.is_installed(spec.id)]
        if not installed:
            return None
        return max(installed, key=lambda spec: spec.quality_rank).id

    def list_models(self) -> list[ModelState]:
        states = []
        for spec in MODEL_CATALOG:
            resolved = self.resolve_path(spec.id)
            size_bytes = None
            if resolved is not None:
                try:
                    size_bytes = resolved.stat().st_size
                except OSError:
                    size_bytes = None
            states.append(
                ModelState(
                    spec=spec,
                    installed=resolved is not None,
                    path=resolved or self.primary_path(spec.id),
                    size_bytes=size_bytes,
                )
            )
        return sorted(states, key=lambda state: state.quality_rank, reverse=True)

    def directories(self) -> dict[str, Optional[Path]]:
        legacy = self.legacy_dir if self.legacy_dir is not None and self.legacy_dir.exists() else None
        return {"primary": self.models_dir, "legacy": legacy}

    def delete(self, model_id: str) -> bool:
        """Remove the model from the primary directory. Legacy copies are left alone."""
        path = self.primary_path(model_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted model %s (%s)", model_id, path)
        return True
