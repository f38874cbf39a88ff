"""Resolves which speech model a session should use."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from errors import ModelNotInstalledError
from interfaces import PreferenceStore
from model_catalog import require_model_spec
from model_store import ModelStore
from models import ModelState

logger = logging.getLogger(__name__)


class ModelResolver:
    """Explicit user choice first, otherwise the best installed model."""

    def __init__(self, store: ModelStore, preferences: PreferenceStore) -> None:
        self._store = store
        self._preferences = preferences

    @property
    def store(self) -> ModelStore:
        return self._store

    def effective_model(self) -> Optional[str]:
        selected = self._preferences.get_model_id()
        if selected:
            if self._is_known(selected) and self._store.is_installed(selected):
                return selected
            logger.info("Selected model %s is no longer available, clearing preference", selected)
            self._preferences.clear_model_id()
        return self._store.best_installed_id()

    def selected_model(self) -> Optional[str]:
        return self._preferences.get_model_id()

    def select_model(self, model_id: str) -> None:
        require_model_spec(model_id)
        if not self._store.is_installed(model_id):
            raise ModelNotInstalledError(model_id)
        self._preferences.set_model_id(model_id)
        logger.info("Selected model %s", model_id)

    def clear_selection(self) -> None:
        self._preferences.clear_model_id()

    def delete_model(self, model_id: str) -> bool:
        require_model_spec(model_id)
        deleted = self._store.delete(model_id)
        if deleted and self._preferences.get_model_id() == model_id:
            self._preferences.clear_model_id()
        return deleted

    def list_models(self) -> list[ModelState]:
        return self._store.list_models()

    def model_path(self, model_id: str) -> Optional[Path]:
        return self._store.resolve_path(model_id)

    def directories(self) -> dict[str, Optional[Path]]:
        return self._store.directories()

    @staticmethod
    def _is_known(model_id: str) -> bool:
        try:
            require_model_spec(model_id)
        except ValueError:
            return False
        return True
