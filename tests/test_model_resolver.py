from __future__ import annotations

from pathlib import Path

import pytest

from config import JsonPreferenceStore
from errors import ModelNotInstalledError, UnknownModelError
from model_catalog import get_model_spec, model_download_urls
from model_resolver import ModelResolver
from model_store import ModelStore


def _install(directory: Path, model_id: str, size: int = 16) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / get_model_spec(model_id).file
    path.write_bytes(b"\x00" * size)
    return path


@pytest.fixture
def store(tmp_path: Path) -> ModelStore:
    return ModelStore(tmp_path / "models", legacy_dir=tmp_path / "legacy")


@pytest.fixture
def prefs(tmp_path: Path) -> JsonPreferenceStore:
    return JsonPreferenceStore(path=tmp_path / "data" / "preferences.json")


@pytest.fixture
def resolver(store: ModelStore, prefs: JsonPreferenceStore) -> ModelResolver:
    return ModelResolver(store, prefs)


# ---------------------------------------------------------------
# Catalog and store
# ---------------------------------------------------------------

def test_download_urls_strip_trailing_slash() -> None:
    urls = model_download_urls("small", ["https://a.example/models/", "https://b.example"])
    assert urls == [
        "https://a.example/models/ggml-small.bin",
        "https://b.example/ggml-small.bin",
    ]


def test_unknown_model_is_rejected() -> None:
    with pytest.raises(UnknownModelError):
        model_download_urls("tiny", ["https://a.example"])


def test_list_models_sorted_by_quality(store: ModelStore, tmp_path: Path) -> None:
    _install(tmp_path / "models", "small", size=42)

    states = store.list_models()

    assert [s.id for s in states] == ["large-v3", "medium", "small", "base"]
    small = next(s for s in states if s.id == "small")
    assert small.installed is True
    assert small.size_bytes == 42
    base = next(s for s in states if s.id == "base")
    assert base.installed is False
    assert base.size_bytes is None
    assert base.path == tmp_path / "models" / "ggml-base.bin"


def test_legacy_directory_counts_as_installed(store: ModelStore, tmp_path: Path) -> None:
    legacy = _install(tmp_path / "legacy", "medium")

    assert store.is_installed("medium") is True
    assert store.resolve_path("medium") == legacy
    assert store.directories()["legacy"] == tmp_path / "legacy"


def test_partial_path_sits_next_to_final(store: ModelStore, tmp_path: Path) -> None:
    assert store.partial_path("base") == tmp_path / "models" / "ggml-base.bin.partial"


# ---------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------

def test_no_model_installed_resolves_to_none(resolver: ModelResolver) -> None:
    assert resolver.effective_model() is None


def test_best_installed_model_is_picked_automatically(resolver: ModelResolver, tmp_path: Path) -> None:
    _install(tmp_path / "models", "small")
    assert resolver.effective_model() == "small"

    _install(tmp_path / "models", "medium")
    assert resolver.effective_model() == "medium"


def test_explicit_selection_wins(resolver: ModelResolver, prefs: JsonPreferenceStore, tmp_path: Path) -> None:
    _install(tmp_path / "models", "base")
    _install(tmp_path / "models", "large-v3")

    resolver.select_model("base")

    assert prefs.get_model_id() == "base"
    assert resolver.effective_model() == "base"


def test_selecting_missing_model_fails_without_change(
    resolver: ModelResolver, prefs: JsonPreferenceStore, tmp_path: Path
) -> None:
    _install(tmp_path / "models", "small")
    resolver.select_model("small")

    with pytest.raises(ModelNotInstalledError):
        resolver.select_model("medium")
    with pytest.raises(UnknownModelError):
        resolver.select_model("huge")

    assert prefs.get_model_id() == "small"


def test_vanished_selection_clears_preference(
    resolver: ModelResolver, prefs: JsonPreferenceStore, tmp_path: Path
) -> None:
    _install(tmp_path / "models", "base")
    medium = _install(tmp_path / "models", "medium")
    resolver.select_model("medium")

    medium.unlink()

    assert resolver.effective_model() == "base"
    assert prefs.get_model_id() is None


def test_unknown_persisted_selection_is_cleared(
    resolver: ModelResolver, prefs: JsonPreferenceStore, tmp_path: Path
) -> None:
    _install(tmp_path / "models", "small")
    prefs.set_model_id("ancient")

    assert resolver.effective_model() == "small"
    assert prefs.get_model_id() is None


def test_deleting_selected_model_falls_back(
    resolver: ModelResolver, prefs: JsonPreferenceStore, tmp_path: Path
) -> None:
    _install(tmp_path / "models", "small")
    _install(tmp_path / "models", "large-v3")
    resolver.select_model("small")

    assert resolver.delete_model("small") is True

    assert prefs.get_model_id() is None
    assert not (tmp_path / "models" / "ggml-small.bin").exists()
    assert resolver.effective_model() == "large-v3"

    resolver.delete_model("large-v3")
    assert resolver.effective_model() is None


def test_clear_selection_returns_to_best(resolver: ModelResolver, tmp_path: Path) -> None:
    _install(tmp_path / "models", "base")
    _install(tmp_path / "models", "medium")
    resolver.select_model("base")

    resolver.clear_selection()

    assert resolver.selected_model() is None
    assert resolver.effective_model() == "medium"


def test_delete_of_legacy_only_model_keeps_selection(
    resolver: ModelResolver, prefs: JsonPreferenceStore, tmp_path: Path
) -> None:
    legacy = _install(tmp_path / "legacy", "medium")
    resolver.select_model("medium")

    assert resolver.delete_model("medium") is False

    assert legacy.exists()
    assert prefs.get_model_id() == "medium"
    assert resolver.effective_model() == "medium"
