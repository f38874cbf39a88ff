from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from cli import cli
from config import JsonPreferenceStore
from errors import DownloadError
from model_resolver import ModelResolver
from model_store import ModelStore
from models import DownloadProgress


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "models"
    directory.mkdir()
    return directory


@pytest.fixture
def obj(tmp_path: Path, models_dir: Path) -> dict:
    store = ModelStore(models_dir, legacy_dir=tmp_path / "legacy")
    return {
        "resolver": ModelResolver(store, JsonPreferenceStore(path=tmp_path / "preferences.json")),
        "downloader": MagicMock(),
    }


def _run(obj: dict, *args: str, **kwargs):  # noqa: ANN003, ANN202
    return CliRunner().invoke(cli, list(args), obj=obj, **kwargs)


def test_list_marks_effective_model(obj: dict, models_dir: Path) -> None:
    (models_dir / "ggml-small.bin").write_bytes(b"x" * 10)

    result = _run(obj, "list")

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    small = next(line for line in lines if " small " in line)
    assert small.startswith("*")
    assert "installed" in small
    assert f"Models directory: {models_dir}" in result.output


def test_select_and_clear(obj: dict, models_dir: Path) -> None:
    (models_dir / "ggml-base.bin").write_bytes(b"b")
    (models_dir / "ggml-medium.bin").write_bytes(b"m")

    result = _run(obj, "select", "base")
    assert result.exit_code == 0, result.output
    assert obj["resolver"].effective_model() == "base"

    result = _run(obj, "clear")
    assert result.exit_code == 0
    assert "Using medium" in result.output


def test_select_missing_model_fails(obj: dict) -> None:
    result = _run(obj, "select", "large-v3")

    assert result.exit_code != 0
    assert "not installed" in result.output


def test_delete_requires_confirmation(obj: dict, models_dir: Path) -> None:
    model = models_dir / "ggml-base.bin"
    model.write_bytes(b"b")

    aborted = _run(obj, "delete", "base", input="n\n")
    assert aborted.exit_code != 0
    assert model.exists()

    result = _run(obj, "delete", "base", "--yes")
    assert result.exit_code == 0, result.output
    assert not model.exists()

    again = _run(obj, "delete", "base", "--yes")
    assert again.exit_code != 0


def test_download_reports_progress_and_success(obj: dict) -> None:
    def fake_download(model_id, on_progress=None, timeout=None):  # noqa: ANN001, ANN202
        on_progress(DownloadProgress(model_id, 512, 1024, 0.5))
        on_progress(DownloadProgress(model_id, 1024, 1024, 1.0))

    obj["downloader"].download.side_effect = fake_download

    result = _run(obj, "download", "base")

    assert result.exit_code == 0, result.output
    assert "is installed" in result.output
    obj["downloader"].download.assert_called_once()
    obj["downloader"].close.assert_called_once()


def test_download_failure_is_reported(obj: dict) -> None:
    obj["downloader"].download.side_effect = DownloadError("Failed to download model (404)", status_code=404)

    result = _run(obj, "download", "base")

    assert result.exit_code == 1
    assert "404" in result.output


def test_download_rejects_unknown_model(obj: dict) -> None:
    result = _run(obj, "download", "tiny")

    assert result.exit_code == 2
    obj["downloader"].download.assert_not_called()
