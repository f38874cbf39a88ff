"""Static catalog of whisper.cpp model variants."""

from __future__ import annotations

from typing import Iterable, Optional

from errors import UnknownModelError
from models import ModelSpec

MODEL_CATALOG: tuple[ModelSpec, ...] = (
    ModelSpec(
        id="base",
        label="Base",
        file="ggml-base.bin",
        size_mb=140,
        description="Balanced speed and accuracy.",
        quality_rank=20,
    ),
    ModelSpec(
        id="small",
        label="Small",
        file="ggml-small.bin",
        size_mb=460,
        description="Better accuracy, slower on older machines.",
        quality_rank=30,
    ),
    ModelSpec(
        id="medium",
        label="Medium",
        file="ggml-medium.bin",
        size_mb=1400,
        description="High accuracy, larger download.",
        quality_rank=40,
    ),
    ModelSpec(
        id="large-v3",
        label="Large v3",
        file="ggml-large-v3.bin",
        size_mb=2900,
        description="Best accuracy available.",
        quality_rank=60,
    ),
)


# Offered when a session is requested with no model installed.
RECOMMENDED_MODEL_ID = "base"


def get_model_catalog() -> list[ModelSpec]:
    return list(MODEL_CATALOG)


def get_model_spec(model_id: str) -> Optional[ModelSpec]:
    for spec in MODEL_CATALOG:
        if spec.id == model_id:
            return spec
    return None


def require_model_spec(model_id: str) -> ModelSpec:
    spec = get_model_spec(model_id)
    if spec is None:
        raise UnknownModelError(model_id)
    return spec


def model_download_urls(model_id: str, base_urls: Iterable[str]) -> list[str]:
    """Combine every source base URL with the catalog file name."""
    spec = require_model_spec(model_id)
    return [f"{base.rstrip('/')}/{spec.file}" for base in base_urls]
