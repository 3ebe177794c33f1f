from __future__ import annotations

from copy import deepcopy
import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

MEBIBYTE = 1024 * 1024

# Declared media type -> Pillow format names it may decode as.
MEDIA_TYPE_FORMATS: dict[str, tuple[str, ...]] = {
    "image/jpeg": ("JPEG",),
    "image/jpg": ("JPEG",),
    "image/png": ("PNG",),
    "image/webp": ("WEBP",),
}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class TimeoutConfig(BaseModel):
    decode_s: float = Field(default=10.0, gt=0.0, le=300.0)
    gate_s: float = Field(default=60.0, gt=0.0, le=600.0)
    inference_s: float = Field(default=60.0, gt=0.0, le=600.0)


class PipelineConfig(BaseModel):
    max_upload_bytes: int = Field(
        default_factory=lambda: int(os.getenv("NANDI_MAX_UPLOAD_BYTES", str(10 * MEBIBYTE))),
        ge=1,
        le=100 * MEBIBYTE,
    )
    # Header dimensions are checked against this before any pixel data is decoded.
    max_pixels: int = Field(
        default_factory=lambda: int(os.getenv("NANDI_MAX_PIXELS", "50000000")),
        ge=1,
    )
    allowed_media_types: list[str] = Field(
        default_factory=lambda: list(MEDIA_TYPE_FORMATS),
        min_length=1,
    )

    # COCO has no buffalo class; both cattle and buffalo pass through the "cow" label.
    target_labels: list[str] = Field(
        default_factory=lambda: _env_list("NANDI_TARGET_LABELS", "cow"),
        min_length=1,
    )
    gate_threshold: float = Field(
        default_factory=lambda: float(os.getenv("NANDI_GATE_THRESHOLD", "0.5")),
        ge=0.0,
        le=1.0,
    )

    detector_weights: str = Field(
        default_factory=lambda: os.getenv("NANDI_DETECTOR_WEIGHTS", "yolov8n.pt")
    )
    detector_device: str | None = Field(
        default_factory=lambda: os.getenv("NANDI_DETECTOR_DEVICE")
    )
    detector_min_confidence: float = Field(default=0.1, ge=0.0, le=1.0)
    attribute_weights: str | None = Field(
        default_factory=lambda: os.getenv("NANDI_ATTRIBUTE_WEIGHTS")
    )

    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    @field_validator("allowed_media_types")
    @classmethod
    def _known_media_types(cls, value: list[str]) -> list[str]:
        normalized = [item.strip().lower() for item in value]
        unknown = [item for item in normalized if item not in MEDIA_TYPE_FORMATS]
        if unknown:
            raise ValueError(f"unsupported media types: {', '.join(unknown)}")
        return normalized

    @field_validator("target_labels")
    @classmethod
    def _lowercase_labels(cls, value: list[str]) -> list[str]:
        labels = [item.strip().lower() for item in value if item.strip()]
        if not labels:
            raise ValueError("at least one target label is required")
        return labels

    def formats_for(self, media_type: str) -> tuple[str, ...]:
        return MEDIA_TYPE_FORMATS.get(media_type, ())


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_pipeline_config(current: PipelineConfig, patch: dict[str, Any]) -> PipelineConfig:
    merged_dict = deep_merge(current.model_dump(), patch)
    return PipelineConfig.model_validate(merged_dict)
