from __future__ import annotations

from io import BytesIO
from typing import Any, Callable

import numpy as np
import pytest
from PIL import Image

from nandi.config import PipelineConfig
from nandi.pipeline.loader import ModelProvider
from nandi.pipeline.runner import AnalysisPipeline
from nandi.pipeline.types import DecodedImage, Detection, RawUpload
from nandi.schemas import AnalysisResult

MEDIA_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}

FIXED_RESULT = {
    "breed": {"name": "Holstein Friesian", "confidence": 0.94, "category": "Cattle"},
    "gender": {"prediction": "Female", "confidence": 0.87},
    "features": {
        "hump": {"present": False, "size": "None"},
        "horns": {"present": True, "type": "Short"},
        "coat": {"color": "Black and White", "pattern": "Spotted"},
    },
    "qualityScore": {"overall": 87, "health": 92, "build": 85, "conformation": 84},
}


class StubDetector:
    def __init__(self, detections: list[Detection]) -> None:
        self.detections = detections
        self.calls = 0

    def detect(self, image: DecodedImage) -> list[Detection]:
        self.calls += 1
        return list(self.detections)


class RaisingDetector:
    def detect(self, image: DecodedImage) -> list[Detection]:
        raise RuntimeError("detector crashed")


class StubAttributeModel:
    def __init__(self, result: Any = None) -> None:
        self.result = FIXED_RESULT if result is None else result
        self.calls = 0

    def predict(self, image: DecodedImage) -> Any:
        self.calls += 1
        return self.result


def encode_image(
    fmt: str = "JPEG",
    size: tuple[int, int] = (64, 48),
    color: tuple[int, int, int] = (120, 90, 60),
    noise: bool = False,
    seed: int = 0,
) -> bytes:
    if noise:
        rng = np.random.default_rng(seed)
        arr = rng.integers(0, 256, (size[1], size[0], 3), dtype=np.uint8)
        image = Image.fromarray(arr, mode="RGB")
    else:
        image = Image.new("RGB", size, color=color)

    buffer = BytesIO()
    if fmt == "WEBP":
        image.save(buffer, format=fmt, lossless=True)
    elif fmt == "JPEG":
        image.save(buffer, format=fmt, quality=100)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(detector_weights="unused.pt", attribute_weights=None)


@pytest.fixture
def make_upload() -> Callable[..., RawUpload]:
    def _make(fmt: str = "JPEG", **kwargs: Any) -> RawUpload:
        data = encode_image(fmt, **kwargs)
        return RawUpload.from_bytes(data, MEDIA_TYPES[fmt], filename=f"upload.{fmt.lower()}")

    return _make


@pytest.fixture
def decoded_image() -> DecodedImage:
    image = Image.new("RGB", (64, 48), color=(120, 90, 60))
    return DecodedImage(image=image, width=64, height=48, source_format="JPEG")


@pytest.fixture
def fixed_result() -> AnalysisResult:
    return AnalysisResult.model_validate(FIXED_RESULT)


@pytest.fixture
def make_pipeline(config: PipelineConfig) -> Callable[..., AnalysisPipeline]:
    def _make(detector: Any, attributes: Any, pipeline_config: PipelineConfig | None = None) -> AnalysisPipeline:
        return AnalysisPipeline(
            pipeline_config or config,
            ModelProvider("detector", lambda: detector),
            ModelProvider("attributes", lambda: attributes),
        )

    return _make
