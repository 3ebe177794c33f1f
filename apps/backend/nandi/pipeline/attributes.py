from __future__ import annotations

import asyncio
import math
from typing import Any, Mapping

from pydantic import BaseModel

from nandi.pipeline.errors import StageError
from nandi.pipeline.loader import ModelProvider
from nandi.pipeline.models import AttributeModel
from nandi.pipeline.types import DecodedImage, FailureReason, Stage
from nandi.schemas import (
    AnalysisResult,
    Breed,
    BreedCategory,
    Coat,
    Features,
    Gender,
    GenderPrediction,
    HornType,
    Horns,
    Hump,
    HumpSize,
    QualityScore,
)


class AttributeInferenceEngine:
    """Run the attribute model and shape its raw output into an ``AnalysisResult``.

    All-or-nothing: any model error or malformed field fails the stage with
    ``INFERENCE_FAILED``; no partial result leaves this class.
    """

    def __init__(self, provider: ModelProvider[AttributeModel]) -> None:
        self._provider = provider

    async def infer(self, image: DecodedImage) -> AnalysisResult:
        try:
            model = await self._provider.get()
            raw = await asyncio.to_thread(model.predict, image)
            return shape_result(raw)
        except Exception as error:
            raise StageError(
                Stage.ATTRIBUTES,
                FailureReason.INFERENCE_FAILED,
                f"{type(error).__name__}: {error}",
            ) from error


def shape_result(raw: Mapping[str, Any] | BaseModel) -> AnalysisResult:
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)

    breed = raw["breed"]
    gender = raw["gender"]
    features = raw["features"]
    quality = raw["qualityScore"] if "qualityScore" in raw else raw["quality_score"]

    hump_present = _flag(features["hump"]["present"])
    horns_present = _flag(features["horns"]["present"])

    return AnalysisResult(
        breed=Breed(
            name=_text(breed["name"]),
            confidence=_confidence(breed["confidence"]),
            category=BreedCategory(breed["category"]),
        ),
        gender=GenderPrediction(
            prediction=Gender(gender["prediction"]),
            confidence=_confidence(gender["confidence"]),
        ),
        features=Features(
            hump=Hump(
                present=hump_present,
                size=HumpSize(features["hump"]["size"]) if hump_present else HumpSize.NONE,
            ),
            horns=Horns(
                present=horns_present,
                type=HornType(features["horns"]["type"]) if horns_present else HornType.NONE,
            ),
            coat=Coat(
                color=_text(features["coat"]["color"]),
                pattern=_text(features["coat"]["pattern"]),
            ),
        ),
        quality_score=QualityScore(
            overall=_score(quality["overall"]),
            health=_score(quality["health"]),
            build=_score(quality["build"]),
            conformation=_score(quality["conformation"]),
        ),
    )


def _finite(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite value {value!r}")
    return number


def _confidence(value: Any) -> float:
    return min(1.0, max(0.0, _finite(value)))


def _score(value: Any) -> int:
    return min(100, max(0, int(round(_finite(value)))))


def _flag(value: Any) -> bool:
    if value not in (True, False):
        raise ValueError(f"expected a boolean flag, got {value!r}")
    return bool(value)


def _text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"expected a non-empty string, got {value!r}")
    return value.strip()
