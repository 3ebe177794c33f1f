from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

Confidence = Annotated[float, Field(ge=0.0, le=1.0)]
Score = Annotated[int, Field(ge=0, le=100)]


class BreedCategory(str, Enum):
    CATTLE = "Cattle"
    BUFFALO = "Buffalo"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class HumpSize(str, Enum):
    NONE = "None"
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"


class HornType(str, Enum):
    NONE = "None"
    SHORT = "Short"
    CURVED = "Curved"
    STRAIGHT = "Straight"


class Breed(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    confidence: Confidence
    category: BreedCategory


class GenderPrediction(BaseModel):
    model_config = ConfigDict(frozen=True)

    prediction: Gender
    confidence: Confidence


class Hump(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool
    size: HumpSize = HumpSize.NONE

    @model_validator(mode="after")
    def _absent_has_no_size(self) -> Hump:
        if not self.present and self.size is not HumpSize.NONE:
            raise ValueError("hump size must be None when no hump is present")
        return self


class Horns(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool
    type: HornType = HornType.NONE

    @model_validator(mode="after")
    def _absent_has_no_type(self) -> Horns:
        if not self.present and self.type is not HornType.NONE:
            raise ValueError("horn type must be None when no horns are present")
        return self


class Coat(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: str
    pattern: str


class Features(BaseModel):
    model_config = ConfigDict(frozen=True)

    hump: Hump
    horns: Horns
    coat: Coat


class QualityScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall: Score
    health: Score
    build: Score
    conformation: Score


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    breed: Breed
    gender: GenderPrediction
    features: Features
    quality_score: QualityScore = Field(alias="qualityScore")


class GatePayload(BaseModel):
    label: str
    score: float


class AnalyzeResponse(BaseModel):
    status: str = "ok"
    result: AnalysisResult
    gate: GatePayload | None = None
    latency_ms: float


class ErrorResponse(BaseModel):
    status: str = "error"
    stage: str | None = None
    reason: str
    message: str
    detail: str = ""


class ConfigResponse(BaseModel):
    revision: int
    config: dict[str, Any]


class HealthResponse(BaseModel):
    status: str = "ok"
    models: dict[str, bool]
    metrics: dict[str, Any]
