from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from PIL import Image

if TYPE_CHECKING:
    from nandi.schemas import AnalysisResult


class Stage(str, Enum):
    FILE_INTEGRITY = "FileIntegrityCheck"
    DECODE = "ImageDecodabilityCheck"
    SUBJECT_GATE = "SubjectPresenceGate"
    ATTRIBUTES = "AttributeInferenceEngine"


class FailureReason(str, Enum):
    OVERSIZE = "OVERSIZE"
    UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
    CORRUPT_OR_UNDECODABLE = "CORRUPT_OR_UNDECODABLE"
    SUBJECT_NOT_DETECTED = "SUBJECT_NOT_DETECTED"
    GATE_UNAVAILABLE = "GATE_UNAVAILABLE"
    INFERENCE_FAILED = "INFERENCE_FAILED"
    TIMEOUT = "TIMEOUT"


class RunState(str, Enum):
    RECEIVED = "received"
    INTEGRITY_CHECKED = "integrity_checked"
    DECODED = "decoded"
    GATE_PASSED = "gate_passed"
    INFERRED = "inferred"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RawUpload:
    data: bytes = field(repr=False)
    media_type: str
    size: int
    filename: str | None = None

    @classmethod
    def from_bytes(cls, data: bytes, media_type: str, filename: str | None = None) -> RawUpload:
        return cls(data=data, media_type=media_type, size=len(data), filename=filename)


@dataclass(frozen=True, slots=True)
class DecodedImage:
    image: Image.Image = field(repr=False, compare=False)
    width: int
    height: int
    source_format: str


@dataclass(frozen=True, slots=True)
class Detection:
    label: str
    score: float


@dataclass(frozen=True, slots=True)
class PipelineFailure:
    stage: Stage
    reason: FailureReason
    detail: str = field(default="", compare=False)


@dataclass(slots=True)
class RunReport:
    outcome: AnalysisResult | PipelineFailure
    states: list[RunState]
    gate: Detection | None = None
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not isinstance(self.outcome, PipelineFailure)
