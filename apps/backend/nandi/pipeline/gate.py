from __future__ import annotations

import asyncio
import logging
import math
from typing import Iterable

from nandi.config import PipelineConfig
from nandi.pipeline.errors import StageError
from nandi.pipeline.loader import ModelProvider
from nandi.pipeline.models import ObjectDetector
from nandi.pipeline.types import DecodedImage, Detection, FailureReason, Stage

logger = logging.getLogger(__name__)


class SubjectPresenceGate:
    """Admit an image only when the detector sees a target label above threshold.

    The gate fails closed: a detector that cannot load, raises, or returns
    malformed detections rejects the image with ``GATE_UNAVAILABLE``.

    Known limitation: COCO detectors have no buffalo class, so buffalo images
    pass only when the detector labels them with a proxy such as ``cow``.
    """

    def __init__(self, provider: ModelProvider[ObjectDetector], config: PipelineConfig) -> None:
        self._provider = provider
        self._labels = frozenset(config.target_labels)
        self._threshold = config.gate_threshold

    async def gate(self, image: DecodedImage) -> Detection:
        try:
            detector = await self._provider.get()
            detections = await asyncio.to_thread(detector.detect, image)
            best = self.select_best(detections, self._labels)
        except Exception as error:
            raise StageError(
                Stage.SUBJECT_GATE,
                FailureReason.GATE_UNAVAILABLE,
                f"{type(error).__name__}: {error}",
            ) from error

        if best is None or best.score < self._threshold:
            seen = f"best {best.label}@{best.score:.3f}" if best else "no target label"
            raise StageError(
                Stage.SUBJECT_GATE,
                FailureReason.SUBJECT_NOT_DETECTED,
                f"{seen}, threshold {self._threshold}",
            )

        logger.debug("gate passed on %s@%.3f", best.label, best.score)
        return best

    @staticmethod
    def select_best(detections: Iterable[Detection], labels: frozenset[str]) -> Detection | None:
        """Highest-scoring target detection; ties keep the detector's first one."""
        matches: list[Detection] = []
        for detection in detections:
            score = float(detection.score)
            if not math.isfinite(score) or not 0.0 <= score <= 1.0:
                raise ValueError(f"malformed detection score {detection.score!r}")
            if str(detection.label).strip().lower() in labels:
                matches.append(Detection(label=str(detection.label), score=score))

        if not matches:
            return None
        return max(matches, key=lambda detection: detection.score)
