from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from functools import partial
import logging
from typing import Any, Callable

from nandi.config import PipelineConfig, merge_pipeline_config
from nandi.pipeline.efficientnet_attributes import EfficientNetAttributeModel
from nandi.pipeline.errors import ModelLoadError, RunSuperseded
from nandi.pipeline.loader import ModelProvider
from nandi.pipeline.models import AttributeModel, ObjectDetector
from nandi.pipeline.reference_attributes import ReferenceAttributeModel
from nandi.pipeline.runner import AnalysisPipeline
from nandi.pipeline.types import PipelineFailure, RawUpload, RunReport
from nandi.pipeline.yolo_detector import YoloDetector

logger = logging.getLogger(__name__)

DETECTOR_FIELDS = ("detector_weights", "detector_device", "detector_min_confidence")
ATTRIBUTE_FIELDS = ("attribute_weights",)


def build_detector(config: PipelineConfig) -> ObjectDetector:
    return YoloDetector(
        config.detector_weights,
        device=config.detector_device,
        min_confidence=config.detector_min_confidence,
    )


def build_attribute_model(config: PipelineConfig) -> AttributeModel:
    if config.attribute_weights:
        return EfficientNetAttributeModel(config.attribute_weights)
    return ReferenceAttributeModel()


@dataclass
class AnalysisMetrics:
    runs: int = 0
    successes: int = 0
    superseded: int = 0
    failures: dict[str, int] = field(default_factory=dict)
    avg_latency_ms: float = 0.0


class AnalysisService:
    """Process-wide owner of the pipeline config, the model providers and run metrics."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        detector_factory: Callable[[PipelineConfig], ObjectDetector] = build_detector,
        attribute_factory: Callable[[PipelineConfig], AttributeModel] = build_attribute_model,
    ) -> None:
        self.config = config or PipelineConfig()
        self.revision = 1
        self.metrics = AnalysisMetrics()

        self._detector_factory = detector_factory
        self._attribute_factory = attribute_factory
        self.detector: ModelProvider[ObjectDetector] = ModelProvider(
            "detector", partial(detector_factory, self.config)
        )
        self.attributes: ModelProvider[AttributeModel] = ModelProvider(
            "attributes", partial(attribute_factory, self.config)
        )
        self._pipeline = AnalysisPipeline(self.config, self.detector, self.attributes)

        self._lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Task[RunReport]] = {}

    @property
    def model_status(self) -> dict[str, bool]:
        return {"detector": self.detector.loaded, "attributes": self.attributes.loaded}

    @property
    def metrics_snapshot(self) -> dict[str, Any]:
        return asdict(self.metrics)

    async def update_config(self, patch: dict[str, Any]) -> PipelineConfig:
        async with self._lock:
            config = merge_pipeline_config(self.config, patch)

            if _changed(self.config, config, DETECTOR_FIELDS):
                self.detector.reset(partial(self._detector_factory, config))
            if _changed(self.config, config, ATTRIBUTE_FIELDS):
                self.attributes.reset(partial(self._attribute_factory, config))

            self.config = config
            self._pipeline = AnalysisPipeline(config, self.detector, self.attributes)
            self.revision += 1
            logger.info("pipeline config updated to revision %d", self.revision)
            return self.config

    async def warmup(self) -> None:
        for provider in (self.detector, self.attributes):
            try:
                await provider.get()
            except ModelLoadError as error:
                logger.warning("warmup skipped for %s: %s", provider.name, error)

    async def analyze(self, upload: RawUpload, session_id: str | None = None) -> RunReport:
        """Run the pipeline on ``upload``.

        With a ``session_id``, a newer upload for the same session cancels this
        run and this call raises ``RunSuperseded`` instead of returning.
        """
        pipeline = self._pipeline

        if session_id is None:
            report = await pipeline.run_detailed(upload)
            self._record(report)
            return report

        task = asyncio.ensure_future(pipeline.run_detailed(upload))
        previous = self._inflight.get(session_id)
        self._inflight[session_id] = task
        if previous is not None and not previous.done():
            previous.cancel()

        try:
            report = await task
        except asyncio.CancelledError:
            if task.cancelled() and self._inflight.get(session_id) is not task:
                self.metrics.superseded += 1
                raise RunSuperseded(f"session {session_id} received a newer upload") from None
            raise
        finally:
            if self._inflight.get(session_id) is task:
                del self._inflight[session_id]

        self._record(report)
        return report

    def _record(self, report: RunReport) -> None:
        self.metrics.runs += 1
        if isinstance(report.outcome, PipelineFailure):
            reason = report.outcome.reason.value
            self.metrics.failures[reason] = self.metrics.failures.get(reason, 0) + 1
        else:
            self.metrics.successes += 1

        self.metrics.avg_latency_ms = (
            self.metrics.avg_latency_ms * 0.9 + report.latency_ms * 0.1
            if self.metrics.runs > 1
            else report.latency_ms
        )


def _changed(before: PipelineConfig, after: PipelineConfig, fields: tuple[str, ...]) -> bool:
    return any(getattr(before, name) != getattr(after, name) for name in fields)
