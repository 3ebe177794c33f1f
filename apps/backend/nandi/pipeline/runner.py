from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, TypeVar

from nandi.config import PipelineConfig
from nandi.pipeline.attributes import AttributeInferenceEngine
from nandi.pipeline.decoding import ImageDecoder
from nandi.pipeline.errors import StageError
from nandi.pipeline.gate import SubjectPresenceGate
from nandi.pipeline.integrity import FileIntegrityCheck
from nandi.pipeline.loader import ModelProvider
from nandi.pipeline.models import AttributeModel, ObjectDetector
from nandi.pipeline.types import FailureReason, PipelineFailure, RawUpload, RunReport, RunState, Stage
from nandi.schemas import AnalysisResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnalysisPipeline:
    """Integrity → decode → subject gate → attribute inference, stopping at the first failure.

    One instance is bound to one config snapshot and may serve any number of
    concurrent runs; the model providers are the only shared state.
    """

    def __init__(
        self,
        config: PipelineConfig,
        detector: ModelProvider[ObjectDetector],
        attributes: ModelProvider[AttributeModel],
    ) -> None:
        self._timeouts = config.timeouts
        self._integrity = FileIntegrityCheck(config)
        self._decoder = ImageDecoder(config)
        self._gate = SubjectPresenceGate(detector, config)
        self._engine = AttributeInferenceEngine(attributes)

    async def run(self, upload: RawUpload) -> AnalysisResult | PipelineFailure:
        report = await self.run_detailed(upload)
        return report.outcome

    async def run_detailed(self, upload: RawUpload) -> RunReport:
        started = time.perf_counter()
        states = [RunState.RECEIVED]

        try:
            self._integrity.check(upload)
            self._advance(states, RunState.INTEGRITY_CHECKED)

            decoded = await self._timed(
                Stage.DECODE,
                self._timeouts.decode_s,
                asyncio.to_thread(self._decoder.decode, upload),
            )
            self._advance(states, RunState.DECODED)

            gate = await self._timed(Stage.SUBJECT_GATE, self._timeouts.gate_s, self._gate.gate(decoded))
            self._advance(states, RunState.GATE_PASSED)

            result = await self._timed(
                Stage.ATTRIBUTES,
                self._timeouts.inference_s,
                self._engine.infer(decoded),
            )
            self._advance(states, RunState.INFERRED)
        except StageError as error:
            states.append(RunState.FAILED)
            logger.info(
                "run failed at %s with %s: %s",
                error.stage.value,
                error.reason.value,
                error.detail,
            )
            return RunReport(outcome=error.to_failure(), states=states, latency_ms=_elapsed_ms(started))

        self._advance(states, RunState.DONE)
        return RunReport(outcome=result, states=states, gate=gate, latency_ms=_elapsed_ms(started))

    @staticmethod
    def _advance(states: list[RunState], state: RunState) -> None:
        logger.debug("%s -> %s", states[-1].value, state.value)
        states.append(state)

    @staticmethod
    async def _timed(stage: Stage, timeout_s: float, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_s)
        except asyncio.TimeoutError as error:
            raise StageError(stage, FailureReason.TIMEOUT, f"exceeded {timeout_s}s") from error


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
