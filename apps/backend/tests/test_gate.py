import pytest

from conftest import RaisingDetector, StubDetector
from nandi.config import PipelineConfig
from nandi.pipeline.errors import ModelLoadError, StageError
from nandi.pipeline.gate import SubjectPresenceGate
from nandi.pipeline.loader import ModelProvider
from nandi.pipeline.types import DecodedImage, Detection, FailureReason, Stage


def _gate(detector, config: PipelineConfig | None = None) -> SubjectPresenceGate:
    return SubjectPresenceGate(ModelProvider("detector", lambda: detector), config or PipelineConfig())


@pytest.mark.asyncio
async def test_cow_above_threshold_is_accepted(decoded_image: DecodedImage) -> None:
    best = await _gate(StubDetector([Detection("cow", 0.9)])).gate(decoded_image)

    assert best == Detection("cow", 0.9)


@pytest.mark.asyncio
async def test_score_exactly_at_threshold_is_accepted(decoded_image: DecodedImage) -> None:
    best = await _gate(StubDetector([Detection("cow", 0.5)])).gate(decoded_image)

    assert best.score == 0.5


@pytest.mark.asyncio
async def test_cow_below_threshold_is_rejected(decoded_image: DecodedImage) -> None:
    with pytest.raises(StageError) as excinfo:
        await _gate(StubDetector([Detection("cow", 0.4)])).gate(decoded_image)

    assert excinfo.value.stage is Stage.SUBJECT_GATE
    assert excinfo.value.reason is FailureReason.SUBJECT_NOT_DETECTED


@pytest.mark.asyncio
async def test_other_animals_do_not_count(decoded_image: DecodedImage) -> None:
    detector = StubDetector([Detection("dog", 0.99), Detection("horse", 0.97)])

    with pytest.raises(StageError) as excinfo:
        await _gate(detector).gate(decoded_image)

    assert excinfo.value.reason is FailureReason.SUBJECT_NOT_DETECTED


@pytest.mark.asyncio
async def test_no_detections_is_rejected(decoded_image: DecodedImage) -> None:
    with pytest.raises(StageError) as excinfo:
        await _gate(StubDetector([])).gate(decoded_image)

    assert excinfo.value.reason is FailureReason.SUBJECT_NOT_DETECTED


@pytest.mark.asyncio
async def test_best_target_detection_wins(decoded_image: DecodedImage) -> None:
    detector = StubDetector(
        [Detection("cow", 0.3), Detection("dog", 0.99), Detection("Cow", 0.8), Detection("cow", 0.6)]
    )

    best = await _gate(detector).gate(decoded_image)

    assert best == Detection("Cow", 0.8)


@pytest.mark.asyncio
async def test_detector_failure_fails_closed(decoded_image: DecodedImage) -> None:
    with pytest.raises(StageError) as excinfo:
        await _gate(RaisingDetector()).gate(decoded_image)

    assert excinfo.value.reason is FailureReason.GATE_UNAVAILABLE
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_detector_load_failure_fails_closed(decoded_image: DecodedImage) -> None:
    def broken_factory():
        raise FileNotFoundError("yolov8n.pt")

    gate = SubjectPresenceGate(ModelProvider("detector", broken_factory), PipelineConfig())

    with pytest.raises(StageError) as excinfo:
        await gate.gate(decoded_image)

    assert excinfo.value.reason is FailureReason.GATE_UNAVAILABLE
    assert isinstance(excinfo.value.__cause__, ModelLoadError)


@pytest.mark.asyncio
async def test_malformed_score_fails_closed(decoded_image: DecodedImage) -> None:
    with pytest.raises(StageError) as excinfo:
        await _gate(StubDetector([Detection("cow", float("nan"))])).gate(decoded_image)

    assert excinfo.value.reason is FailureReason.GATE_UNAVAILABLE


@pytest.mark.asyncio
async def test_threshold_and_labels_come_from_config(decoded_image: DecodedImage) -> None:
    config = PipelineConfig(gate_threshold=0.3, target_labels=["cow", "sheep"])

    best = await _gate(StubDetector([Detection("sheep", 0.35)]), config).gate(decoded_image)

    assert best.label == "sheep"


def test_select_best_keeps_first_on_tie() -> None:
    detections = [Detection("cow", 0.7), Detection("COW", 0.7)]

    best = SubjectPresenceGate.select_best(detections, frozenset({"cow"}))

    assert best == Detection("cow", 0.7)
