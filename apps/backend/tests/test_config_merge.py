import pytest
from pydantic import ValidationError

from nandi.config import MEBIBYTE, PipelineConfig, merge_pipeline_config


def test_defaults_match_upload_contract() -> None:
    cfg = PipelineConfig()

    assert cfg.max_upload_bytes == 10 * MEBIBYTE
    assert cfg.allowed_media_types == ["image/jpeg", "image/jpg", "image/png", "image/webp"]
    assert cfg.gate_threshold == 0.5
    assert cfg.target_labels == ["cow"]


def test_config_merge_nested() -> None:
    cfg = PipelineConfig()

    updated = merge_pipeline_config(
        cfg,
        {
            "gate_threshold": 0.7,
            "timeouts": {
                "inference_s": 5.0,
            },
        },
    )

    assert updated.gate_threshold == 0.7
    assert updated.timeouts.inference_s == 5.0
    assert updated.timeouts.decode_s == cfg.timeouts.decode_s


def test_config_merge_rejects_out_of_range_threshold() -> None:
    with pytest.raises(ValidationError):
        merge_pipeline_config(PipelineConfig(), {"gate_threshold": 1.5})


def test_unknown_media_type_is_rejected() -> None:
    with pytest.raises(ValidationError):
        PipelineConfig(allowed_media_types=["image/gif"])


def test_target_labels_are_normalized() -> None:
    cfg = PipelineConfig(target_labels=[" Cow ", "OX"])

    assert cfg.target_labels == ["cow", "ox"]


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NANDI_GATE_THRESHOLD", "0.65")
    monkeypatch.setenv("NANDI_TARGET_LABELS", "cow, sheep")
    monkeypatch.setenv("NANDI_MAX_UPLOAD_BYTES", "2048")

    cfg = PipelineConfig()

    assert cfg.gate_threshold == 0.65
    assert cfg.target_labels == ["cow", "sheep"]
    assert cfg.max_upload_bytes == 2048
