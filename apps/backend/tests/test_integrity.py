import pytest

from nandi.config import MEBIBYTE, PipelineConfig
from nandi.pipeline.errors import StageError
from nandi.pipeline.integrity import FileIntegrityCheck, normalize_media_type
from nandi.pipeline.types import FailureReason, RawUpload, Stage


def _upload(size: int, media_type: str = "image/jpeg") -> RawUpload:
    return RawUpload(data=b"", media_type=media_type, size=size)


def test_upload_at_ceiling_passes() -> None:
    FileIntegrityCheck(PipelineConfig()).check(_upload(10 * MEBIBYTE))


def test_upload_above_ceiling_is_oversize() -> None:
    with pytest.raises(StageError) as excinfo:
        FileIntegrityCheck(PipelineConfig()).check(_upload(10 * MEBIBYTE + 1))

    assert excinfo.value.stage is Stage.FILE_INTEGRITY
    assert excinfo.value.reason is FailureReason.OVERSIZE


def test_size_is_checked_before_type() -> None:
    with pytest.raises(StageError) as excinfo:
        FileIntegrityCheck(PipelineConfig()).check(_upload(11 * MEBIBYTE, "application/pdf"))

    assert excinfo.value.reason is FailureReason.OVERSIZE


@pytest.mark.parametrize("media_type", ["image/gif", "application/octet-stream", "", "text/plain"])
def test_media_type_outside_allow_list(media_type: str) -> None:
    with pytest.raises(StageError) as excinfo:
        FileIntegrityCheck(PipelineConfig()).check(_upload(1024, media_type))

    assert excinfo.value.reason is FailureReason.UNSUPPORTED_TYPE


@pytest.mark.parametrize("media_type", ["image/jpeg", "image/jpg", "IMAGE/PNG", "image/webp; charset=binary"])
def test_allowed_media_types(media_type: str) -> None:
    FileIntegrityCheck(PipelineConfig()).check(_upload(1024, media_type))


def test_allow_list_is_configurable() -> None:
    check = FileIntegrityCheck(PipelineConfig(allowed_media_types=["image/png"]))

    with pytest.raises(StageError) as excinfo:
        check.check(_upload(1024, "image/jpeg"))

    assert excinfo.value.reason is FailureReason.UNSUPPORTED_TYPE


def test_normalize_media_type() -> None:
    assert normalize_media_type(" Image/JPEG ; q=1") == "image/jpeg"
    assert normalize_media_type(None) == ""
