from __future__ import annotations

from nandi.config import PipelineConfig
from nandi.pipeline.errors import StageError
from nandi.pipeline.types import FailureReason, RawUpload, Stage


def normalize_media_type(media_type: str | None) -> str:
    """Lowercase a declared content type and drop any ``; param=...`` suffix."""
    if not media_type:
        return ""
    return media_type.split(";", 1)[0].strip().lower()


class FileIntegrityCheck:
    """Metadata-only checks run before any byte is decoded."""

    def __init__(self, config: PipelineConfig) -> None:
        self._max_bytes = config.max_upload_bytes
        self._allowed = frozenset(config.allowed_media_types)

    def check(self, upload: RawUpload) -> None:
        if upload.size > self._max_bytes:
            raise StageError(
                Stage.FILE_INTEGRITY,
                FailureReason.OVERSIZE,
                f"{upload.size} bytes exceeds the {self._max_bytes} byte limit",
            )

        media_type = normalize_media_type(upload.media_type)
        if media_type not in self._allowed:
            raise StageError(
                Stage.FILE_INTEGRITY,
                FailureReason.UNSUPPORTED_TYPE,
                f"media type {upload.media_type or '<missing>'!r} is not accepted",
            )
