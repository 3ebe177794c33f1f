from __future__ import annotations

from io import BytesIO

from PIL import Image

from nandi.config import PipelineConfig
from nandi.pipeline.errors import StageError
from nandi.pipeline.integrity import normalize_media_type
from nandi.pipeline.types import DecodedImage, FailureReason, RawUpload, Stage


class ImageDecoder:
    """Decode an upload into an RGB raster, restricted to its declared format."""

    def __init__(self, config: PipelineConfig) -> None:
        self._config = config

    def decode(self, upload: RawUpload) -> DecodedImage:
        formats = self._config.formats_for(normalize_media_type(upload.media_type))
        if not formats:
            raise self._reject(f"no decoder for media type {upload.media_type!r}")

        try:
            with Image.open(BytesIO(upload.data), formats=list(formats)) as raw:
                source_format = raw.format or formats[0]
                pixels = raw.width * raw.height
                if pixels > self._config.max_pixels:
                    raise ValueError(
                        f"{raw.width}x{raw.height} exceeds {self._config.max_pixels} pixels"
                    )
                # Truncated streams only fail once pixel data is read.
                raw.load()
                frame = raw.convert("RGB")
        except Exception as error:
            raise self._reject(f"{type(error).__name__}: {error}") from error

        width, height = frame.size
        if width <= 0 or height <= 0:
            raise self._reject(f"image has zero dimension ({width}x{height})")

        return DecodedImage(image=frame, width=width, height=height, source_format=source_format)

    @staticmethod
    def _reject(detail: str) -> StageError:
        return StageError(Stage.DECODE, FailureReason.CORRUPT_OR_UNDECODABLE, detail)
