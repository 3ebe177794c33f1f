from __future__ import annotations

from typing import Any

from nandi.pipeline.errors import ModelLoadError
from nandi.pipeline.types import DecodedImage, Detection


class YoloDetector:
    """COCO-pretrained ultralytics YOLO wrapper returning (label, score) pairs."""

    def __init__(self, weights: str, device: str | None = None, min_confidence: float = 0.1) -> None:
        try:
            from ultralytics import YOLO
        except Exception as error:  # pragma: no cover - env dependent
            raise ModelLoadError(f"failed to import ultralytics: {error}") from error

        try:
            self._model: Any = YOLO(weights)
            if device:
                self._model.to(device)
        except Exception as error:  # pragma: no cover - env dependent
            raise ModelLoadError(f"failed to load YOLO weights {weights!r}: {error}") from error

        self.weights = weights
        self.min_confidence = min_confidence

    def detect(self, image: DecodedImage) -> list[Detection]:
        results = self._model.predict(image.image, conf=self.min_confidence, verbose=False)

        detections: list[Detection] = []
        for result in results:
            names = result.names
            for box in result.boxes:
                label = names[int(box.cls[0])]
                detections.append(Detection(label=str(label), score=float(box.conf[0])))
        return detections
