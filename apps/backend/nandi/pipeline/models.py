"""
Model protocols for the livestock pipeline.

Defines the detector and attribute-model interfaces the gate and the
attribute engine are written against.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from nandi.pipeline.types import DecodedImage, Detection


class ObjectDetector(Protocol):
    """Protocol for general-purpose object detectors."""

    def detect(self, image: DecodedImage) -> list[Detection]:
        """
        Detect objects in a decoded image.

        Args:
            image: Decoded RGB image

        Returns:
            Detections with a class label and a score in [0, 1], in detector order
        """
        ...


class AttributeModel(Protocol):
    """Protocol for breed/gender/feature/quality models."""

    def predict(self, image: DecodedImage) -> Mapping[str, Any]:
        """
        Predict livestock attributes for an image that passed the subject gate.

        Args:
            image: Decoded RGB image

        Returns:
            Raw mapping with ``breed``, ``gender``, ``features`` and
            ``qualityScore`` (or ``quality_score``) entries, shaped like
            ``nandi.schemas.AnalysisResult``; values are clamped and validated
            by the attribute engine.
        """
        ...
