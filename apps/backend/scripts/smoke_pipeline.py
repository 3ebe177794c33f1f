#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
from io import BytesIO
import json
import mimetypes
from pathlib import Path
import sys

import numpy as np
from PIL import Image

from nandi.config import PipelineConfig
from nandi.pipeline.types import DecodedImage, Detection, PipelineFailure, RawUpload
from nandi.services.analysis import AnalysisService, build_detector


class FixedDetector:
    """Detector stand-in that reports one fixed detection for every image."""

    def __init__(self, label: str, score: float) -> None:
        self._detection = Detection(label=label, score=score)

    def detect(self, image: DecodedImage) -> list[Detection]:
        return [self._detection]


def build_image(width: int, height: int) -> bytes:
    """Generate a deterministic synthetic JPEG (brown gradient)."""
    x = np.linspace(0.0, 1.0, width, dtype=np.float32)
    y = np.linspace(0.0, 1.0, height, dtype=np.float32)
    xx, yy = np.meshgrid(x, y)

    r = 0.45 + 0.2 * xx
    g = 0.30 + 0.15 * yy
    b = 0.18 + 0.1 * (xx * 0.5 + yy * 0.5)
    arr = np.stack([r, g, b], axis=-1)

    buffer = BytesIO()
    Image.fromarray(np.clip(arr * 255.0, 0, 255).astype(np.uint8), mode="RGB").save(buffer, format="JPEG")
    return buffer.getvalue()


def load_upload(path: str | None, width: int, height: int) -> RawUpload:
    if not path:
        return RawUpload.from_bytes(build_image(width, height), "image/jpeg", filename="synthetic.jpg")

    image_path = Path(path).expanduser().resolve()
    media_type = mimetypes.guess_type(image_path.name)[0] or "application/octet-stream"
    return RawUpload.from_bytes(image_path.read_bytes(), media_type, filename=image_path.name)


async def run(args: argparse.Namespace) -> int:
    config = PipelineConfig(gate_threshold=args.threshold)
    if args.detector == "yolo":
        service = AnalysisService(config, detector_factory=build_detector)
    else:
        service = AnalysisService(config, detector_factory=lambda _: FixedDetector(args.label, args.score))

    upload = load_upload(args.image, args.width, args.height)
    print(f"upload: {upload.filename} type={upload.media_type} size={upload.size}", file=sys.stderr)

    for attempt in range(args.runs):
        report = await service.analyze(upload)
        if isinstance(report.outcome, PipelineFailure):
            payload = {
                "status": "error",
                "stage": report.outcome.stage.value,
                "reason": report.outcome.reason.value,
                "detail": report.outcome.detail,
            }
        else:
            payload = {
                "status": "ok",
                "result": report.outcome.model_dump(mode="json", by_alias=True),
                "gate": {"label": report.gate.label, "score": report.gate.score} if report.gate else None,
            }
        payload["latency_ms"] = report.latency_ms
        payload["states"] = [state.value for state in report.states]
        print(f"run={attempt + 1}/{args.runs}", file=sys.stderr)
        print(json.dumps(payload, indent=2))

    print(f"metrics: {service.metrics_snapshot}", file=sys.stderr)
    return 0 if service.metrics.failures == {} else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test for the livestock analysis pipeline")
    parser.add_argument("--image", type=str, default="", help="Image to analyze; synthetic JPEG when omitted")
    parser.add_argument("--width", type=int, default=640, help="Synthetic image width")
    parser.add_argument("--height", type=int, default=427, help="Synthetic image height")
    parser.add_argument("--detector", choices=["stub", "yolo"], default="stub")
    parser.add_argument("--label", type=str, default="cow", help="Label reported by the stub detector")
    parser.add_argument("--score", type=float, default=0.95, help="Score reported by the stub detector")
    parser.add_argument("--threshold", type=float, default=0.5, help="Subject gate threshold")
    parser.add_argument("--runs", type=int, default=1, help="Repeat the same upload this many times")
    args = parser.parse_args()

    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
