from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from nandi.pipeline.errors import RunSuperseded
from nandi.pipeline.types import FailureReason, PipelineFailure, RawUpload
from nandi.schemas import AnalyzeResponse, ConfigResponse, ErrorResponse, GatePayload, HealthResponse
from nandi.services.analysis import AnalysisService

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

FAILURE_MESSAGES: dict[FailureReason, str] = {
    FailureReason.OVERSIZE: "File size exceeds the upload limit.",
    FailureReason.UNSUPPORTED_TYPE: "Invalid file type. Only JPG, PNG, and WEBP are allowed.",
    FailureReason.CORRUPT_OR_UNDECODABLE: "File is not a valid image or is corrupted.",
    FailureReason.SUBJECT_NOT_DETECTED: (
        "Invalid animal detected! This app only analyzes cattle and buffalo images. "
        "Please upload an image containing cattle or buffalo."
    ),
    FailureReason.GATE_UNAVAILABLE: "Animal detection is unavailable right now. Please try again later.",
    FailureReason.INFERENCE_FAILED: "Analysis failed. Please try again with a different image.",
    FailureReason.TIMEOUT: "Analysis took too long. Please try again.",
}

FAILURE_STATUS: dict[FailureReason, int] = {
    FailureReason.OVERSIZE: 413,
    FailureReason.UNSUPPORTED_TYPE: 415,
    FailureReason.CORRUPT_OR_UNDECODABLE: 422,
    FailureReason.SUBJECT_NOT_DETECTED: 422,
    FailureReason.INFERENCE_FAILED: 502,
    FailureReason.GATE_UNAVAILABLE: 503,
    FailureReason.TIMEOUT: 504,
}


service = AnalysisService()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if os.getenv("NANDI_WARMUP", "0") == "1":
        await service.warmup()
    yield


app = FastAPI(
    title="nandi livestock classifier",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def failure_response(failure: PipelineFailure) -> JSONResponse:
    body = ErrorResponse(
        stage=failure.stage.value,
        reason=failure.reason.value,
        message=FAILURE_MESSAGES[failure.reason],
        detail=failure.detail,
    )
    return JSONResponse(status_code=FAILURE_STATUS[failure.reason], content=body.model_dump())


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(models=service.model_status, metrics=service.metrics_snapshot)


@app.get("/api/config", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    return ConfigResponse(revision=service.revision, config=service.config.model_dump())


@app.put("/api/config", response_model=ConfigResponse)
async def put_config(patch: dict) -> ConfigResponse:
    try:
        config = await service.update_config(patch)
    except ValidationError as error:
        details = error.errors(include_url=False, include_context=False)
        raise HTTPException(status_code=422, detail=details) from error
    return ConfigResponse(revision=service.revision, config=config.model_dump())


@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze(
    image: UploadFile = File(...),
    session_id: str | None = Form(default=None),
):
    # Starlette has already spooled the body; copy at most one byte past the limit into RawUpload.
    data = await image.read(service.config.max_upload_bytes + 1)
    size = image.size if image.size is not None else len(data)
    upload = RawUpload(
        data=data,
        media_type=image.content_type or "",
        size=max(size, len(data)),
        filename=image.filename,
    )

    try:
        report = await service.analyze(upload, session_id=session_id)
    except RunSuperseded as error:
        body = ErrorResponse(reason="SUPERSEDED", message="A newer upload replaced this one.", detail=str(error))
        return JSONResponse(status_code=409, content=body.model_dump())

    if isinstance(report.outcome, PipelineFailure):
        return failure_response(report.outcome)

    gate = GatePayload(label=report.gate.label, score=report.gate.score) if report.gate else None
    return AnalyzeResponse(result=report.outcome, gate=gate, latency_ms=report.latency_ms)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("nandi.main:app", host=host, port=port, reload=True)
