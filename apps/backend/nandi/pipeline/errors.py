from __future__ import annotations

from nandi.pipeline.types import FailureReason, PipelineFailure, Stage


class StageError(Exception):
    """A pipeline stage rejected its input or could not complete."""

    def __init__(self, stage: Stage, reason: FailureReason, detail: str = "") -> None:
        message = f"{stage.value}: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.stage = stage
        self.reason = reason
        self.detail = detail

    def to_failure(self) -> PipelineFailure:
        return PipelineFailure(stage=self.stage, reason=self.reason, detail=self.detail)


class ModelLoadError(RuntimeError):
    """Raised when a detector or attribute model cannot be initialized."""


class RunSuperseded(Exception):
    """The run was cancelled because a newer upload arrived for the same session."""
