from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure the conversation pipeline reports."""

    step = "pipeline"

    def __init__(self, message: str, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if step is not None:
            self.step = step

    def __str__(self) -> str:
        return self.message


class InvalidInput(PipelineError):
    step = "validation"


class NotFound(PipelineError):
    step = "lookup"


class ServiceUnavailable(PipelineError):
    """A required remote engine has no usable configuration."""

    step = "configuration"


class TranslationFailed(PipelineError):
    step = "translation"


class SummarizationFailed(PipelineError):
    step = "summarization"


class UploadFailed(PipelineError):
    step = "audio_upload"


class PersistenceFailed(PipelineError):
    step = "persistence"


RETRYABLE_ERRORS = (TranslationFailed, SummarizationFailed, UploadFailed)
