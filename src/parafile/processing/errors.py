"""Processing pipeline errors."""

from __future__ import annotations

from .models import ProcessingStep


class ProcessingError(Exception):
    """Aborts the pipeline for one file, attributing the failure to a stage."""

    def __init__(self, message: str, step: ProcessingStep = ProcessingStep.UNKNOWN) -> None:
        super().__init__(message)
        self.step = step


__all__ = ["ProcessingError"]
