"""Document processing pipeline."""

from .errors import ProcessingError
from .models import FileEvent, ProcessingResult, ProcessingStep, TokenUsage
from .processor import (
    STAGE_POLICIES,
    DocumentProcessor,
    FallbackPolicy,
    StageOutcome,
    classify_failure,
    resolve_category,
    run_stage,
)

__all__ = [
    "DocumentProcessor",
    "FallbackPolicy",
    "FileEvent",
    "ProcessingError",
    "ProcessingResult",
    "ProcessingStep",
    "STAGE_POLICIES",
    "StageOutcome",
    "TokenUsage",
    "classify_failure",
    "resolve_category",
    "run_stage",
]
