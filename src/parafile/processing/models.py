"""Models describing file events and processing results."""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from parafile.classification.models import UsageRecord
from parafile.config.models import GENERAL_CATEGORY


class ProcessingStep(str, Enum):
    """Pipeline stage a failure is attributed to."""

    TEXT_EXTRACTION = "text_extraction"
    AI_CATEGORIZATION = "ai_categorization"
    VARIABLE_EXTRACTION = "variable_extraction"
    FILE_ACCESS = "file_access"
    FILE_ORGANIZATION = "file_organization"
    UNKNOWN = "unknown"


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for the processing log."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileEvent(CamelModel):
    """A settled filesystem event handed to the processor."""

    path: str
    type: str
    kind: Literal["add", "change", "unlink"] = "add"


class TokenUsage(CamelModel):
    """Aggregated AI usage for one processed file."""

    total_tokens: int = 0
    total_cost: float = 0.0
    operations: List[UsageRecord] = Field(default_factory=list)

    def add(self, record: Optional[UsageRecord]) -> None:
        if record is None:
            return
        self.operations.append(record)
        self.total_tokens += record.total_tokens
        self.total_cost = round(self.total_cost + record.cost, 9)


class ProcessingResult(CamelModel):
    """Outcome of one pipeline run; produced for every file, success or not.

    Attributes:
        file_path: Path of the file when processing started.
        file_name: Basename of the file when processing started.
        success: Whether the file was organized.
        error: Failure description when ``success`` is false.
        processing_step: Stage the failure is attributed to.
        category: Final category name.
        new_name: Filename after organization (or the intended one on failure).
        new_path: Destination path after organization.
        confidence: Categorization confidence from 0 to 100.
        reasoning: Categorization reasoning.
        skipped_rename: Whether the name was kept because the file was
            already a ParaFile output.
        skipped_move: Whether the file already sat at its destination so
            nothing was moved.
        processing_time: Wall-clock seconds spent in the pipeline.
        token_usage: AI usage aggregated across every call.
    """

    file_path: str
    file_name: str
    success: bool = False
    error: Optional[str] = None
    processing_step: Optional[ProcessingStep] = None
    category: str = GENERAL_CATEGORY
    new_name: Optional[str] = None
    new_path: Optional[str] = None
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
    skipped_rename: bool = False
    skipped_move: bool = False
    processing_time: float = 0.0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


__all__ = ["ProcessingStep", "FileEvent", "TokenUsage", "ProcessingResult", "CamelModel"]
