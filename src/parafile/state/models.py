"""Processing log data models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogModel(BaseModel):
    """Base for log models; persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Correction(LogModel):
    """A user's change to a processed file's name and/or category."""

    timestamp: datetime = Field(default_factory=_utcnow)
    new_name: Optional[str] = None
    name_feedback: Optional[str] = None
    new_category: Optional[str] = None
    category_feedback: Optional[str] = None
    previous_name: Optional[str] = None
    previous_category: Optional[str] = None


class LogEntry(LogModel):
    """One processed file as shown in the processing log."""

    id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    original_name: str
    parafile_name: str
    category: str
    reasoning: str = ""
    success: bool = True
    error: Optional[str] = None
    corrected: bool = False
    corrections: List[Correction] = Field(default_factory=list)


class ProcessingLogDocument(LogModel):
    """Persisted processing log."""

    entries: List[LogEntry] = Field(default_factory=list)


__all__ = ["Correction", "LogEntry", "ProcessingLogDocument"]
