"""Result models returned by the AI gateway."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from parafile.config.models import GENERAL_CATEGORY


class UsageRecord(BaseModel):
    """Token usage and cost of a single AI call."""

    operation: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0


class _ScoredResult(BaseModel):
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    usage: Optional[UsageRecord] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> float:
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        return min(max(number, 0.0), 100.0)


class CategorizationResult(_ScoredResult):
    """Category chosen for a document.

    Attributes:
        category: Name of the chosen category.
        reasoning: Short explanation from the model.
        confidence: Confidence between 0 and 100.
        usage: Token usage for the call, when available.
    """

    category: str = GENERAL_CATEGORY
    reasoning: str = ""


class VariableExtraction(_ScoredResult):
    """Value extracted for a naming variable."""

    value: Optional[str] = None
    context: str = ""


class ImageAnalysis(CategorizationResult):
    """Vision categorization with optional text read from the image."""

    extracted_text: Optional[str] = None


class VariableSuggestion(BaseModel):
    """Variable name and description proposed from a free-text request."""

    name: str
    description: str


__all__ = [
    "UsageRecord",
    "CategorizationResult",
    "VariableExtraction",
    "ImageAnalysis",
    "VariableSuggestion",
]
