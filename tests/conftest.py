"""Shared fakes for ParaFile tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import pytest

from parafile.classification import (
    CategorizationResult,
    ImageAnalysis,
    UsageRecord,
    VariableExtraction,
)
from parafile.config import (
    CategoryDefinition,
    ParafileConfig,
    VariableDefinition,
    validate_and_repair,
)
from parafile.extraction import ExtractedText


class FakeAI:
    """In-memory AI gateway returning canned answers or raising on demand."""

    def __init__(
        self,
        *,
        category: str = "General",
        values: Optional[dict[str, Optional[str]]] = None,
        fail: bool = False,
        usage_tokens: int = 0,
    ) -> None:
        self.category = category
        self.values = values or {}
        self.fail = fail
        self.usage_tokens = usage_tokens
        self.calls: list[tuple[str, Any]] = []

    def _usage(self, operation: str) -> Optional[UsageRecord]:
        if not self.usage_tokens:
            return None
        return UsageRecord(
            operation=operation,
            model="openai/gpt-4o-mini",
            prompt_tokens=self.usage_tokens,
            total_tokens=self.usage_tokens,
            cost=0.001,
        )

    def categorize(
        self,
        text: str,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        feedback: str = "",
    ) -> CategorizationResult:
        self.calls.append(("categorize", {"text": text, "feedback": feedback}))
        if self.fail:
            raise RuntimeError("model unavailable")
        return CategorizationResult(
            category=self.category,
            reasoning="looks right",
            confidence=90,
            usage=self._usage("categorization"),
        )

    def extract_variable(
        self, text: str, variable: VariableDefinition, feedback: str = ""
    ) -> VariableExtraction:
        self.calls.append(("extract_variable", variable.name))
        if self.fail:
            raise RuntimeError("model unavailable")
        return VariableExtraction(
            value=self.values.get(variable.name),
            confidence=80,
            usage=self._usage(f"variable:{variable.name}"),
        )

    def analyze_image(
        self,
        path: Path,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        context: str = "",
    ) -> ImageAnalysis:
        self.calls.append(("analyze_image", context))
        if self.fail:
            raise RuntimeError("vision unavailable")
        return ImageAnalysis(category=self.category, reasoning="image", confidence=75)


class FakeExtractor:
    """Extraction gateway double returning fixed text or raising."""

    def __init__(
        self,
        text: str = "Invoice from Acme dated 2024-01-15",
        *,
        error: Optional[Exception] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.text = text
        self.error = error
        self.metadata = metadata or {}
        self.calls: list[tuple[Path, str]] = []

    async def extract_with_retry(self, path: Path, file_type: str) -> ExtractedText:
        self.calls.append((path, file_type))
        if self.error is not None:
            raise self.error
        return ExtractedText(text=self.text, metadata=dict(self.metadata))


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., ParafileConfig]:
    """Return a factory for configurations rooted in a temporary watched folder."""

    def _factory(**overrides: Any) -> ParafileConfig:
        data: dict[str, Any] = {"watched_folder": str(tmp_path / "watched")}
        data.update(overrides)
        return validate_and_repair(data)

    return _factory
