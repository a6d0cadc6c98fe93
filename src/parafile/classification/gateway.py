"""Async AI calls with the fallbacks the processing pipeline depends on."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from parafile.config.models import GENERAL_CATEGORY, CategoryDefinition, VariableDefinition

from .engine import AIGateway
from .models import CategorizationResult, ImageAnalysis, VariableExtraction

LOGGER = logging.getLogger(__name__)

FALLBACK_REASONING = "fallback"


def fallback_categorization() -> CategorizationResult:
    """Return the result used whenever categorization cannot run."""
    return CategorizationResult(
        category=GENERAL_CATEGORY, reasoning=FALLBACK_REASONING, confidence=0
    )


def fallback_image_analysis() -> ImageAnalysis:
    """Return the result used whenever image analysis cannot run."""
    return ImageAnalysis(category=GENERAL_CATEGORY, reasoning=FALLBACK_REASONING, confidence=0)


def fallback_variable() -> VariableExtraction:
    """Return the result used whenever a variable cannot be extracted."""
    return VariableExtraction(value=None, confidence=0, context=FALLBACK_REASONING)


class CategorizationGateway:
    """Run AI calls off the event loop and degrade to safe defaults on failure.

    The wrapped gateway performs blocking network I/O, so each call runs in a
    worker thread. A missing gateway (no credentials configured) behaves like a
    gateway whose every call fails. ``failures`` counts degraded calls so
    callers can report them.
    """

    def __init__(self, ai: Optional[AIGateway]) -> None:
        self._ai = ai
        self.failures = 0

    @property
    def available(self) -> bool:
        return self._ai is not None

    async def categorize(
        self,
        text: str,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        feedback: str = "",
    ) -> CategorizationResult:
        if self._ai is None:
            return fallback_categorization()
        try:
            return await asyncio.to_thread(
                self._ai.categorize, text, categories, expertise, feedback
            )
        except Exception as exc:
            self.failures += 1
            LOGGER.warning("Categorization failed; using %s: %s", GENERAL_CATEGORY, exc)
            return fallback_categorization()

    async def extract_variable(
        self, text: str, variable: VariableDefinition, feedback: str = ""
    ) -> VariableExtraction:
        if self._ai is None:
            return fallback_variable()
        try:
            return await asyncio.to_thread(self._ai.extract_variable, text, variable, feedback)
        except Exception as exc:
            self.failures += 1
            LOGGER.warning("Extraction of variable %s failed: %s", variable.name, exc)
            return fallback_variable()

    async def analyze_image(
        self,
        path: Path,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        context: str = "",
    ) -> ImageAnalysis:
        if self._ai is None:
            return fallback_image_analysis()
        try:
            return await asyncio.to_thread(
                self._ai.analyze_image, path, categories, expertise, context
            )
        except Exception as exc:
            self.failures += 1
            LOGGER.warning("Image analysis failed for %s: %s", path.name, exc)
            return fallback_image_analysis()


__all__ = [
    "CategorizationGateway",
    "FALLBACK_REASONING",
    "fallback_categorization",
    "fallback_image_analysis",
    "fallback_variable",
]
