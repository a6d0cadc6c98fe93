"""AI gateway built on top of DSPy.

The gateway turns document text (or an image) into a category choice,
extracts naming variables, and proposes new variable definitions. Every call
may raise; :mod:`parafile.classification.gateway` supplies the fallbacks the
processing pipeline relies on.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence

import dspy

from parafile.config.models import (
    GENERAL_CATEGORY,
    CategoryDefinition,
    LLMSettings,
    VariableDefinition,
)

from .models import (
    CategorizationResult,
    ImageAnalysis,
    VariableExtraction,
    VariableSuggestion,
)
from .pricing import usage_from_lm_usage

LOGGER = logging.getLogger(__name__)

_MISSING_VALUES = {"", "null", "none", "n/a", "not found", "unknown"}


class AIGateway(Protocol):
    """Operations the processing pipeline needs from an AI provider."""

    def categorize(
        self,
        text: str,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        feedback: str = "",
    ) -> CategorizationResult: ...

    def extract_variable(
        self, text: str, variable: VariableDefinition, feedback: str = ""
    ) -> VariableExtraction: ...

    def analyze_image(
        self,
        path: Path,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        context: str = "",
    ) -> ImageAnalysis: ...


class CategorizeDocumentSignature(dspy.Signature):
    """Categorize a document into exactly one of the available categories."""

    document_text: str = dspy.InputField(desc="Beginning of the document text")
    categories: str = dspy.InputField(desc="Available categories as '- name: description' lines")
    expertise: str = dspy.InputField(desc="Domain the user works in")
    feedback: str = dspy.InputField(desc="Corrections the user made to earlier decisions")
    category: str = dspy.OutputField(desc="Name of the most appropriate category, verbatim")
    reasoning: str = dspy.OutputField(desc="Brief explanation of the choice")
    confidence: float = dspy.OutputField(desc="Confidence from 0 to 100")


class ExtractVariableSignature(dspy.Signature):
    """Extract the value of a single variable from a document."""

    document_text: str = dspy.InputField(desc="Beginning of the document text")
    variable_name: str = dspy.InputField()
    variable_description: str = dspy.InputField()
    feedback: str = dspy.InputField(desc="Corrections the user made to earlier filenames")
    value: str = dspy.OutputField(desc="Extracted value, or an empty string if not present")
    confidence: float = dspy.OutputField(desc="Confidence from 0 to 100")
    context: str = dspy.OutputField(desc="Short snippet showing where the value was found")


class AnalyzeImageSignature(dspy.Signature):
    """Categorize an image and transcribe any text it contains."""

    image: dspy.Image = dspy.InputField()
    categories: str = dspy.InputField(desc="Available categories as '- name: description' lines")
    expertise: str = dspy.InputField(desc="Domain the user works in")
    context: str = dspy.InputField(desc="Text already read from the image via OCR, if any")
    category: str = dspy.OutputField(desc="Name of the most appropriate category, verbatim")
    reasoning: str = dspy.OutputField()
    confidence: float = dspy.OutputField(desc="Confidence from 0 to 100")
    extracted_text: str = dspy.OutputField(desc="Visible text in the image, or an empty string")


class SuggestVariableSignature(dspy.Signature):
    """Propose a machine-friendly variable for the information the user wants extracted."""

    request: str = dspy.InputField(desc="What the user wants to extract from documents")
    name: str = dspy.OutputField(desc="Lowercase variable name using underscores")
    description: str = dspy.OutputField(desc="Clear description of what to extract")


def has_credentials(settings: LLMSettings, env: Optional[Mapping[str, str]] = None) -> bool:
    """Return True when ``settings`` describe a usable language model."""

    environment = env if env is not None else os.environ
    if settings.api_key or settings.api_base_url:
        return True
    if settings.provider in {"local", "ollama", "ollama_chat"}:
        return True
    return bool(environment.get(f"{settings.provider.upper()}_API_KEY"))


class DspyAIGateway:
    """Run DSPy programs against the configured language model."""

    def __init__(self, settings: Optional[LLMSettings] = None, *, max_characters: int = 4_000):
        """Initialise the gateway.

        Args:
            settings: Language model configuration.
            max_characters: Characters of document text included in prompts.

        Raises:
            RuntimeError: If the language model cannot be configured.
        """
        self._settings = settings or LLMSettings()
        self._max_characters = max_characters
        self._lm = self._build_lm(self._settings.model)
        vision_model = self._settings.vision_model
        self._vision_lm = self._build_lm(vision_model) if vision_model else self._lm
        self._categorize = dspy.Predict(CategorizeDocumentSignature)
        self._extract = dspy.Predict(ExtractVariableSignature)
        self._analyze_image = dspy.Predict(AnalyzeImageSignature)
        self._suggest = dspy.Predict(SuggestVariableSignature)

    def categorize(
        self,
        text: str,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        feedback: str = "",
    ) -> CategorizationResult:
        response = self._run(
            self._categorize,
            self._lm,
            document_text=text[: self._max_characters],
            categories=_render_categories(categories),
            expertise=expertise,
            feedback=feedback or "None",
        )
        return CategorizationResult(
            category=_clean(getattr(response, "category", "")) or GENERAL_CATEGORY,
            reasoning=_clean(getattr(response, "reasoning", "")),
            confidence=getattr(response, "confidence", 0),
            usage=usage_from_lm_usage("categorization", _lm_usage(response)),
        )

    def extract_variable(
        self, text: str, variable: VariableDefinition, feedback: str = ""
    ) -> VariableExtraction:
        response = self._run(
            self._extract,
            self._lm,
            document_text=text[: self._max_characters],
            variable_name=variable.name,
            variable_description=variable.description,
            feedback=feedback or "None",
        )
        value = _clean(getattr(response, "value", ""))
        return VariableExtraction(
            value=None if value.lower() in _MISSING_VALUES else value,
            confidence=getattr(response, "confidence", 0),
            context=_clean(getattr(response, "context", "")),
            usage=usage_from_lm_usage(f"variable:{variable.name}", _lm_usage(response)),
        )

    def analyze_image(
        self,
        path: Path,
        categories: Sequence[CategoryDefinition],
        expertise: str,
        context: str = "",
    ) -> ImageAnalysis:
        response = self._run(
            self._analyze_image,
            self._vision_lm,
            image=self._load_image(path),
            categories=_render_categories(categories),
            expertise=expertise,
            context=context[: self._max_characters] or "None",
        )
        extracted = _clean(getattr(response, "extracted_text", ""))
        return ImageAnalysis(
            category=_clean(getattr(response, "category", "")) or GENERAL_CATEGORY,
            reasoning=_clean(getattr(response, "reasoning", "")),
            confidence=getattr(response, "confidence", 0),
            extracted_text=extracted or None,
            usage=usage_from_lm_usage("image_analysis", _lm_usage(response)),
        )

    def suggest_variable(self, request: str) -> VariableSuggestion:
        """Propose a variable definition for a free-text description."""
        response = self._run(self._suggest, self._lm, request=request)
        name = _clean(getattr(response, "name", "")).lower().replace(" ", "_")
        description = _clean(getattr(response, "description", ""))
        if not name or not description:
            raise RuntimeError("The language model did not return a usable variable suggestion.")
        return VariableSuggestion(name=name, description=description)

    def _run(self, program: dspy.Module, lm: dspy.LM, **inputs: Any) -> dspy.Prediction:
        with dspy.context(lm=lm, track_usage=True):
            return program(**inputs)

    def _build_lm(self, model: str) -> dspy.LM:
        settings = self._settings
        identifier = model if "/" in model else f"{settings.provider}/{model}"
        lm_kwargs: dict[str, object] = {
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
        }
        if settings.api_base_url:
            lm_kwargs["api_base"] = settings.api_base_url
            lm_kwargs["api_key"] = settings.api_key or ""
        elif settings.api_key is not None:
            lm_kwargs["api_key"] = settings.api_key

        try:
            return dspy.LM(identifier, **lm_kwargs)
        except Exception as exc:  # pragma: no cover - DSPy configuration errors
            raise RuntimeError(
                f"Unable to configure the DSPy language model '{identifier}'. "
                "Verify the llm section of your configuration."
            ) from exc

    @staticmethod
    def _load_image(path: Path) -> dspy.Image:
        if hasattr(dspy.Image, "from_file"):
            return dspy.Image.from_file(str(path))
        return dspy.Image(url=str(path))


def _render_categories(categories: Sequence[CategoryDefinition]) -> str:
    return "\n".join(f"- {category.name}: {category.description}" for category in categories)


def _clean(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _lm_usage(response: object) -> Optional[dict[str, Any]]:
    getter = getattr(response, "get_lm_usage", None)
    if getter is None:
        return None
    try:
        return getter()
    except Exception:  # pragma: no cover - usage tracking is best effort
        LOGGER.debug("Token usage unavailable for this prediction.", exc_info=True)
        return None


def build_ai_gateway(
    settings: LLMSettings, *, max_characters: int = 4_000
) -> Optional[DspyAIGateway]:
    """Return a configured gateway, or ``None`` when no credentials are available."""

    if not has_credentials(settings):
        LOGGER.warning("No language model credentials configured; AI stages will use fallbacks.")
        return None
    return DspyAIGateway(settings, max_characters=max_characters)


__all__ = [
    "AIGateway",
    "DspyAIGateway",
    "build_ai_gateway",
    "has_credentials",
]
