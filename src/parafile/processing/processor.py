"""Document processing pipeline: extract, categorize, name, organize.

Each stage runs under an explicit fallback policy:

* text extraction retries while the file is locked, then fails the file;
* categorization and variable extraction fall back to safe defaults;
* category resolution and organization fail the file immediately.

Whatever happens, :meth:`DocumentProcessor.process_document` returns a
:class:`ProcessingResult`; no per-file error escapes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Generic, Optional, Protocol, TypeVar, Union

from parafile.classification import CategorizationGateway, CategorizationResult, VariableExtraction
from parafile.classification.gateway import (
    fallback_categorization,
    fallback_image_analysis,
    fallback_variable,
)
from parafile.config.models import (
    GENERAL_CATEGORY,
    ORIGINAL_NAME_VARIABLE,
    CategoryDefinition,
    ParafileConfig,
)
from parafile.extraction import IMAGE_TYPES, ExtractedText, TextExtractionGateway, declared_type
from parafile.feedback import RelevantFeedback
from parafile.naming import (
    apply_formatting,
    apply_pattern,
    extract_placeholders,
    has_only_original_name,
    placeholder_token,
    sanitize_filename,
)
from parafile.organization import FileOrganizer, OrganizeResult

from .errors import ProcessingError
from .models import FileEvent, ProcessingResult, ProcessingStep, TokenUsage

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class FallbackPolicy(str, Enum):
    """How a stage reacts to failure."""

    RETRY_THEN_FAIL = "retry_then_fail"
    DEFAULT = "default"
    FAIL_FAST = "fail_fast"


STAGE_POLICIES: dict[ProcessingStep, FallbackPolicy] = {
    ProcessingStep.TEXT_EXTRACTION: FallbackPolicy.RETRY_THEN_FAIL,
    ProcessingStep.AI_CATEGORIZATION: FallbackPolicy.DEFAULT,
    ProcessingStep.VARIABLE_EXTRACTION: FallbackPolicy.DEFAULT,
    ProcessingStep.FILE_ACCESS: FallbackPolicy.FAIL_FAST,
    ProcessingStep.FILE_ORGANIZATION: FallbackPolicy.FAIL_FAST,
}

_FAILURE_KEYWORDS: tuple[tuple[ProcessingStep, tuple[str, ...]], ...] = (
    (ProcessingStep.FILE_ORGANIZATION, ("organiz", "move", "rename", "destination")),
    (ProcessingStep.FILE_ACCESS, ("permission", "access", "no such file", "not found", "enoent")),
    (ProcessingStep.TEXT_EXTRACTION, ("extract", "pdf", "word", "excel", "csv", "ocr", "text")),
    (ProcessingStep.VARIABLE_EXTRACTION, ("variable",)),
    (ProcessingStep.AI_CATEGORIZATION, ("categor", "openai", "api", "model")),
)


def classify_failure(message: str) -> ProcessingStep:
    """Best-effort mapping of an error message to the stage that produced it."""
    lowered = message.lower()
    for step, keywords in _FAILURE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return step
    return ProcessingStep.UNKNOWN


@dataclass(slots=True)
class StageOutcome(Generic[T]):
    """Result of running one stage under its fallback policy."""

    step: ProcessingStep
    value: Optional[T] = None
    error: Optional[BaseException] = None
    fell_back: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or abort the pipeline with the stage's error."""
        if self.error is not None:
            if isinstance(self.error, ProcessingError):
                raise self.error
            raise ProcessingError(str(self.error), self.step) from self.error
        return self.value  # type: ignore[return-value]


async def run_stage(
    step: ProcessingStep,
    action: Callable[[], Awaitable[T]],
    *,
    default: Optional[Callable[[], T]] = None,
) -> StageOutcome[T]:
    """Run ``action`` and apply the fallback policy registered for ``step``."""
    policy = STAGE_POLICIES.get(step, FallbackPolicy.FAIL_FAST)
    try:
        return StageOutcome(step=step, value=await action())
    except Exception as exc:
        if policy is FallbackPolicy.DEFAULT and default is not None:
            LOGGER.warning("%s failed; using fallback: %s", step.value, exc)
            return StageOutcome(step=step, value=default(), error=None, fell_back=True)
        return StageOutcome(step=step, error=exc)


class ProcessedFileLookup(Protocol):
    def is_file_already_processed(self, filename: str) -> bool: ...


class FeedbackSource(Protocol):
    def get_relevant_feedback(
        self, document_text: str = "", current_category: Optional[str] = None
    ) -> RelevantFeedback: ...


class DocumentProcessor:
    """Drive a single file through the processing pipeline."""

    def __init__(
        self,
        config: ParafileConfig,
        *,
        extractor: TextExtractionGateway,
        ai: CategorizationGateway,
        organizer: FileOrganizer,
        log: Optional[ProcessedFileLookup] = None,
        feedback: Optional[FeedbackSource] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize the processor with explicitly injected collaborators.

        Args:
            config: Configuration used when a call does not pass its own.
            extractor: Text extraction gateway.
            ai: AI gateway wrapper that applies fallbacks.
            organizer: Organizer performing the final move.
            log: Lookup answering whether a name is already a ParaFile output.
            feedback: Source of correction history for prompts.
            clock: Clock used to measure processing time.
        """
        self._config = config
        self._extractor = extractor
        self._ai = ai
        self._organizer = organizer
        self._log = log
        self._feedback = feedback
        self._clock = clock

    @property
    def config(self) -> ParafileConfig:
        return self._config

    @config.setter
    def config(self, value: ParafileConfig) -> None:
        self._config = value

    async def process_document(
        self,
        event: Union[FileEvent, Path, str],
        config: Optional[ParafileConfig] = None,
    ) -> ProcessingResult:
        """Process one file and describe the outcome.

        Args:
            event: Settled file event, or a path whose extension gives its type.
            config: Configuration override for this run.

        Returns:
            ProcessingResult: Always returned, with ``success`` false and a
            classified ``processing_step`` when a stage aborted.
        """
        started = self._clock()
        file_event = _as_event(event)
        active = config or self._config
        path = Path(file_event.path)
        usage = TokenUsage()
        result = ProcessingResult(file_path=str(path), file_name=path.name, token_usage=usage)
        LOGGER.info("Processing document: %s", path.name)

        try:
            await self._run_pipeline(path, file_event.type, active, result, usage)
        except ProcessingError as exc:
            result.success = False
            result.error = str(exc)
            result.processing_step = exc.step
            LOGGER.error("Processing %s failed during %s: %s", path.name, exc.step.value, exc)
        except Exception as exc:
            result.success = False
            result.error = str(exc) or exc.__class__.__name__
            result.processing_step = classify_failure(result.error)
            LOGGER.exception("Unexpected error while processing %s", path.name)
        finally:
            result.processing_time = self._clock() - started

        return result

    async def _run_pipeline(
        self,
        path: Path,
        file_type: str,
        config: ParafileConfig,
        result: ProcessingResult,
        usage: TokenUsage,
    ) -> None:
        skip_rename = await self._already_processed(path.name)
        result.skipped_rename = skip_rename

        if not path.is_file():
            raise ProcessingError(f"File not found: {path}", ProcessingStep.FILE_ACCESS)

        extracted = (
            await run_stage(
                ProcessingStep.TEXT_EXTRACTION,
                lambda: self._extractor.extract_with_retry(path, file_type),
            )
        ).unwrap()

        text = extracted.text or ""
        is_image = file_type in IMAGE_TYPES
        if is_image:
            categorization, vision_text = await self._categorize_image(path, config, extracted)
            if vision_text and not text.strip():
                text = vision_text
        else:
            if not text.strip():
                raise ProcessingError(
                    "No meaningful text extracted from document", ProcessingStep.TEXT_EXTRACTION
                )
            categorization = await self._categorize_text(text, config)
        usage.add(categorization.usage)

        category = resolve_category(categorization.category, config)
        result.category = category.name
        result.confidence = categorization.confidence
        result.reasoning = categorization.reasoning

        if skip_rename:
            base_name = path.stem
        else:
            base_name = await self._derive_name(path, text, category, config, usage)
        result.new_name = f"{base_name}{path.suffix}"

        organized = (
            await run_stage(
                ProcessingStep.FILE_ORGANIZATION,
                lambda: self._organize(path, category.name, base_name, config, skip_rename),
            )
        ).unwrap()
        if not organized.success:
            raise ProcessingError(
                organized.error or "File organization failed", ProcessingStep.FILE_ORGANIZATION
            )

        result.success = True
        result.new_name = organized.new_name
        result.skipped_move = organized.skipped
        result.new_path = str(organized.new_path) if organized.new_path else None
        LOGGER.info("Processed %s -> %s (%s)", path.name, result.new_name, category.name)

    async def _organize(
        self,
        path: Path,
        category_name: str,
        base_name: str,
        config: ParafileConfig,
        skip_rename: bool,
    ) -> OrganizeResult:
        # Probe and move run synchronously so no other pipeline can interleave.
        return self._organizer.process_file(path, category_name, base_name, config, skip_rename)

    async def _categorize_text(self, text: str, config: ParafileConfig) -> CategorizationResult:
        feedback = await self._feedback_prompt(text, None)
        outcome = await run_stage(
            ProcessingStep.AI_CATEGORIZATION,
            lambda: self._ai.categorize(text, config.categories, config.expertise, feedback),
            default=fallback_categorization,
        )
        return outcome.unwrap()

    async def _categorize_image(
        self, path: Path, config: ParafileConfig, extracted: ExtractedText
    ) -> tuple[CategorizationResult, Optional[str]]:
        ocr_text = str(extracted.metadata.get("ocr_text") or "")
        outcome = await run_stage(
            ProcessingStep.AI_CATEGORIZATION,
            lambda: self._ai.analyze_image(path, config.categories, config.expertise, ocr_text),
            default=fallback_image_analysis,
        )
        analysis = outcome.unwrap()
        return analysis, analysis.extracted_text

    async def _derive_name(
        self,
        path: Path,
        text: str,
        category: CategoryDefinition,
        config: ParafileConfig,
        usage: TokenUsage,
    ) -> str:
        pattern = category.naming_pattern
        original_variable = config.find_variable(ORIGINAL_NAME_VARIABLE)
        original = apply_formatting(
            path.stem, original_variable.formatting if original_variable else None
        )
        if has_only_original_name(pattern):
            return apply_pattern(pattern, {ORIGINAL_NAME_VARIABLE: original})

        names = [name for name in extract_placeholders(pattern) if name != ORIGINAL_NAME_VARIABLE]
        feedback = await self._feedback_prompt(text, category.name)
        extractions = await asyncio.gather(
            *(self._extract_variable(text, name, config, feedback) for name in names)
        )

        values: dict[str, str] = {ORIGINAL_NAME_VARIABLE: original}
        for name, extraction in zip(names, extractions):
            if extraction is not None:
                usage.add(extraction.usage)
            values[name] = self._render_value(name, extraction, config)
        return apply_pattern(pattern, values)

    async def _extract_variable(
        self, text: str, name: str, config: ParafileConfig, feedback: str
    ) -> Optional[VariableExtraction]:
        variable = config.find_variable(name)
        if variable is None:
            LOGGER.warning("Naming pattern references undefined variable %s", name)
            return None
        outcome = await run_stage(
            ProcessingStep.VARIABLE_EXTRACTION,
            lambda: self._ai.extract_variable(text, variable, feedback),
            default=fallback_variable,
        )
        return outcome.unwrap()

    def _render_value(
        self, name: str, extraction: Optional[VariableExtraction], config: ParafileConfig
    ) -> str:
        raw = (extraction.value or "").strip() if extraction is not None else ""
        variable = config.find_variable(name)
        value = sanitize_filename(apply_formatting(raw, variable.formatting if variable else None))
        return value or placeholder_token(name)

    async def _already_processed(self, filename: str) -> bool:
        if self._log is None:
            return False
        try:
            return await asyncio.to_thread(self._log.is_file_already_processed, filename)
        except Exception as exc:
            LOGGER.warning("Unable to consult the processing log for %s: %s", filename, exc)
            return False

    async def _feedback_prompt(self, text: str, category: Optional[str]) -> str:
        if self._feedback is None:
            return ""
        try:
            relevant = await asyncio.to_thread(self._feedback.get_relevant_feedback, text, category)
            return relevant.to_prompt()
        except Exception as exc:
            LOGGER.warning("Unable to load feedback: %s", exc)
            return ""


def resolve_category(name: str, config: ParafileConfig) -> CategoryDefinition:
    """Return the configured category called ``name``, falling back to General.

    Raises:
        ProcessingError: If neither ``name`` nor General is configured.
    """
    category = config.find_category(name) or config.find_category(GENERAL_CATEGORY)
    if category is None:
        raise ProcessingError(
            f"No fallback category available: '{GENERAL_CATEGORY}' is not configured",
            ProcessingStep.AI_CATEGORIZATION,
        )
    if category.name != name:
        LOGGER.info("Unknown category %r; using %s", name, category.name)
    return category


def _as_event(event: Union[FileEvent, Path, str]) -> FileEvent:
    if isinstance(event, FileEvent):
        return event
    path = Path(event)
    return FileEvent(path=str(path), type=declared_type(path), kind="add")


__all__ = [
    "DocumentProcessor",
    "FallbackPolicy",
    "STAGE_POLICIES",
    "StageOutcome",
    "classify_failure",
    "resolve_category",
    "run_stage",
]
