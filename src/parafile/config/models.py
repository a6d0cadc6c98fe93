"""Configuration models describing ParaFile settings."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

GENERAL_CATEGORY = "General"
ORIGINAL_NAME_VARIABLE = "original_name"

FormattingMode = Literal[
    "none",
    "uppercase",
    "lowercase",
    "title",
    "sentence",
    "kebab",
    "snake",
    "camel",
    "pascal",
]

FORMATTING_MODES: tuple[str, ...] = (
    "none",
    "uppercase",
    "lowercase",
    "title",
    "sentence",
    "kebab",
    "snake",
    "camel",
    "pascal",
)


class ParafileBaseModel(BaseModel):
    """Shared configuration for ParaFile Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class CategoryDefinition(ParafileBaseModel):
    """User-defined destination category.

    Attributes:
        name: Unique category name; also the folder name when organizing.
        description: Natural-language description handed to the AI.
        naming_pattern: Filename template containing ``{variable}`` placeholders.
    """

    name: str
    description: str
    naming_pattern: str


class VariableDefinition(ParafileBaseModel):
    """User-defined naming variable extracted from document text.

    Attributes:
        name: Unique placeholder name referenced by naming patterns.
        description: Natural-language description of the value to extract.
        formatting: Case transform applied to the extracted value.
    """

    name: str
    description: str
    formatting: FormattingMode = "none"


def default_general_category() -> CategoryDefinition:
    return CategoryDefinition(
        name=GENERAL_CATEGORY,
        description="Default category for uncategorized documents",
        naming_pattern="{original_name}",
    )


def default_original_name_variable() -> VariableDefinition:
    return VariableDefinition(
        name=ORIGINAL_NAME_VARIABLE,
        description="The original filename without extension",
        formatting="none",
    )


class LLMSettings(ParafileBaseModel):
    """LLM configuration options.

    Attributes:
        provider: Identifier for the language-model provider.
        model: Model name to target for text requests.
        vision_model: Optional model override for image analysis.
        temperature: Sampling temperature for generative calls.
        max_tokens: Maximum number of tokens in responses.
        api_key: Optional credential for hosted providers.
        api_base_url: Optional base URL for self-hosted or proxied endpoints.
    """

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    vision_model: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 500
    api_key: Optional[str] = None
    api_base_url: Optional[str] = None


class WatchSettings(ParafileBaseModel):
    """Filesystem watcher timing and filter settings.

    Attributes:
        extensions: File extensions (without dot) the watcher reacts to.
        stability_seconds: Time a file size must stay unchanged before acting on it.
        poll_interval_seconds: Interval between size probes for pending files.
        processed_ttl_seconds: How long a detected basename is remembered.
        moved_ttl_seconds: How long a self-move suppresses filesystem events.
    """

    extensions: List[str] = Field(default_factory=lambda: ["pdf", "doc", "docx"])
    stability_seconds: float = 2.0
    poll_interval_seconds: float = 0.1
    processed_ttl_seconds: float = 600.0
    moved_ttl_seconds: float = 30.0


class ExtractionSettings(ParafileBaseModel):
    """Text extraction behaviour.

    Attributes:
        retry_attempts: Attempts made when a file is locked by another process.
        retry_delay_seconds: Fixed delay between lock retries.
        max_prompt_characters: Characters of extracted text sent to the AI.
        ocr_language: Tesseract language code used for image OCR.
        transcription_model: Speech-to-text model used for audio files.
    """

    retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    max_prompt_characters: int = 4_000
    ocr_language: str = "eng"
    transcription_model: str = "whisper-1"


class LoggingSettings(ParafileBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; rotation is disabled when unset.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class HistorySettings(ParafileBaseModel):
    """Processing log retention.

    Attributes:
        max_entries: Number of most recent entries kept on save.
    """

    max_entries: int = 100


class CLIOptions(ParafileBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        log_limit_default: Default number of log entries displayed by ``parafile log``.
    """

    quiet_default: bool = False
    log_limit_default: int = 20


class ParafileConfig(ParafileBaseModel):
    """Top-level configuration struct for ParaFile.

    Attributes:
        watched_folder: Absolute root folder to monitor.
        enable_organization: Move files into per-category folders when true.
        expertise: Domain hint forwarded to the AI (e.g. ``general``, ``legal``).
        categories: Configured categories; always contains ``General``.
        variables: Configured variables; always contains ``original_name``.
        llm: Language model settings.
        watch: Watcher settings.
        extraction: Text extraction settings.
        logging: Logging configuration.
        history: Processing log retention.
        cli: CLI presentation defaults.
    """

    watched_folder: str = ""
    enable_organization: bool = True
    expertise: str = "general"
    categories: List[CategoryDefinition] = Field(
        default_factory=lambda: [default_general_category()]
    )
    variables: List[VariableDefinition] = Field(
        default_factory=lambda: [default_original_name_variable()]
    )
    llm: LLMSettings = Field(default_factory=LLMSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)

    def find_category(self, name: str | None) -> Optional[CategoryDefinition]:
        """Return the category called ``name`` if configured."""
        if not name:
            return None
        return next((category for category in self.categories if category.name == name), None)

    def find_variable(self, name: str) -> Optional[VariableDefinition]:
        """Return the variable called ``name`` if configured."""
        return next((variable for variable in self.variables if variable.name == name), None)


__all__ = [
    "GENERAL_CATEGORY",
    "ORIGINAL_NAME_VARIABLE",
    "FORMATTING_MODES",
    "FormattingMode",
    "ParafileBaseModel",
    "CategoryDefinition",
    "VariableDefinition",
    "default_general_category",
    "default_original_name_variable",
    "LLMSettings",
    "WatchSettings",
    "ExtractionSettings",
    "LoggingSettings",
    "HistorySettings",
    "CLIOptions",
    "ParafileConfig",
]
