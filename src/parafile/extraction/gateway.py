"""Dispatch files to the right extractor and retry while they are locked."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from parafile.config.models import ExtractionSettings

from .errors import ExtractionError, UnsupportedFileTypeError, is_lock_error
from .extractors import (
    AUDIO_TYPES,
    IMAGE_TYPES,
    ExtractedText,
    WhisperTranscriber,
    extract_csv,
    extract_doc,
    extract_docx,
    extract_image,
    extract_pdf,
    extract_xlsx,
)

LOGGER = logging.getLogger(__name__)

DOCUMENT_TYPES = frozenset({"pdf", "docx", "doc", "csv", "xlsx", "xlsm"})

Sleep = Callable[[float], Awaitable[None]]


def declared_type(path: Path) -> str:
    """Return the lowercase extension of ``path`` without the leading dot."""
    return path.suffix.lower().lstrip(".")


class TextExtractionGateway:
    """Turn a file path and declared type into text the AI can read."""

    def __init__(
        self,
        settings: Optional[ExtractionSettings] = None,
        *,
        transcriber: Optional[WhisperTranscriber] = None,
        api_key: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialise the gateway.

        Args:
            settings: Extraction settings (retry policy, OCR language, transcription model).
            transcriber: Audio transcriber; built lazily from ``api_key`` when omitted.
            api_key: OpenAI key used for audio transcription.
            sleep: Coroutine used to wait between lock retries.
        """
        self._settings = settings or ExtractionSettings()
        self._transcriber = transcriber
        self._api_key = api_key
        self._sleep = sleep

    def supports(self, file_type: str) -> bool:
        return file_type.lower() in DOCUMENT_TYPES | IMAGE_TYPES | AUDIO_TYPES

    def extract(self, path: Path, file_type: str) -> ExtractedText:
        """Extract text synchronously.

        Args:
            path: File to read.
            file_type: Declared type, normally the lowercase extension.

        Returns:
            ExtractedText: Extracted text and metadata.

        Raises:
            UnsupportedFileTypeError: If no extractor handles ``file_type``.
            ExtractionError: If the file cannot be read.
        """
        kind = file_type.lower()
        if kind == "pdf":
            return extract_pdf(path)
        if kind == "docx":
            return extract_docx(path)
        if kind == "doc":
            return extract_doc(path)
        if kind == "csv":
            return extract_csv(path)
        if kind in {"xlsx", "xlsm"}:
            return extract_xlsx(path)
        if kind in IMAGE_TYPES:
            return extract_image(path, ocr_language=self._settings.ocr_language)
        if kind in AUDIO_TYPES:
            return self._get_transcriber().transcribe(path)
        raise UnsupportedFileTypeError(f"Unsupported file type: {file_type}")

    async def extract_async(self, path: Path, file_type: str) -> ExtractedText:
        """Run :meth:`extract` in a worker thread."""
        return await asyncio.to_thread(self.extract, path, file_type)

    async def extract_with_retry(
        self,
        path: Path,
        file_type: str,
        *,
        attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> ExtractedText:
        """Extract text, retrying with a fixed delay while the file is locked.

        Only lock errors are retried; any other error, or a lock error on the
        final attempt, propagates immediately.

        Args:
            path: File to read.
            file_type: Declared type.
            attempts: Total attempts; defaults to ``retry_attempts`` from settings.
            delay: Seconds between attempts; defaults to ``retry_delay_seconds``.

        Returns:
            ExtractedText: Extracted text and metadata.
        """
        total = attempts if attempts is not None else self._settings.retry_attempts
        wait = delay if delay is not None else self._settings.retry_delay_seconds
        total = max(total, 1)

        for attempt in range(1, total + 1):
            try:
                return await self.extract_async(path, file_type)
            except Exception as exc:
                if attempt == total or not is_lock_error(exc):
                    raise
                LOGGER.info(
                    "File %s is locked; retrying in %.1fs (attempt %d/%d)",
                    path.name,
                    wait,
                    attempt,
                    total,
                )
                await self._sleep(wait)
        raise ExtractionError(f"Failed to extract text from {path.name}")  # pragma: no cover

    def _get_transcriber(self) -> WhisperTranscriber:
        if self._transcriber is None:
            self._transcriber = WhisperTranscriber(
                self._api_key, model=self._settings.transcription_model
            )
        return self._transcriber


__all__ = ["TextExtractionGateway", "declared_type"]
