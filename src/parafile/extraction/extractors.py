"""Format-specific text extractors.

Each extractor is a blocking function returning :class:`ExtractedText`; the
gateway runs them off the event loop.
"""

from __future__ import annotations

import csv
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import docx
import openpyxl
import pdfplumber
import pytesseract
from openai import OpenAI, OpenAIError
from PIL import ExifTags, Image

from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

IMAGE_TYPES = frozenset({"png", "jpg", "jpeg", "gif", "bmp", "tiff", "webp"})
AUDIO_TYPES = frozenset({"mp3", "mp4", "mpeg", "mpga", "m4a", "wav", "webm"})
MAX_AUDIO_BYTES = 25 * 1024 * 1024
SAMPLE_ROWS = 5


@dataclass
class ExtractedText:
    """Text pulled from a file plus format-specific metadata."""

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def extract_pdf(path: Path) -> ExtractedText:
    """Extract text from every page of a PDF using pdfplumber."""
    try:
        with pdfplumber.open(path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
            info = dict(pdf.metadata or {})
    except Exception as exc:
        raise ExtractionError(f"Failed to read PDF {path.name}: {exc}") from exc

    text = "\n".join(page.strip() for page in pages if page.strip())
    return ExtractedText(
        text=text,
        metadata={"type": "pdf", "pages": len(pages), "title": info.get("Title")},
    )


def extract_docx(path: Path) -> ExtractedText:
    """Extract paragraph and table text from a DOCX file."""
    try:
        document = docx.Document(str(path))
    except Exception as exc:
        raise ExtractionError(f"Failed to read Word document {path.name}: {exc}") from exc

    parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return ExtractedText(
        text="\n".join(parts),
        metadata={"type": "docx", "paragraphs": len(document.paragraphs)},
    )


def extract_doc(path: Path) -> ExtractedText:
    """Extract text from a legacy Word file via the ``antiword`` tool.

    When antiword is missing or fails, printable characters are salvaged from
    the binary file as long as a reasonable amount of text remains.
    """
    try:
        result = subprocess.run(
            ["antiword", str(path)],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
        if result.returncode == 0 and result.stdout.strip():
            return ExtractedText(
                text=result.stdout.strip(), metadata={"type": "doc", "method": "antiword"}
            )
        LOGGER.debug("antiword failed for %s: %s", path, result.stderr.strip())
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.debug("antiword unavailable for %s: %s", path, exc)

    try:
        raw = path.read_bytes().decode("latin-1", errors="ignore")
    except OSError as exc:
        raise ExtractionError(f"Failed to read Word document {path.name}: {exc}") from exc
    readable = "".join(char for char in raw if char.isprintable() or char.isspace())
    readable = " ".join(readable.split())
    if len(readable) <= 50:
        raise ExtractionError(
            f"Failed to extract Word text from {path.name}; install antiword for .doc support."
        )
    return ExtractedText(text=readable, metadata={"type": "doc", "method": "binary"})


def extract_csv(path: Path) -> ExtractedText:
    """Summarize a CSV file as headers, row count, and a few sample rows."""
    try:
        with path.open("r", encoding="utf-8-sig", errors="replace", newline="") as fh:
            reader = csv.DictReader(fh)
            headers = list(reader.fieldnames or [])
            sample: list[dict[str, str]] = []
            row_count = 0
            for row in reader:
                if len(sample) < SAMPLE_ROWS:
                    sample.append({key: value for key, value in row.items() if key is not None})
                row_count += 1
    except (OSError, csv.Error) as exc:
        raise ExtractionError(f"Failed to read CSV {path.name}: {exc}") from exc

    sample_lines = [
        ", ".join(f"{key}: {value}" for key, value in row.items()) for row in sample
    ]
    text = (
        f"CSV Spreadsheet with {len(headers)} columns: {', '.join(headers)}.\n"
        f"Contains {row_count} rows of data.\n"
        f"Sample data:\n" + "\n".join(sample_lines)
    )
    return ExtractedText(
        text=text,
        metadata={"type": "csv", "columns": headers, "row_count": row_count, "sample": sample},
    )


def extract_xlsx(path: Path) -> ExtractedText:
    """Summarize every sheet of a workbook using openpyxl."""
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:
        raise ExtractionError(f"Failed to extract Excel text from {path.name}: {exc}") from exc

    sheets: list[dict[str, Any]] = []
    lines: list[str] = []
    try:
        for worksheet in workbook.worksheets:
            rows = [
                [str(value) for value in row if value is not None]
                for row in worksheet.iter_rows(max_row=SAMPLE_ROWS, values_only=True)
            ]
            headers = rows[0] if rows else []
            sample = [", ".join(row) for row in rows if row]
            info = {
                "name": worksheet.title,
                "row_count": worksheet.max_row or 0,
                "column_count": worksheet.max_column or 0,
                "headers": headers,
            }
            sheets.append(info)
            lines.append(
                f'Sheet "{worksheet.title}": {info["row_count"]} rows, '
                f'{info["column_count"]} columns'
            )
            lines.append(f"Columns: {', '.join(headers)}")
            lines.append("Sample data:")
            lines.extend(sample)
            lines.append("")
    finally:
        workbook.close()

    text = f"Excel Workbook with {len(sheets)} sheet(s):\n" + "\n".join(lines)
    return ExtractedText(
        text=text.strip(),
        metadata={
            "type": "excel",
            "sheets": sheets,
            "total_rows": sum(sheet["row_count"] for sheet in sheets),
        },
    )


def extract_image(path: Path, *, ocr_language: str = "eng") -> ExtractedText:
    """Describe an image and OCR any text it contains.

    OCR failures are not fatal; the image description is still returned.
    """
    try:
        with Image.open(path) as img:
            width, height = img.size
            image_format = (img.format or path.suffix.lstrip(".")).lower()
            captured = _exif_datetime(img)
            try:
                ocr_text = pytesseract.image_to_string(img, lang=ocr_language).strip()
            except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as exc:
                LOGGER.warning("OCR failed for %s: %s", path.name, exc)
                ocr_text = ""
    except OSError as exc:
        raise ExtractionError(f"Failed to extract image content from {path.name}: {exc}") from exc

    header = f"Image file ({image_format}): {width}x{height} pixels"
    if captured:
        header += f"\nCaptured: {captured}"
    return ExtractedText(
        text=f"{header}\n\nExtracted text:\n{ocr_text}",
        metadata={
            "type": "image",
            "format": image_format,
            "dimensions": f"{width}x{height}",
            "has_text": bool(ocr_text),
            "ocr_text": ocr_text,
        },
    )


def _exif_datetime(img: Image.Image) -> Optional[str]:
    exif = img.getexif()
    if not exif:
        return None
    original = exif.get_ifd(ExifTags.IFD.Exif).get(ExifTags.Base.DateTimeOriginal)
    value = original or exif.get(ExifTags.Base.DateTime)
    return str(value) if value else None


class WhisperTranscriber:
    """Transcribe audio files with the OpenAI speech-to-text API."""

    def __init__(self, api_key: Optional[str] = None, *, model: str = "whisper-1") -> None:
        self._api_key = api_key
        self._model = model
        self._client: Optional[OpenAI] = None

    def transcribe(self, path: Path) -> ExtractedText:
        """Return the transcript, prefixed with language and duration when known."""
        size = path.stat().st_size
        if size > MAX_AUDIO_BYTES:
            raise ExtractionError(
                f"Audio file too large: {round(size / 1024 / 1024)}MB exceeds the 25MB limit."
            )

        try:
            client = self._get_client()
            with path.open("rb") as fh:
                response = client.audio.transcriptions.create(
                    model=self._model,
                    file=fh,
                    response_format="verbose_json",
                    temperature=0.1,
                )
        except OpenAIError as exc:
            raise ExtractionError(f"Audio transcription failed for {path.name}: {exc}") from exc

        transcript = (getattr(response, "text", "") or "").strip()
        language = getattr(response, "language", None)
        duration = getattr(response, "duration", None)
        segments = getattr(response, "segments", None) or []

        lines = []
        if duration:
            lines.append(f"[Audio Duration: {round(float(duration))}s]")
        if language:
            lines.append(f"[Audio Language: {language}]")
        lines.append(transcript)
        if segments:
            lines.append("")
            lines.append("[Transcript with Timestamps]")
            for segment in segments:
                start = round(float(getattr(segment, "start", 0)))
                end = round(float(getattr(segment, "end", 0)))
                lines.append(f"[{start}s-{end}s] {getattr(segment, 'text', '').strip()}")

        return ExtractedText(
            text="\n".join(lines).strip(),
            metadata={
                "type": "audio",
                "language": language,
                "duration": duration,
                "file_size": size,
            },
        )

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key) if self._api_key else OpenAI()
        return self._client


__all__ = [
    "AUDIO_TYPES",
    "IMAGE_TYPES",
    "ExtractedText",
    "WhisperTranscriber",
    "extract_csv",
    "extract_doc",
    "extract_docx",
    "extract_image",
    "extract_pdf",
    "extract_xlsx",
]
