"""Text extraction for supported document, image, and audio formats."""

from .errors import ExtractionError, UnsupportedFileTypeError, is_lock_error
from .extractors import AUDIO_TYPES, IMAGE_TYPES, ExtractedText, WhisperTranscriber
from .gateway import TextExtractionGateway, declared_type

__all__ = [
    "AUDIO_TYPES",
    "IMAGE_TYPES",
    "ExtractedText",
    "ExtractionError",
    "TextExtractionGateway",
    "UnsupportedFileTypeError",
    "WhisperTranscriber",
    "declared_type",
    "is_lock_error",
]
