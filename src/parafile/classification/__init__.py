"""AI-backed categorization, variable extraction, and image analysis."""

from .engine import AIGateway, DspyAIGateway, build_ai_gateway, has_credentials
from .gateway import CategorizationGateway
from .models import (
    CategorizationResult,
    ImageAnalysis,
    UsageRecord,
    VariableExtraction,
    VariableSuggestion,
)

__all__ = [
    "AIGateway",
    "DspyAIGateway",
    "CategorizationGateway",
    "build_ai_gateway",
    "has_credentials",
    "CategorizationResult",
    "ImageAnalysis",
    "UsageRecord",
    "VariableExtraction",
    "VariableSuggestion",
]
