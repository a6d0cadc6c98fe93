"""Correction history and learned feedback for AI prompts."""

from .models import (
    CategoryCorrection,
    CorrectionSummary,
    FeedbackAnalysis,
    FeedbackDocument,
    FeedbackPattern,
    FeedbackSubmission,
    NameCorrection,
    RelevantFeedback,
    RelevantPattern,
)
from .store import DEFAULT_FEEDBACK_PATH, FeedbackStore

__all__ = [
    "FeedbackStore",
    "DEFAULT_FEEDBACK_PATH",
    "FeedbackDocument",
    "FeedbackPattern",
    "FeedbackSubmission",
    "CategoryCorrection",
    "NameCorrection",
    "CorrectionSummary",
    "RelevantPattern",
    "RelevantFeedback",
    "FeedbackAnalysis",
]
