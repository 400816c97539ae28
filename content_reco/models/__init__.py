from .data_models import (
    ContentItem,
    ContentVector,
    Identity,
    InteractionKind,
    InteractionRecord,
    ReadingPatterns,
    RecommendationResult,
    RecommendedItem,
    ScoredCandidate,
    VisitorProfile,
)

__all__ = [
    "ContentItem",
    "ContentVector",
    "Identity",
    "InteractionKind",
    "InteractionRecord",
    "ReadingPatterns",
    "RecommendationResult",
    "RecommendedItem",
    "ScoredCandidate",
    "VisitorProfile",
]
