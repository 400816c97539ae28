from .cache import TTLCache
from .fusion import apply_diversity_penalty, fuse, rank
from .pipeline import RecommendationEngine

__all__ = ["RecommendationEngine", "TTLCache", "apply_diversity_penalty", "fuse", "rank"]
