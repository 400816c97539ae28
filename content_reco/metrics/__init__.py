from .evaluator import (
    MetricsEvaluator,
    average_engagement,
    click_through_rate,
    coverage,
    diversity,
    f1_score,
    hit_rate,
    mean_average_precision,
    mean_reciprocal_rank,
    ndcg_at_k,
    novelty,
    personalization,
    precision_at_k,
    recall_at_k,
    relevance_score,
)

__all__ = [
    "MetricsEvaluator",
    "average_engagement",
    "click_through_rate",
    "coverage",
    "diversity",
    "f1_score",
    "hit_rate",
    "mean_average_precision",
    "mean_reciprocal_rank",
    "ndcg_at_k",
    "novelty",
    "personalization",
    "precision_at_k",
    "recall_at_k",
    "relevance_score",
]
