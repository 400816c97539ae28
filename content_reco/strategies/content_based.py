from __future__ import annotations

from typing import List

from ..models.data_models import ScoredCandidate
from ..vectorizer.content_vectorizer import cosine_similarity
from .base import ScoringStrategy, StrategyContext

W_CONTENT = 0.5
W_CATEGORY = 0.3
W_TAG = 0.2
MIN_SCORE = 0.1


def content_based_reason(content_sim: float, category_sim: float, tag_sim: float) -> str:
    reasons = []
    if content_sim > 0.5:
        reasons.append("similar content")
    if category_sim > 0.7:
        reasons.append("same category")
    if tag_sim > 0.6:
        reasons.append("related tags")
    return "Recommended because: " + (", ".join(reasons) or "content similarity")


class ContentBasedStrategy(ScoringStrategy):
    name = "content_based"
    requires_context_item = True

    def score(self, ctx: StrategyContext) -> List[ScoredCandidate]:
        current = ctx.context_vector
        if current is None:
            return []

        results = []
        for item in ctx.candidates:
            vec = ctx.candidate_vectors.get(item.item_id)
            if vec is None:
                continue

            # 분석기가 다르면 content_vector 의 축이 다름
            content_sim = (
                cosine_similarity(current.content_vector, vec.content_vector)
                if current.analyzer == vec.analyzer else 0.0
            )
            category_sim = cosine_similarity(current.category_vector, vec.category_vector)
            tag_sim = cosine_similarity(current.tag_vector, vec.tag_vector)
            total = W_CONTENT * content_sim + W_CATEGORY * category_sim + W_TAG * tag_sim

            if total > MIN_SCORE:
                results.append(
                    ScoredCandidate(
                        item=item,
                        score=total,
                        source=self.name,
                        reason=content_based_reason(content_sim, category_sim, tag_sim),
                        metadata={
                            "content_similarity": content_sim,
                            "category_similarity": category_sim,
                            "tag_similarity": tag_sim,
                        },
                    )
                )
        return self.top(results, ctx.limit)
