from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Set

from ..models.data_models import POSITIVE_KINDS, ScoredCandidate
from .base import ScoringStrategy, StrategyContext

RATING_SCALE = 5.0
MIN_SCORE = 0.01


class CollaborativeStrategy(ScoringStrategy):
    """
    비슷한 방문자(카테고리 선호 cosine > 임계값, 최대 10명)가
    좋아요/북마크/공유한 후보를 점수화.
    """
    name = "collaborative"
    requires_profile = True

    def __init__(self, profile_store, interaction_log):
        self.profile_store = profile_store
        self.interaction_log = interaction_log

    def score(self, ctx: StrategyContext) -> List[ScoredCandidate]:
        similar = self.profile_store.find_similar(ctx.profile)
        if not similar:
            return []

        by_id = {item.item_id: item for item in ctx.candidates}
        rows = self.interaction_log.positive_interactions(
            profile_keys=[p.profile_key for p, _ in similar],
            item_ids=list(by_id),
            kinds=POSITIVE_KINDS,
        )

        visitors: Dict[int, Set[str]] = defaultdict(set)
        ratings: Dict[int, List[float]] = defaultdict(list)
        for r in rows:
            visitors[r.item_id].add(r.profile_key)
            ratings[r.item_id].append(r.implicit_rating)

        n_similar = len(similar)
        results = []
        for item_id, who in visitors.items():
            avg_rating = sum(ratings[item_id]) / len(ratings[item_id])
            total = (len(who) / n_similar) * (avg_rating / RATING_SCALE)
            if total > MIN_SCORE:
                results.append(
                    ScoredCandidate(
                        item=by_id[item_id],
                        score=total,
                        source=self.name,
                        reason="Users with similar tastes enjoyed this content.",
                        metadata={
                            "similar_users_liked": len(who),
                            "similar_users": n_similar,
                            "avg_rating": avg_rating,
                        },
                    )
                )
        return self.top(results, ctx.limit)
