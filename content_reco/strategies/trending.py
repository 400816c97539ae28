from __future__ import annotations

from typing import List

from ..models.data_models import ScoredCandidate
from .base import ScoringStrategy, StrategyContext

W_RECENT_ENGAGEMENT = 0.4
W_VIEWS = 0.3
W_LIKES = 0.2
W_COMMENTS = 0.1
VIEWS_SATURATION = 1000.0
LIKES_SATURATION = 100.0
COMMENTS_SATURATION = 50.0
MIN_SCORE = 0.1


class TrendingStrategy(ScoringStrategy):
    """최근 7일 평균 engagement + 누적 조회/좋아요/댓글 수."""
    name = "trending"

    def __init__(self, interaction_log, window_days: int = 7):
        self.interaction_log = interaction_log
        self.window_days = window_days

    def score(self, ctx: StrategyContext) -> List[ScoredCandidate]:
        if not ctx.candidates:
            return []
        engagement = self.interaction_log.recent_engagement_by_item(
            [it.item_id for it in ctx.candidates],
            days=self.window_days,
            now=ctx.now,
        )

        results = []
        for item in ctx.candidates:
            recent = engagement.get(item.item_id, 0.0)
            s_views = min(item.views_count / VIEWS_SATURATION, 1.0)
            s_likes = min(item.likes_count / LIKES_SATURATION, 1.0)
            s_comments = min(item.comments_count / COMMENTS_SATURATION, 1.0)
            total = (
                W_RECENT_ENGAGEMENT * recent
                + W_VIEWS * s_views
                + W_LIKES * s_likes
                + W_COMMENTS * s_comments
            )
            if total > MIN_SCORE:
                results.append(
                    ScoredCandidate(
                        item=item,
                        score=total,
                        source=self.name,
                        reason="Popular and trending content.",
                        metadata={"recent_engagement": recent, "total_views": item.views_count},
                    )
                )
        return self.top(results, ctx.limit)
