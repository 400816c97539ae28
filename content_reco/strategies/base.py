from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..models.data_models import ContentItem, ContentVector, ScoredCandidate, VisitorProfile


@dataclass
class StrategyContext:
    """전략들이 공유하는 읽기 전용 입력."""
    candidates: List[ContentItem]
    now: datetime
    limit: int
    context_item: Optional[ContentItem] = None
    context_vector: Optional[ContentVector] = None
    candidate_vectors: Dict[int, ContentVector] = field(default_factory=dict)
    profile: Optional[VisitorProfile] = None


class ScoringStrategy:
    """
    후보 목록을 받아 (item, score, reason, metadata) 목록을 돌려주는 공통 인터페이스.
    """
    name: str = ""
    requires_profile: bool = False
    requires_context_item: bool = False

    def is_applicable(self, ctx: StrategyContext) -> bool:
        if self.requires_profile and ctx.profile is None:
            return False
        if self.requires_context_item and ctx.context_item is None:
            return False
        return True

    def score(self, ctx: StrategyContext) -> List[ScoredCandidate]:
        raise NotImplementedError

    @staticmethod
    def top(results: List[ScoredCandidate], limit: int) -> List[ScoredCandidate]:
        results.sort(key=lambda r: (-r.score, r.item.item_id))
        return results[:limit]
