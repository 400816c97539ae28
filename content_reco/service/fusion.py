from __future__ import annotations

from typing import Callable, Dict, Iterable, List

from ..models.data_models import RecommendedItem, ScoredCandidate


def fuse(
    scored: Iterable[ScoredCandidate],
    weight_for: Callable[[str], float],
) -> List[RecommendedItem]:
    """
    아이템별로 묶어서 combined_score = Σ score × source_weight.
    대표 source 는 가중 기여도가 가장 큰 전략.
    """
    grouped: Dict[int, RecommendedItem] = {}
    contributions: Dict[int, Dict[str, float]] = {}
    reasons: Dict[int, Dict[str, str]] = {}

    for c in scored:
        item_id = c.item.item_id
        rec = grouped.get(item_id)
        if rec is None:
            rec = grouped[item_id] = RecommendedItem(
                item=c.item,
                combined_score=0.0,
                sources=[],
                source=c.source,
                reason="",
                metadata={"source_scores": {}, "algorithm_weights": {}, "strategies": {}},
            )
            contributions[item_id] = {}
            reasons[item_id] = {}

        weight = weight_for(c.source)
        rec.combined_score += c.score * weight
        if c.source not in rec.sources:
            rec.sources.append(c.source)
        rec.metadata["source_scores"][c.source] = c.score
        rec.metadata["algorithm_weights"][c.source] = weight
        rec.metadata["strategies"][c.source] = c.metadata
        contributions[item_id][c.source] = contributions[item_id].get(c.source, 0.0) + c.score * weight
        reasons[item_id].setdefault(c.source, c.reason)

    for item_id, rec in grouped.items():
        ordered = sorted(contributions[item_id].items(), key=lambda kv: (-kv[1], kv[0]))
        rec.source = ordered[0][0]
        seen = []
        for source, _ in ordered:
            text = reasons[item_id][source]
            if text and text not in seen:
                seen.append(text)
        rec.reason = "; ".join(seen)

    return list(grouped.values())


def apply_diversity_penalty(items: List[RecommendedItem], penalty: float = 0.9) -> List[RecommendedItem]:
    """
    점수 높은 순으로 훑으면서 이미 나온 카테고리마다 ×penalty (누적).
    점수를 올리는 경우는 없다.
    """
    penalty = min(max(penalty, 0.0), 1.0)
    ordered = sorted(items, key=lambda r: (-r.combined_score, r.item.item_id))
    seen_categories = set()

    for rec in ordered:
        before = rec.combined_score
        factor = 1.0
        for cid in rec.item.category_ids:
            if cid in seen_categories:
                factor *= penalty
            seen_categories.add(cid)
        rec.combined_score = before * factor
        rec.metadata["pre_penalty_score"] = before
        rec.metadata["diversity_factor"] = factor

    return ordered


def rank(items: List[RecommendedItem], limit: int, min_confidence: float = 0.0) -> List[RecommendedItem]:
    ranked = sorted(items, key=lambda r: (-r.combined_score, r.item.item_id))

    # 후보가 충분할 때만 최소 점수 필터 적용
    if min_confidence > 0 and len(ranked) > limit:
        filtered = [r for r in ranked if r.combined_score >= min_confidence]
        if len(filtered) >= limit:
            ranked = filtered

    final = ranked[:limit]
    for rec in final:
        rec.metadata["confidence"] = min(rec.combined_score * 100.0, 100.0)
    return final
