from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..models.data_models import InteractionKind, InteractionRecord
from ..service.cache import TTLCache

logger = logging.getLogger(__name__)

RELEVANT_ENGAGEMENT = 0.5
MAX_RELEVANCE = 5.0
AB_TIE_MARGIN = 0.05
W_AB_ENGAGEMENT = 0.7
W_AB_COMPLETION = 0.3


# ------------------------------------------------------
# 순수 계산 함수 (로그 rows → 지표)
# ------------------------------------------------------
def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _rec_clicks(rows: Sequence[InteractionRecord], k: Optional[int] = None) -> List[InteractionRecord]:
    out = [r for r in rows if r.kind == InteractionKind.RECOMMENDATION_CLICK and not r.impression]
    if k is not None:
        out = [r for r in out if r.recommendation_position is not None and r.recommendation_position <= k]
    return out


def relevance_score(record: InteractionRecord) -> float:
    """NDCG 용 관련도: engagement + 완독 1.0 + 스크롤>80 0.5 + 체류>120s 0.5 (최대 5)."""
    score = record.engagement_score or 0.0
    if record.completed_reading:
        score += 1.0
    if record.scroll_percentage > 80:
        score += 0.5
    if record.time_spent_seconds > 120:
        score += 0.5
    return min(score, MAX_RELEVANCE)


def precision_at_k(rows: Sequence[InteractionRecord], k: int) -> float:
    clicks = _rec_clicks(rows, k)
    if not clicks:
        return 0.0
    relevant = sum(1 for r in clicks if r.engagement_score > RELEVANT_ENGAGEMENT or r.completed_reading)
    return relevant / len(clicks)


def recall_at_k(rows: Sequence[InteractionRecord], k: int) -> float:
    engaged = {r.item_id for r in rows if not r.impression and r.engagement_score > RELEVANT_ENGAGEMENT}
    if not engaged:
        return 0.0
    recommended = {r.item_id for r in _rec_clicks(rows, k) if r.engagement_score > RELEVANT_ENGAGEMENT}
    return len(recommended) / len(engaged)


def f1_score(precision: float, recall: float) -> float:
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def ndcg_at_k(rows: Sequence[InteractionRecord], k: int) -> float:
    # 방문 세션 단위. session_id 가 없는 로그만 profile_key 로 묶는다
    per_session: Dict[str, List[InteractionRecord]] = defaultdict(list)
    for r in _rec_clicks(rows, k):
        per_session[r.session_id or r.profile_key].append(r)

    scores = []
    for key in sorted(per_session):
        recs = sorted(per_session[key], key=lambda r: r.recommendation_position)
        rels = [relevance_score(r) for r in recs]

        dcg = sum(rel / math.log2(r.recommendation_position + 1) for rel, r in zip(rels, recs))
        ideal = sorted(rels, reverse=True)
        idcg = sum(rel / math.log2(i + 2) for i, rel in enumerate(ideal))
        if idcg > 0:
            # 같은 position 에 클릭이 여러 번이면 1 을 넘을 수 있음
            scores.append(min(dcg / idcg, 1.0))

    return _mean(scores)


# ------------------------------------------------------
# 세션별 추천 리스트 기반 랭킹 지표
# ------------------------------------------------------
def _session_key(r: InteractionRecord) -> str:
    return r.session_id or r.profile_key


def _is_relevant(r: InteractionRecord) -> bool:
    return not r.impression and (r.engagement_score > RELEVANT_ENGAGEMENT or r.completed_reading)


def _recommended_lists(rows: Sequence[InteractionRecord], k: int) -> Dict[str, List[int]]:
    """
    노출 로그에서 세션별 추천 리스트 (position 순, 아이템 중복 제거, 상위 k).
    """
    best: Dict[str, Dict[int, int]] = defaultdict(dict)
    for r in rows:
        if not r.impression or r.recommendation_position is None:
            continue
        seen = best[_session_key(r)]
        pos = seen.get(r.item_id)
        if pos is None or r.recommendation_position < pos:
            seen[r.item_id] = r.recommendation_position

    lists = {}
    for key, positions in best.items():
        ranked = sorted(positions.items(), key=lambda kv: (kv[1], kv[0]))
        lists[key] = [item_id for item_id, _ in ranked[:k]]
    return lists


def _relevant_sets(rows: Sequence[InteractionRecord]) -> Dict[str, Set[int]]:
    out: Dict[str, Set[int]] = defaultdict(set)
    for r in rows:
        if _is_relevant(r):
            out[_session_key(r)].add(r.item_id)
    return out


def mean_average_precision(rows: Sequence[InteractionRecord], k: int) -> float:
    """AP = Σ precision@i (i 가 관련 아이템일 때) / 관련 아이템 수. 추천을 받은 세션 평균."""
    lists = _recommended_lists(rows, k)
    relevant = _relevant_sets(rows)

    scores = []
    for key in sorted(lists):
        wanted = relevant.get(key, set())
        if not wanted:
            scores.append(0.0)
            continue
        hits = 0
        precisions = []
        for i, item_id in enumerate(lists[key], start=1):
            if item_id in wanted:
                hits += 1
                precisions.append(hits / i)
        scores.append(sum(precisions) / len(wanted))
    return _mean(scores)


def mean_reciprocal_rank(rows: Sequence[InteractionRecord], k: int) -> float:
    lists = _recommended_lists(rows, k)
    relevant = _relevant_sets(rows)

    scores = []
    for key in sorted(lists):
        wanted = relevant.get(key, set())
        rr = 0.0
        for i, item_id in enumerate(lists[key], start=1):
            if item_id in wanted:
                rr = 1.0 / i
                break
        scores.append(rr)
    return _mean(scores)


def hit_rate(rows: Sequence[InteractionRecord], k: int) -> float:
    lists = _recommended_lists(rows, k)
    if not lists:
        return 0.0
    relevant = _relevant_sets(rows)
    hits = sum(1 for key, items in lists.items() if relevant.get(key, set()) & set(items))
    return hits / len(lists)


def novelty(rows: Sequence[InteractionRecord], k: int) -> float:
    """
    추천 아이템의 평균 -log2(popularity).
    popularity = 윈도우 안에서 그 아이템과 상호작용한 세션 비율. 0 이면 기여 없음.
    """
    lists = _recommended_lists(rows, k)
    recommended = [item_id for items in lists.values() for item_id in items]
    if not recommended:
        return 0.0

    readers: Dict[int, Set[str]] = defaultdict(set)
    sessions = set()
    for r in rows:
        if r.impression:
            continue
        key = _session_key(r)
        sessions.add(key)
        readers[r.item_id].add(key)
    if not sessions:
        return 0.0

    total = 0.0
    for item_id in recommended:
        popularity = len(readers.get(item_id, ())) / len(sessions)
        if popularity > 0:
            total += -math.log2(popularity)
    return total / len(recommended)


def personalization(rows: Sequence[InteractionRecord], k: int) -> float:
    """세션 쌍마다 1 - Jaccard(추천 리스트) 의 평균. 세션이 2개 미만이면 0."""
    lists = [set(items) for _, items in sorted(_recommended_lists(rows, k).items())]
    if len(lists) < 2:
        return 0.0

    total = 0.0
    pairs = 0
    for i in range(len(lists)):
        for j in range(i + 1, len(lists)):
            union = lists[i] | lists[j]
            jaccard = len(lists[i] & lists[j]) / len(union) if union else 0.0
            total += 1.0 - jaccard
            pairs += 1
    return total / pairs


def click_through_rate(rows: Sequence[InteractionRecord]) -> float:
    impressions = sum(1 for r in rows if r.impression and r.recommendation_source is not None)
    if impressions == 0:
        return 0.0
    return len(_rec_clicks(rows)) / impressions


def average_engagement(rows: Sequence[InteractionRecord]) -> float:
    return _mean([r.engagement_score for r in _rec_clicks(rows)])


def diversity(rows: Sequence[InteractionRecord]) -> float:
    clicks = _rec_clicks(rows)
    if not clicks:
        return 0.0
    return len({r.item_id for r in clicks}) / len(clicks)


def coverage(rows: Sequence[InteractionRecord], catalog_size: int) -> float:
    if catalog_size <= 0:
        return 0.0
    return len({r.item_id for r in _rec_clicks(rows)}) / catalog_size


def _source_summary(rows: Sequence[InteractionRecord]) -> Dict[str, float]:
    n = len(rows)
    return {
        "sample_size": n,
        "avg_engagement": _mean([r.engagement_score for r in rows]),
        "completion_rate": sum(1 for r in rows if r.completed_reading) / max(n, 1),
        "avg_time_spent": _mean([r.time_spent_seconds for r in rows]),
    }


def _ab_score(summary: Dict[str, float]) -> float:
    return summary["avg_engagement"] * W_AB_ENGAGEMENT + summary["completion_rate"] * W_AB_COMPLETION


# ------------------------------------------------------
# Evaluator
# ------------------------------------------------------
class MetricsEvaluator:
    """
    상호작용 로그 윈도우에서 오프라인 지표를 계산.
    조회만 하고 로그를 수정하지 않는다. report() 는 (k, days) 별로 캐시.
    """

    def __init__(
        self,
        loader,
        ttl: float = 300,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.loader = loader
        self.clock = clock
        self.cache = TTLCache(ttl_sec=ttl)

    def _window(self, days: int, now: Optional[datetime] = None) -> List[InteractionRecord]:
        now = now or self.clock()
        return self.loader.find_interactions(since=now - timedelta(days=days), until=now)

    def precision_at_k(self, k: int = 10, days: int = 7) -> float:
        return precision_at_k(self._window(days), k)

    def recall_at_k(self, k: int = 10, days: int = 7) -> float:
        return recall_at_k(self._window(days), k)

    def f1_score(self, k: int = 10, days: int = 7) -> float:
        rows = self._window(days)
        return f1_score(precision_at_k(rows, k), recall_at_k(rows, k))

    def ndcg_at_k(self, k: int = 10, days: int = 7) -> float:
        return ndcg_at_k(self._window(days), k)

    def map_at_k(self, k: int = 10, days: int = 7) -> float:
        return mean_average_precision(self._window(days), k)

    def mrr(self, k: int = 10, days: int = 7) -> float:
        return mean_reciprocal_rank(self._window(days), k)

    def hit_rate(self, k: int = 10, days: int = 7) -> float:
        return hit_rate(self._window(days), k)

    def novelty(self, k: int = 10, days: int = 7) -> float:
        return novelty(self._window(days), k)

    def personalization(self, k: int = 10, days: int = 7) -> float:
        return personalization(self._window(days), k)

    def ctr(self, days: int = 7) -> float:
        return click_through_rate(self._window(days))

    def avg_engagement(self, days: int = 7) -> float:
        return average_engagement(self._window(days))

    def diversity(self, days: int = 7) -> float:
        return diversity(self._window(days))

    def coverage(self, days: int = 7) -> float:
        return coverage(self._window(days), self.loader.count_published_items())

    def performance_by_source(self, days: int = 7) -> Dict[str, Dict[str, float]]:
        """
        recommendation_click 이 한 번이라도 있었던 source 별로,
        그 source 가 붙은 (노출 제외) 로그 전체의 요약.
        """
        rows = self._window(days)
        sources = sorted({r.recommendation_source for r in _rec_clicks(rows) if r.recommendation_source})

        out = {}
        for source in sources:
            logs = [r for r in rows if r.recommendation_source == source and not r.impression]
            summary = _source_summary(logs)
            out[source] = {
                "total_recommendations": summary["sample_size"],
                "avg_engagement": round(summary["avg_engagement"], 4),
                "completion_rate": round(summary["completion_rate"], 4),
                "avg_time_spent": round(summary["avg_time_spent"], 2),
            }
        return out

    def ab_test(self, variant_a: str, variant_b: str, days: int = 7) -> Dict[str, object]:
        rows = [r for r in self._window(days) if not r.impression]
        a = _source_summary([r for r in rows if r.recommendation_source == variant_a])
        b = _source_summary([r for r in rows if r.recommendation_source == variant_b])

        score_a, score_b = _ab_score(a), _ab_score(b)
        if abs(score_a - score_b) < AB_TIE_MARGIN:
            winner = "tie"
        else:
            winner = "variant_a" if score_a > score_b else "variant_b"

        def _fmt(name, s):
            return {
                "name": name,
                "sample_size": s["sample_size"],
                "avg_engagement": round(s["avg_engagement"], 4),
                "completion_rate": round(s["completion_rate"], 4),
            }

        return {"variant_a": _fmt(variant_a, a), "variant_b": _fmt(variant_b, b), "winner": winner}

    def report(self, k: int = 10, days: int = 7) -> Dict[str, object]:
        key = f"metrics_report:{k}:{days}"
        hit = self.cache.get(key)
        if hit is not None:
            return hit

        now = self.clock()
        rows = self._window(days, now)
        catalog_size = self.loader.count_published_items()

        precision = precision_at_k(rows, k)
        recall = recall_at_k(rows, k)
        report = {
            "precision_at_k": round(precision, 4),
            "recall_at_k": round(recall, 4),
            "f1_score": round(f1_score(precision, recall), 4),
            "ndcg_at_k": round(ndcg_at_k(rows, k), 4),
            "map_at_k": round(mean_average_precision(rows, k), 4),
            "mrr": round(mean_reciprocal_rank(rows, k), 4),
            "hit_rate": round(hit_rate(rows, k), 4),
            "novelty": round(novelty(rows, k), 4),
            "personalization": round(personalization(rows, k), 4),
            "ctr": round(click_through_rate(rows), 4),
            "avg_engagement": round(average_engagement(rows), 4),
            "diversity": round(diversity(rows), 4),
            "coverage": round(coverage(rows, catalog_size), 4),
            "k": k,
            "days": days,
            "generated_at": now.isoformat(),
        }
        logger.info(f"[Metrics] report k={k}, days={days}, rows={len(rows)}: precision={report['precision_at_k']}")

        self.cache.set(key, report)
        return report
