from __future__ import annotations

"""
explain.py

최종 추천 아이템마다 붙는 설명 payload.

- primary_reason / detailed_reasons / algorithm : 어떤 전략이 왜 골랐는지
- feature_importance : 점수에 기여한 특징 비중 (합 1)
- confidence_breakdown : 신뢰도 수준과 근거
- counterfactual : 프로필이 얇을 때 무엇을 하면 추천이 좋아지는지
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.data_models import RecommendedItem, VisitorProfile

POPULARITY_SATURATION = 1000.0
RECENCY_HORIZON_DAYS = 365.0

CONFIDENCE_HIGH = 0.8
CONFIDENCE_MEDIUM = 0.6
CONFIDENCE_LOW = 0.4

THIN_ENGAGEMENT_RATE = 0.5
THIN_ITEMS_CONSUMED = 10

PRIMARY_REASONS = {
    "content_based": "Similar to the content you are reading",
    "collaborative": "Readers with similar tastes liked this",
    "personalized": "Matches your reading profile",
    "trending": "Popular right now",
}


def _pct(value: float) -> str:
    return f"{round(value * 100)}%"


# ------------------------------------------------------
# 전략별 상세 이유
# ------------------------------------------------------
def _content_reasons(meta: Dict[str, Any]) -> List[str]:
    out = []
    if meta.get("content_similarity", 0.0) > 0:
        out.append(f"Text similarity: {_pct(meta['content_similarity'])}")
    if meta.get("category_similarity", 0.0) > 0:
        out.append(f"Category overlap: {_pct(meta['category_similarity'])}")
    if meta.get("tag_similarity", 0.0) > 0:
        out.append(f"Shared topics: {_pct(meta['tag_similarity'])}")
    return out


def _collaborative_reasons(meta: Dict[str, Any]) -> List[str]:
    out = []
    if meta.get("similar_users"):
        out.append(f"{meta.get('similar_users_liked', 0)} of {meta['similar_users']} similar readers engaged with it")
    if meta.get("avg_rating"):
        out.append(f"Average rating from similar readers: {meta['avg_rating']:.1f}/5")
    return out


def _personalized_reasons(meta: Dict[str, Any]) -> List[str]:
    breakdown = meta.get("breakdown") or {}
    out = []
    if breakdown.get("category", 0.0) > 0:
        out.append(f"Category preference match: {_pct(breakdown['category'])}")
    if breakdown.get("tag", 0.0) > 0:
        out.append(f"Topic interest match: {_pct(breakdown['tag'])}")
    if breakdown.get("pattern", 0.0) > 0:
        out.append(f"Fits your usual reading time: {_pct(breakdown['pattern'])}")
    return out


def _trending_reasons(meta: Dict[str, Any]) -> List[str]:
    out = []
    if meta.get("total_views"):
        out.append(f"{meta['total_views']} views")
    if meta.get("recent_engagement"):
        out.append(f"Recent engagement: {_pct(meta['recent_engagement'])}")
    return out


_DETAIL_BUILDERS = {
    "content_based": _content_reasons,
    "collaborative": _collaborative_reasons,
    "personalized": _personalized_reasons,
    "trending": _trending_reasons,
}


def _source_explanation(rec: RecommendedItem) -> Dict[str, Any]:
    strategies = rec.metadata.get("strategies") or {}
    detailed: List[str] = []
    for source in rec.sources:
        builder = _DETAIL_BUILDERS.get(source)
        if builder is not None:
            detailed.extend(builder(strategies.get(source) or {}))

    if len(rec.sources) > 1:
        return {
            "primary_reason": "Recommended by several signals",
            "detailed_reasons": detailed,
            "algorithm": "hybrid",
        }
    return {
        "primary_reason": PRIMARY_REASONS.get(rec.source, rec.reason or "Recommended for you"),
        "detailed_reasons": detailed,
        "algorithm": rec.source,
    }


# ------------------------------------------------------
# feature importance
# ------------------------------------------------------
def feature_importance(rec: RecommendedItem, now: datetime) -> Dict[str, float]:
    strategies = rec.metadata.get("strategies") or {}
    content = strategies.get("content_based") or {}
    collab = strategies.get("collaborative") or {}
    personal = (strategies.get("personalized") or {}).get("breakdown") or {}

    raw: Dict[str, float] = {}
    if content.get("content_similarity"):
        raw["content_similarity"] = content["content_similarity"]
    category = max(content.get("category_similarity", 0.0), personal.get("category", 0.0))
    if category > 0:
        raw["category_match"] = category
    if collab.get("similar_users"):
        raw["user_similarity"] = collab.get("similar_users_liked", 0) / collab["similar_users"]

    raw["popularity"] = min(rec.item.views_count / POPULARITY_SATURATION, 1.0)
    if rec.item.published_at is not None:
        age_days = (now - rec.item.published_at).total_seconds() / 86400.0
        raw["recency"] = max(0.0, 1.0 - age_days / RECENCY_HORIZON_DAYS)

    total = sum(v for v in raw.values() if v > 0)
    if total <= 0:
        return {}
    normalized = {k: round(v / total, 3) for k, v in raw.items() if v > 0}
    return dict(sorted(normalized.items(), key=lambda kv: (-kv[1], kv[0])))


# ------------------------------------------------------
# confidence
# ------------------------------------------------------
def confidence_level(confidence: float) -> str:
    if confidence > CONFIDENCE_HIGH:
        return "high"
    if confidence > CONFIDENCE_MEDIUM:
        return "medium"
    if confidence > CONFIDENCE_LOW:
        return "low"
    return "exploratory"


def _confidence_breakdown(rec: RecommendedItem, profile: Optional[VisitorProfile]) -> Dict[str, Any]:
    # metadata["confidence"] 는 0~100
    overall = min(max(rec.metadata.get("confidence", rec.combined_score * 100.0) / 100.0, 0.0), 1.0)
    factors = [f"{len(rec.sources)} recommendation source(s) agree"]
    if profile is not None and profile.total_items_consumed > 0:
        factors.append(f"Profile built from {profile.total_items_consumed} item(s)")
    else:
        factors.append("No reading history yet")
    return {
        "overall": round(overall, 3),
        "level": confidence_level(overall),
        "factors": factors,
    }


def _counterfactual(profile: Optional[VisitorProfile]) -> Dict[str, Any]:
    what_if: List[str] = []
    tips: List[str] = []
    engagement = profile.engagement_rate if profile is not None else 0.0
    consumed = profile.total_items_consumed if profile is not None else 0

    if engagement < THIN_ENGAGEMENT_RATE:
        what_if.append("Reading articles to the end would sharpen these suggestions")
        tips.append("Like or bookmark the articles you enjoy")
    if consumed < THIN_ITEMS_CONSUMED:
        what_if.append(f"After {THIN_ITEMS_CONSUMED} articles recommendations switch to your own profile")
        tips.append("Explore a few more categories")
    return {"what_if": what_if, "improvement_tips": tips}


def explain(rec: RecommendedItem, profile: Optional[VisitorProfile], now: datetime) -> Dict[str, Any]:
    out = _source_explanation(rec)
    out["feature_importance"] = feature_importance(rec, now)
    out["confidence_breakdown"] = _confidence_breakdown(rec, profile)
    out["counterfactual"] = _counterfactual(profile)
    return out
