from __future__ import annotations

"""
signals.py

상호작용 로그 한 건에서 파생 신호를 계산하는 모듈.

- engagement_score (0~1): 행동 깊이 + 체류시간 + 스크롤 + 소셜 행동
- implicit_rating (0~5): 행동 가중치 + 체류시간/스크롤 보너스 + 완독 보너스
"""

from typing import Any, Dict, Mapping

from ..models.data_models import InteractionKind

K = InteractionKind

# 행동별 참여 깊이
DEPTH_WEIGHTS: Dict[InteractionKind, float] = {
    K.VIEW: 0.1,
    K.CLICK: 0.2,
    K.LIKE: 0.6,
    K.SHARE: 0.8,
    K.COMMENT: 1.0,
    K.BOOKMARK: 0.7,
    K.RECOMMENDATION_CLICK: 0.3,
}
SOCIAL_KINDS = frozenset({K.LIKE, K.SHARE, K.COMMENT})

W_DEPTH = 0.3
W_TIME = 0.3
W_SCROLL = 0.2
W_SOCIAL = 0.2
TIME_SATURATION = 180.0  # seconds

# implicit rating 행동 가중치
RATING_WEIGHTS: Dict[InteractionKind, float] = {
    K.VIEW: 0.1,
    K.CLICK: 0.3,
    K.LIKE: 0.8,
    K.SHARE: 0.9,
    K.COMMENT: 1.0,
    K.BOOKMARK: 0.9,
    K.RECOMMENDATION_CLICK: 0.4,
}
RATING_TIME_DIVISOR = 300.0
RATING_TIME_CAP = 0.5
RATING_SCROLL_WEIGHT = 0.3
RATING_COMPLETION_BONUS = 0.3
RATING_MAX = 5.0


def compute_engagement_score(interaction: Mapping[str, Any]) -> float:
    """
    interaction dict 예시:
    {
        "kind": InteractionKind.LIKE,
        "time_spent_seconds": 95.0,
        "scroll_percentage": 70.0,
    }
    """
    kind = InteractionKind(interaction["kind"])
    time_spent = float(interaction.get("time_spent_seconds") or 0.0)
    scroll = float(interaction.get("scroll_percentage") or 0.0)

    score = 0.0
    score += W_DEPTH * DEPTH_WEIGHTS.get(kind, 0.1)
    score += W_TIME * min(time_spent / TIME_SATURATION, 1.0)
    score += W_SCROLL * (scroll / 100.0)
    if kind in SOCIAL_KINDS:
        score += W_SOCIAL

    return round(max(0.0, min(score, 1.0)), 4)


def compute_implicit_rating(interaction: Mapping[str, Any]) -> float:
    kind = InteractionKind(interaction["kind"])
    time_spent = float(interaction.get("time_spent_seconds") or 0.0)
    scroll = float(interaction.get("scroll_percentage") or 0.0)

    rating = RATING_WEIGHTS.get(kind, 0.1)
    rating += min(time_spent / RATING_TIME_DIVISOR, RATING_TIME_CAP)
    rating += (scroll / 100.0) * RATING_SCROLL_WEIGHT
    if interaction.get("completed_reading"):
        rating += RATING_COMPLETION_BONUS

    return round(min(rating, RATING_MAX), 4)
