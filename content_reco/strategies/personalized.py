from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List

from ..models.data_models import ContentItem, ScoredCandidate, VisitorProfile
from .base import ScoringStrategy, StrategyContext

# Weight Definitions
W_CATEGORY = 0.4
W_TAG = 0.3
W_PATTERN = 0.2
W_LENGTH = 0.1
MIN_SCORE = 0.2

PATTERN_BASE = 0.5
W_HOUR = 0.3
W_DAY = 0.2
DEEP_SCROLL_RATIO = 0.4
DEEP_SCROLL_LENGTH = 2000
DEEP_SCROLL_BONUS = 0.15

PREFERRED_LENGTH_CHARS = {"short": 500, "medium": 2000, "long": 4000}
MAX_LENGTH_DIFF = 5000.0
MATCH_REASON_THRESHOLD = 0.3


# Preference Match

def _preference_match(ids: Iterable[int], preferences: Dict[int, float]) -> float:
    ids = list(ids)
    if not ids or not preferences:
        return 0.0
    total = sum(preferences.get(i, 0.0) for i in ids)
    return min(total / len(ids), 1.0)


# Temporal Pattern

def _pattern_score(item: ContentItem, profile: VisitorProfile, now: datetime) -> float:
    patterns = profile.reading_patterns
    score = PATTERN_BASE
    score += patterns.preferred_hours.get(now.hour, 0.0) * W_HOUR
    # 0=일요일 기준
    score += patterns.preferred_days.get((now.weekday() + 1) % 7, 0.0) * W_DAY
    # 평소 깊게 스크롤하면 긴 글 선호
    if patterns.avg_scroll_depth / 100.0 > DEEP_SCROLL_RATIO and item.char_length > DEEP_SCROLL_LENGTH:
        score += DEEP_SCROLL_BONUS
    return min(score, 1.0)


# Length Closeness

def _length_score(item: ContentItem, profile: VisitorProfile) -> float:
    preferred = PREFERRED_LENGTH_CHARS.get(profile.preferred_length, PREFERRED_LENGTH_CHARS["medium"])
    return max(0.0, 1.0 - abs(item.char_length - preferred) / MAX_LENGTH_DIFF)


def compute_personal_score(item: ContentItem, profile: VisitorProfile, now: datetime):
    s_cat = _preference_match(item.category_ids, profile.category_preferences)
    s_tag = _preference_match(item.tag_ids, profile.tag_interests)
    s_pat = _pattern_score(item, profile, now)
    s_len = _length_score(item, profile)

    total = W_CATEGORY * s_cat + W_TAG * s_tag + W_PATTERN * s_pat + W_LENGTH * s_len
    return total, {
        "category": s_cat,
        "tag": s_tag,
        "pattern": s_pat,
        "length": s_len,
    }


class PersonalizedStrategy(ScoringStrategy):
    name = "personalized"
    requires_profile = True

    def score(self, ctx: StrategyContext) -> List[ScoredCandidate]:
        profile = ctx.profile
        results = []
        for item in ctx.candidates:
            total, feats = compute_personal_score(item, profile, ctx.now)
            if total <= MIN_SCORE:
                continue

            reasons = []
            if feats["category"] > MATCH_REASON_THRESHOLD:
                reasons.append("Matches your favorite categories")
            if feats["tag"] > MATCH_REASON_THRESHOLD:
                reasons.append("Includes topics you follow")

            results.append(
                ScoredCandidate(
                    item=item,
                    score=total,
                    source=self.name,
                    reason=", ".join(reasons) or "Based on your reading profile",
                    metadata={
                        "user_cluster": profile.cluster_id,
                        "profile_match": total,
                        "breakdown": feats,
                    },
                )
            )
        return self.top(results, ctx.limit)
