from __future__ import annotations

import logging
import math
import threading
import zlib
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import ProfileUpdateError
from ..models.data_models import (
    ContentItem,
    Identity,
    InteractionKind,
    InteractionRecord,
    ReadingPatterns,
    VIEW_KINDS,
    VisitorProfile,
)
from .clustering import classify

logger = logging.getLogger(__name__)

K = InteractionKind

# 증분 업데이트용 행동 가중치
INCREMENTAL_WEIGHTS: Dict[InteractionKind, float] = {
    K.VIEW: 0.1,
    K.CLICK: 0.2,
    K.LIKE: 0.8,
    K.SHARE: 0.9,
    K.COMMENT: 1.0,
    K.BOOKMARK: 0.9,
    K.RECOMMENDATION_CLICK: 0.3,
}
LONG_READ_SECONDS = 60.0
LONG_READ_BOOST = 1.5
HIGH_ENGAGEMENT = 0.7
HIGH_ENGAGEMENT_BOOST = 1.3
INCREMENTAL_WEIGHT_CAP = 2.0

# 전체 재계산용 행동 가중치 (최대값으로 정규화되므로 상대 크기만 의미 있음)
RECOMPUTE_WEIGHTS: Dict[InteractionKind, float] = {
    K.VIEW: 1.0,
    K.CLICK: 1.0,
    K.LIKE: 2.0,
    K.BOOKMARK: 2.5,
    K.SHARE: 3.0,
    K.COMMENT: 3.5,
    K.RECOMMENDATION_CLICK: 1.5,
}
COMPLETION_BOOST = 1.5

FAST_READ_SECONDS = 120.0
SLOW_READ_SECONDS = 300.0
SHORT_CONTENT_CHARS = 1000
LONG_CONTENT_CHARS = 3000
TOP_PATTERN_BUCKETS = 3
LOCK_POOL_SIZE = 64


def incremental_weight(record: InteractionRecord) -> float:
    weight = INCREMENTAL_WEIGHTS.get(record.kind, 0.1)
    if record.time_spent_seconds > LONG_READ_SECONDS:
        weight *= LONG_READ_BOOST
    if record.engagement_score > HIGH_ENGAGEMENT:
        weight *= HIGH_ENGAGEMENT_BOOST
    return min(weight, INCREMENTAL_WEIGHT_CAP)


def recompute_weight(record: InteractionRecord) -> float:
    weight = RECOMPUTE_WEIGHTS.get(record.kind, 1.0)
    if record.completed_reading:
        weight *= COMPLETION_BOOST
    if record.engagement_score > HIGH_ENGAGEMENT:
        weight *= HIGH_ENGAGEMENT_BOOST
    return weight


def running_average(old: float, value: float, n: int) -> float:
    # n 은 이번 관측을 포함한 개수
    if n <= 1:
        return float(value)
    return (old * (n - 1) + value) / n


def normalize_by_max(weights: Dict[int, float]) -> Dict[int, float]:
    if not weights:
        return {}
    top = max(weights.values()) or 1.0
    return {k: v / top for k, v in weights.items()}


def profile_similarity(a: VisitorProfile, b: VisitorProfile) -> float:
    """카테고리 선호도 맵 합집합 위의 cosine (없는 키는 0)."""
    prefs_a, prefs_b = a.category_preferences, b.category_preferences
    keys = set(prefs_a) | set(prefs_b)
    if not keys:
        return 0.0
    dot = sum(prefs_a.get(k, 0.0) * prefs_b.get(k, 0.0) for k in keys)
    norm_a = math.sqrt(sum(v * v for v in prefs_a.values()))
    norm_b = math.sqrt(sum(v * v for v in prefs_b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def return_rate(timestamps: List[datetime], now: datetime) -> float:
    if len(timestamps) < 2:
        return 0.0
    active_days = {ts.date() for ts in timestamps}
    total_days = (now.date() - min(timestamps).date()).days
    if total_days <= 0:
        return 1.0
    return min(len(active_days) / total_days, 1.0)


def _top_share(counter: Counter, total: int) -> Dict[int, float]:
    ranked = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_PATTERN_BUCKETS]
    return {bucket: count / total for bucket, count in ranked}


def reading_speed_class(avg_seconds: float) -> str:
    if avg_seconds < FAST_READ_SECONDS:
        return "fast"
    if avg_seconds > SLOW_READ_SECONDS:
        return "slow"
    return "medium"


def length_class(avg_chars: float) -> str:
    if avg_chars < SHORT_CONTENT_CHARS:
        return "short"
    if avg_chars > LONG_CONTENT_CHARS:
        return "long"
    return "medium"


class ProfileStore:
    """
    방문자 프로필 조회 / 증분 업데이트 / 전체 재계산.
    같은 profile_key 에 대한 read-modify-write 는 lock 풀에서 키로 고른 lock 으로 직렬화한다.
    """

    def __init__(
        self,
        loader,
        window_days: int = 90,
        similar_pool: int = 50,
        similar_limit: int = 10,
        similar_threshold: float = 0.3,
        lock_pool_size: int = LOCK_POOL_SIZE,
    ):
        self.loader = loader
        self.window_days = window_days
        self.similar_pool = similar_pool
        self.similar_limit = similar_limit
        self.similar_threshold = similar_threshold
        # 고정 크기 lock 풀. 같은 키는 항상 같은 lock, 다른 키가 lock 을 공유할 수는 있다
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(max(lock_pool_size, 1))]

    def lock_for(self, profile_key: str) -> threading.Lock:
        return self._locks[zlib.crc32(profile_key.encode("utf-8")) % len(self._locks)]

    # ------------------------------------------------------
    # 조회
    # ------------------------------------------------------
    def get(self, identity: Identity) -> Optional[VisitorProfile]:
        if identity is None or identity.is_empty:
            return None
        return self.loader.get_profile(identity.profile_key)

    # ------------------------------------------------------
    # 증분 업데이트 (상호작용 1건)
    # ------------------------------------------------------
    def apply_interaction(
        self,
        record: InteractionRecord,
        item: Optional[ContentItem] = None,
        now: Optional[datetime] = None,
    ) -> VisitorProfile:
        now = now or datetime.utcnow()
        identity = record.identity
        if item is None:
            item = self.loader.get_item(record.item_id)

        with self.lock_for(identity.profile_key):
            try:
                profile = self.loader.get_profile(identity.profile_key) or VisitorProfile.for_identity(identity)

                if record.kind in VIEW_KINDS:
                    profile.total_items_consumed += 1
                profile.interactions_observed += 1
                n = profile.interactions_observed

                profile.avg_reading_time = running_average(profile.avg_reading_time, record.time_spent_seconds, n)
                profile.engagement_rate = max(
                    0.0, min(running_average(profile.engagement_rate, record.engagement_score, n), 1.0)
                )

                if item is not None:
                    weight = incremental_weight(record)
                    for cid in item.category_ids:
                        profile.category_preferences[cid] = profile.category_preferences.get(cid, 0.0) + weight
                    for tid in item.tag_ids:
                        profile.tag_interests[tid] = profile.tag_interests.get(tid, 0.0) + weight

                profile.cluster_id, profile.cluster_confidence = classify(profile)
                profile.last_activity = now
                profile.updated_at = now
                self.loader.save_profile(profile)
            except Exception as e:
                raise ProfileUpdateError(f"profile update failed for {identity.profile_key}: {e}") from e

        return profile

    # ------------------------------------------------------
    # 전체 재계산 (최근 90일)
    # ------------------------------------------------------
    def recompute(self, identity: Identity, now: Optional[datetime] = None) -> Optional[VisitorProfile]:
        now = now or datetime.utcnow()
        key = identity.profile_key
        since = now - timedelta(days=self.window_days)

        with self.lock_for(key):
            interactions = self.loader.find_interactions(profile_keys=[key], since=since, impressions=False)
            profile = self.loader.get_profile(key)
            if not interactions:
                return profile

            profile = profile or VisitorProfile.for_identity(identity)
            items = self.loader.get_items({r.item_id for r in interactions})
            self._rebuild(profile, interactions, items, now)
            self.loader.save_profile(profile)

        logger.info(
            f"[ProfileStore] recomputed {key}: interactions={len(interactions)}, "
            f"cluster={profile.cluster_id}, confidence={profile.cluster_confidence}"
        )
        return profile

    def _rebuild(
        self,
        profile: VisitorProfile,
        interactions: List[InteractionRecord],
        items: Dict[int, ContentItem],
        now: datetime,
    ) -> None:
        total = len(interactions)
        hours = Counter(r.created_at.hour for r in interactions)
        # 0=일요일 ... 6=토요일
        days = Counter((r.created_at.weekday() + 1) % 7 for r in interactions)

        avg_time = sum(r.time_spent_seconds for r in interactions) / total
        avg_scroll = sum(r.scroll_percentage for r in interactions) / total
        profile.reading_patterns = ReadingPatterns(
            preferred_hours=_top_share(hours, total),
            preferred_days=_top_share(days, total),
            avg_session_duration=avg_time,
            reading_speed=reading_speed_class(avg_time),
            avg_scroll_depth=avg_scroll,
        )

        category_scores: Dict[int, float] = defaultdict(float)
        tag_scores: Dict[int, float] = defaultdict(float)
        lengths: List[int] = []
        for r in interactions:
            item = items.get(r.item_id)
            if item is None:
                continue
            weight = recompute_weight(r)
            for cid in item.category_ids:
                category_scores[cid] += weight
            for tid in item.tag_ids:
                tag_scores[tid] += weight
            lengths.append(item.char_length)

        profile.category_preferences = normalize_by_max(dict(category_scores))
        profile.tag_interests = normalize_by_max(dict(tag_scores))
        if lengths:
            profile.preferred_length = length_class(sum(lengths) / len(lengths))

        profile.avg_reading_time = avg_time
        profile.engagement_rate = max(0.0, min(sum(r.engagement_score for r in interactions) / total, 1.0))
        profile.total_items_consumed = sum(1 for r in interactions if r.kind in VIEW_KINDS)
        profile.interactions_observed = total
        profile.return_rate = return_rate([r.created_at for r in interactions], now)
        profile.cluster_id, profile.cluster_confidence = classify(profile)
        profile.last_activity = max(r.created_at for r in interactions)
        profile.updated_at = now

    def recompute_stale(self, max_age_hours: float = 24.0, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        updated_at 이 없거나 오래된 프로필을 재계산. 프로필별 실패는 로그만 남기고 계속.
        """
        now = now or datetime.utcnow()
        cutoff = now - timedelta(hours=max_age_hours)
        summary = {"processed": 0, "failed": 0, "skipped": 0}

        for profile in self.loader.list_profiles():
            if profile.updated_at is not None and profile.updated_at >= cutoff:
                summary["skipped"] += 1
                continue
            identity = Identity(account_id=profile.account_id, session_id=profile.session_id)
            try:
                self.recompute(identity, now=now)
                summary["processed"] += 1
            except Exception as e:
                summary["failed"] += 1
                logger.error(f"[ProfileStore] recompute failed for {profile.profile_key}: {e}")

        logger.info(
            f"[ProfileStore] stale recompute done: processed={summary['processed']}, "
            f"failed={summary['failed']}, skipped={summary['skipped']}"
        )
        return summary

    # ------------------------------------------------------
    # 유사 프로필
    # ------------------------------------------------------
    def find_similar(self, profile: VisitorProfile) -> List[Tuple[VisitorProfile, float]]:
        others: Iterable[VisitorProfile] = self.loader.list_profiles(
            exclude_key=profile.profile_key,
            limit=self.similar_pool,
            require_preferences=True,
        )
        scored = []
        for other in others:
            sim = profile_similarity(profile, other)
            if sim > self.similar_threshold:
                scored.append((other, sim))
        scored.sort(key=lambda pair: (-pair[1], pair[0].profile_key))
        return scored[:self.similar_limit]
