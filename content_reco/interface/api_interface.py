from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .. import config
from ..config import RecommendationSettings, get_settings
from ..data.data_loader import MongoDataLoader
from ..data.memory_loader import InMemoryDataLoader
from ..errors import InvalidIdentityError
from ..interactions.anomaly import AnomalyDetector
from ..interactions.interaction_log import InteractionLog
from ..metrics.evaluator import MetricsEvaluator
from ..models.data_models import Identity, InteractionKind
from ..profile.clustering import segment_label
from ..service.pipeline import RecommendationEngine

logger = logging.getLogger(__name__)

# loader / engine / evaluator 싱글톤
_loader_singleton = None
_engine_singleton: Optional[RecommendationEngine] = None
_evaluator_singleton: Optional[MetricsEvaluator] = None
_detector_singleton: Optional[AnomalyDetector] = None

ACCURACY_WINDOW_DAYS = 30
ACCURACY_KINDS = frozenset({
    InteractionKind.RECOMMENDATION_CLICK,
    InteractionKind.LIKE,
    InteractionKind.BOOKMARK,
    InteractionKind.SHARE,
})


def _get_loader():
    global _loader_singleton
    if _loader_singleton is None:
        if config.RECO_STORAGE == "memory":
            _loader_singleton = InMemoryDataLoader()
        else:
            _loader_singleton = MongoDataLoader()
    return _loader_singleton


def _get_engine() -> RecommendationEngine:
    global _engine_singleton
    if _engine_singleton is None:
        _engine_singleton = RecommendationEngine(_get_loader(), get_settings())
    return _engine_singleton


def _get_evaluator() -> MetricsEvaluator:
    global _evaluator_singleton
    if _evaluator_singleton is None:
        _evaluator_singleton = MetricsEvaluator(_get_loader(), ttl=get_settings().metrics_ttl)
    return _evaluator_singleton


def _get_detector() -> AnomalyDetector:
    global _detector_singleton
    if _detector_singleton is None:
        _detector_singleton = AnomalyDetector(_get_loader())
    return _detector_singleton


def configure(loader, settings: Optional[RecommendationSettings] = None, clock=None) -> RecommendationEngine:
    """
    저장소(및 설정)를 교체하고 싱글톤을 다시 만든다. 테스트 / 데모용.
    """
    global _loader_singleton, _engine_singleton, _evaluator_singleton, _detector_singleton
    settings = settings or get_settings()
    _loader_singleton = loader
    kwargs = {"clock": clock} if clock is not None else {}
    _engine_singleton = RecommendationEngine(loader, settings, **kwargs)
    _evaluator_singleton = MetricsEvaluator(loader, ttl=settings.metrics_ttl, **kwargs)
    _detector_singleton = AnomalyDetector(loader)
    return _engine_singleton


def _identity(account_id: Optional[int], session_id: Optional[str]) -> Identity:
    return Identity(account_id=account_id, session_id=session_id or None)


# ------------------------------------------------------
# ① 추천 API (노출 로그는 엔진이 기록)
# ------------------------------------------------------
def get_recommendations(
    account_id: Optional[int] = None,
    session_id: Optional[str] = None,
    context_item_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    result = _get_engine().recommend(_identity(account_id, session_id), context_item_id=context_item_id, limit=limit)
    return result.to_frontend_dict()


def get_precomputed_recommendations(
    account_id: Optional[int] = None,
    session_id: Optional[str] = None,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    컨텍스트 없는 프로필/인기 기반 추천. 홈 화면 등에서 미리 채워둘 때 사용.
    """
    result = _get_engine().precompute(_identity(account_id, session_id), limit=limit)
    return result.to_frontend_dict()


# ------------------------------------------------------
# ② 상호작용 로그 → 프로필 증분 업데이트
# ------------------------------------------------------
def log_interaction(
    item_id: int,
    interaction_type: str,
    account_id: Optional[int] = None,
    session_id: Optional[str] = None,
    time_spent_seconds: Optional[float] = None,
    scroll_percentage: Optional[float] = None,
    completed_reading: bool = False,
    recommendation_source: Optional[str] = None,
    recommendation_position: Optional[int] = None,
    recommendation_score: Optional[float] = None,
) -> Dict[str, Any]:
    """
    프론트에서 조회/클릭/좋아요 등이 발생할 때 호출.
    로그 저장 후 같은 요청 안에서 프로필을 갱신한다.
    프로필 갱신이 실패해도 로그는 이미 저장되었으므로 ok=True 로 응답.
    """
    engine = _get_engine()
    record = engine.interaction_log.build_record(
        _identity(account_id, session_id),
        item_id,
        interaction_type,
        time_spent_seconds=time_spent_seconds,
        scroll_percentage=scroll_percentage,
        completed_reading=completed_reading,
        recommendation_source=recommendation_source,
        recommendation_position=recommendation_position,
        recommendation_score=recommendation_score,
        now=engine.clock(),
    )

    # 탐지만 한다. 의심스러워도 로그는 저장
    if engine.settings.anomaly_detection:
        try:
            report = _get_detector().inspect(record)
            if report.has_anomalies:
                record.anomaly = report.to_dict()
        except Exception as e:
            logger.error(f"[Interface] anomaly detection failed for {record.profile_key}: {e}")

    engine.interaction_log.append(record)

    try:
        engine.profile_store.apply_interaction(record, now=record.created_at)
    except Exception as e:
        logger.error(f"[Interface] profile update failed for {record.profile_key}: {e}")

    return {
        "ok": True,
        "interaction_id": record.interaction_id,
        "engagement_score": record.engagement_score,
        "implicit_rating": record.implicit_rating,
        "anomaly": record.anomaly,
    }


# ------------------------------------------------------
# ③ 방문자 인사이트
# ------------------------------------------------------
def _recommendation_accuracy(log: InteractionLog, profile_key: str, now: datetime) -> float:
    rows = [
        r for r in log.for_profile(profile_key, since=now - timedelta(days=ACCURACY_WINDOW_DAYS), include_impressions=True)
        if r.recommendation_source is not None
    ]
    if not rows:
        return 0.0
    interacted = sum(1 for r in rows if r.kind in ACCURACY_KINDS and not r.impression)
    return round(interacted / len(rows) * 100, 1)


def get_profile_insights(account_id: Optional[int] = None, session_id: Optional[str] = None) -> Dict[str, Any]:
    engine = _get_engine()
    identity = _identity(account_id, session_id)
    if identity.is_empty:
        raise InvalidIdentityError("account_id or session_id is required")

    profile = engine.profile_store.get(identity)
    if profile is None:
        return {
            "profile_key": identity.profile_key,
            "message": "Keep exploring to receive personalized recommendations.",
            "reading_time": 0,
            "items_consumed": 0,
            "top_categories": [],
            "reading_patterns": {},
        }

    patterns = profile.reading_patterns
    return {
        "profile_key": profile.profile_key,
        "reading_time": round(profile.avg_reading_time / 60, 1),
        "items_consumed": profile.total_items_consumed,
        "engagement_rate": round(profile.engagement_rate * 100, 1),
        "top_categories": [
            {"id": cid, "preference_score": round(profile.category_preferences[cid] * 100, 1)}
            for cid in profile.top_categories(5)
        ],
        "reading_patterns": {
            "preferred_hours": sorted(patterns.preferred_hours),
            "preferred_days": sorted(patterns.preferred_days),
            "avg_session_duration": round(patterns.avg_session_duration / 60, 1),
            "reading_speed": patterns.reading_speed,
            "avg_scroll_depth": round(patterns.avg_scroll_depth, 1),
        },
        "preferred_length": profile.preferred_length,
        "cluster_id": profile.cluster_id,
        "cluster_label": segment_label(profile.cluster_id),
        "cluster_confidence": profile.cluster_confidence,
        "recommendation_accuracy": _recommendation_accuracy(engine.interaction_log, profile.profile_key, engine.clock()),
    }


# ------------------------------------------------------
# ④ 배치 유지보수
# ------------------------------------------------------
def revectorize_content(force: bool = False) -> Dict[str, int]:
    engine = _get_engine()
    summary = engine.vectorizer.batch_revectorize(force=force, now=engine.clock())
    engine.clear_cache()
    return summary


def recompute_profiles(max_age_hours: float = 24.0) -> Dict[str, int]:
    engine = _get_engine()
    summary = engine.profile_store.recompute_stale(max_age_hours=max_age_hours, now=engine.clock())
    engine.clear_cache()
    return summary


def evaluate_metrics(k: int = 10, days: int = 7, include_sources: bool = True) -> Dict[str, Any]:
    evaluator = _get_evaluator()
    report = dict(evaluator.report(k=k, days=days))
    if include_sources:
        report["by_source"] = evaluator.performance_by_source(days=days)
    return report


def compare_sources(variant_a: str, variant_b: str, days: int = 7) -> Dict[str, Any]:
    return _get_evaluator().ab_test(variant_a, variant_b, days=days)


def ping() -> bool:
    return bool(_get_loader().ping())


def ensure_storage() -> None:
    _get_loader().ensure_indexes()
