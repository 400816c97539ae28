from __future__ import annotations

import logging
import math
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..models.data_models import InteractionRecord
from ..service.cache import TTLCache

logger = logging.getLogger(__name__)

# 속도: 60초 안에 30건 초과
SPEED_WINDOW_SEC = 60
SPEED_THRESHOLD = 30
SEVERITY_SPEED = 30

# 불가능한 참여 지표
MAX_PLAUSIBLE_TIME = 7200.0
FAST_SCROLL_TIME = 5.0
FAST_SCROLL_PERCENT = 80.0
FAST_ENGAGEMENT_TIME = 10.0
FAST_ENGAGEMENT_SCORE = 0.8
SEVERITY_IMPOSSIBLE = 25

# 반복 행동: 최근 1시간, 최근 20건 기준
REPEAT_WINDOW = timedelta(hours=1)
REPEAT_SAMPLE = 20
REPEAT_MIN_ROWS = 5
REPEAT_MAX_SAME_ITEM = 5
REPEAT_MAX_SAME_KIND = 10
SEVERITY_REPETITIVE = 20

# 통계적 이상치 (체류시간 z-score)
STATS_WINDOW_DAYS = 7
STATS_TTL_SEC = 3600
Z_SCORE_THRESHOLD = 3.0
SEVERITY_OUTLIER = 15

MAX_SCORE = 100


def risk_level(score: float) -> str:
    if score >= 70:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 30:
        return "medium"
    if score >= 10:
        return "low"
    return "none"


def recommended_action(score: float) -> str:
    if score >= 70:
        return "block_and_review"
    if score >= 50:
        return "flag_for_review"
    if score >= 30:
        return "monitor_closely"
    if score >= 10:
        return "log_only"
    return "none"


@dataclass
class AnomalyReport:
    anomalies: List[Dict[str, Any]] = field(default_factory=list)
    score: int = 0

    @property
    def has_anomalies(self) -> bool:
        return bool(self.anomalies)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_anomalies": self.has_anomalies,
            "anomaly_score": self.score,
            "risk_level": risk_level(self.score),
            "recommended_action": recommended_action(self.score),
            "anomalies": self.anomalies,
        }


class AnomalyDetector:
    """
    상호작용 저장 직전에 의심스러운 패턴을 탐지한다.
    탐지만 하고 차단하지 않는다. 결과는 레코드에 붙여서 저장.
    """

    def __init__(self, loader, max_sessions: int = 10000):
        self.loader = loader
        self._lock = threading.Lock()
        # 세션별 최근 타임스탬프
        self._recent = TTLCache(ttl_sec=SPEED_WINDOW_SEC * 2, max_entries=max_sessions)
        self._stats = TTLCache(ttl_sec=STATS_TTL_SEC)

    def inspect(self, record: InteractionRecord) -> AnomalyReport:
        now = record.created_at or datetime.utcnow()
        report = AnomalyReport()
        checks = (
            self._speed(record, now),
            self._impossible_engagement(record),
            self._repetitive(record, now),
            self._statistical_outlier(record, now),
        )
        for found in checks:
            if found is not None:
                report.anomalies.append(found)
                report.score += found["severity"]
        report.score = min(report.score, MAX_SCORE)

        if report.has_anomalies:
            types = ", ".join(a["type"] for a in report.anomalies)
            logger.warning(
                f"[Anomaly] {record.profile_key}: score={report.score}, "
                f"risk={risk_level(report.score)}, types={types}"
            )
        return report

    # ------------------------------------------------------
    # 개별 탐지
    # ------------------------------------------------------
    def _speed(self, record: InteractionRecord, now: datetime) -> Optional[Dict[str, Any]]:
        if not record.session_id:
            return None

        cutoff = now - timedelta(seconds=SPEED_WINDOW_SEC)
        with self._lock:
            stamps = [t for t in (self._recent.get(record.session_id) or []) if t > cutoff]
            stamps.append(now)
            self._recent.set(record.session_id, stamps)

        if len(stamps) <= SPEED_THRESHOLD:
            return None
        return {
            "type": "speed_anomaly",
            "severity": SEVERITY_SPEED,
            "details": {"interactions_per_minute": len(stamps), "threshold": SPEED_THRESHOLD},
        }

    @staticmethod
    def _impossible_engagement(record: InteractionRecord) -> Optional[Dict[str, Any]]:
        t = record.time_spent_seconds
        issues = []
        if t > MAX_PLAUSIBLE_TIME:
            issues.append("time_spent out of normal range")
        if t < FAST_SCROLL_TIME and record.scroll_percentage > FAST_SCROLL_PERCENT:
            issues.append("full scroll in impossible time")
        if t < FAST_SCROLL_TIME and record.completed_reading:
            issues.append("completed reading in impossible time")
        if t < FAST_ENGAGEMENT_TIME and record.engagement_score > FAST_ENGAGEMENT_SCORE:
            issues.append("engagement inconsistent with time spent")

        if not issues:
            return None
        return {
            "type": "impossible_engagement",
            "severity": SEVERITY_IMPOSSIBLE,
            "details": {
                "issues": issues,
                "time_spent": t,
                "scroll_percentage": record.scroll_percentage,
                "engagement_score": record.engagement_score,
            },
        }

    def _repetitive(self, record: InteractionRecord, now: datetime) -> Optional[Dict[str, Any]]:
        rows = self.loader.find_interactions(
            profile_keys=[record.profile_key],
            since=now - REPEAT_WINDOW,
            until=now,
            impressions=False,
        )
        rows = sorted(rows, key=lambda r: r.created_at or now)[-(REPEAT_SAMPLE - 1):] + [record]
        if len(rows) < REPEAT_MIN_ROWS:
            return None

        max_item = max(Counter(r.item_id for r in rows).values())
        max_kind = max(Counter(r.kind for r in rows).values())
        if max_item <= REPEAT_MAX_SAME_ITEM and max_kind <= REPEAT_MAX_SAME_KIND:
            return None
        return {
            "type": "repetitive_behavior",
            "severity": SEVERITY_REPETITIVE,
            "details": {
                "max_item_repetition": max_item,
                "max_kind_repetition": max_kind,
                "total_interactions": len(rows),
            },
        }

    def _time_stats(self, now: datetime) -> Optional[Dict[str, float]]:
        key = f"time_spent:{now.date().isoformat()}"
        hit = self._stats.get(key)
        if hit is not None:
            return hit or None

        values = [
            r.time_spent_seconds
            for r in self.loader.find_interactions(
                since=now - timedelta(days=STATS_WINDOW_DAYS), until=now, impressions=False
            )
        ]
        stats: Dict[str, float] = {}
        if values:
            mean = sum(values) / len(values)
            std = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))
            stats = {"mean": mean, "std": std, "count": len(values)}
        # 빈 dict 도 캐시
        self._stats.set(key, stats)
        return stats or None

    def _statistical_outlier(self, record: InteractionRecord, now: datetime) -> Optional[Dict[str, Any]]:
        stats = self._time_stats(now)
        if stats is None:
            return None

        z = abs(record.time_spent_seconds - stats["mean"]) / max(stats["std"], 1.0)
        if z <= Z_SCORE_THRESHOLD:
            return None
        return {
            "type": "statistical_outlier",
            "severity": SEVERITY_OUTLIER,
            "details": {
                "z_score": round(z, 2),
                "value": record.time_spent_seconds,
                "mean": round(stats["mean"], 2),
                "std_dev": round(stats["std"], 2),
            },
        }
