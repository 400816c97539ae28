from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv


# -----------------------------------------
#  환경변수 로드 (프로젝트 루트 .env 또는 RECO_ENV_PATH)
# -----------------------------------------
_CURRENT_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _CURRENT_DIR.parent
_ENV_PATH = Path(os.getenv("RECO_ENV_PATH", str(_PROJECT_ROOT / ".env")))
load_dotenv(_ENV_PATH)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# -----------------------------------------
#  MongoDB / SSH 터널 설정
# -----------------------------------------
MONGO_URI = os.getenv("MONGO_URI")
MONGO_HOST = os.getenv("MONGO_HOST", "127.0.0.1")
MONGO_PORT = _env_int("MONGO_PORT", 27017)
MONGO_USER = os.getenv("MONGO_USER")
MONGO_PASSWORD = os.getenv("MONGO_PASSWORD")
MONGO_DB = os.getenv("MONGO_DB", "content_reco")
MONGO_AUTH_SOURCE = os.getenv("MONGO_AUTH_SOURCE", "admin")

# MONGO_SSH_HOST 가 설정된 경우에만 터널을 연다
MONGO_SSH_HOST = os.getenv("MONGO_SSH_HOST")
MONGO_SSH_PORT = _env_int("MONGO_SSH_PORT", 22)
MONGO_SSH_USER = os.getenv("MONGO_SSH_USER", "ubuntu")
MONGO_SSH_PEM_PATH = os.getenv("MONGO_SSH_PEM_PATH")

# "mongo" | "memory"
RECO_STORAGE = os.getenv("RECO_STORAGE", "mongo")


# -----------------------------------------
#  추천 파라미터 기본값
# -----------------------------------------
DEFAULT_SOURCE_WEIGHTS: Dict[str, float] = {
    "content_based": 0.30,
    "collaborative": 0.25,
    "personalized": 0.35,
    "trending": 0.10,
}
UNKNOWN_SOURCE_WEIGHT = 0.1


def _weights_from_env() -> Dict[str, float]:
    return {
        name: _env_float(f"RECO_WEIGHT_{name.upper()}", default)
        for name, default in DEFAULT_SOURCE_WEIGHTS.items()
    }


def _enabled_from_env() -> Dict[str, bool]:
    return {
        name: _env_bool(f"RECO_ENABLE_{name.upper()}", True)
        for name in DEFAULT_SOURCE_WEIGHTS
    }


@dataclass
class RecommendationSettings:
    """
    추천 엔진 튜닝 값 스냅샷.
    테스트에서는 필요한 값만 덮어써서 생성한다.
    """
    vocabulary_size: int = 200
    vocabulary_ttl: float = 3600.0
    advanced_tfidf: bool = False
    advanced_vocabulary_size: int = 5000
    vector_max_age_hours: float = 24.0
    candidate_limit: int = 100
    default_limit: int = 10
    max_limit: int = 20
    cache_enabled: bool = True
    cache_ttl: float = 300.0
    precompute_ttl: float = 1800.0
    metrics_ttl: float = 300.0
    include_explanations: bool = True
    anomaly_detection: bool = True
    strategy_timeout: float = 5.0
    diversity_penalty: float = 0.9
    min_confidence: float = 0.0
    profile_window_days: int = 90
    similar_profile_pool: int = 50
    similar_profile_limit: int = 10
    similar_profile_threshold: float = 0.3
    trending_window_days: int = 7
    source_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SOURCE_WEIGHTS))
    enabled_strategies: Dict[str, bool] = field(
        default_factory=lambda: {name: True for name in DEFAULT_SOURCE_WEIGHTS}
    )

    def weight_for(self, source: str) -> float:
        return self.source_weights.get(source, UNKNOWN_SOURCE_WEIGHT)

    def is_enabled(self, source: str) -> bool:
        return self.enabled_strategies.get(source, True)

    @classmethod
    def from_env(cls) -> "RecommendationSettings":
        return cls(
            vocabulary_size=_env_int("RECO_VOCABULARY_SIZE", 200),
            vocabulary_ttl=_env_float("RECO_VOCABULARY_TTL", 3600.0),
            advanced_tfidf=_env_bool("RECO_ADVANCED_TFIDF", False),
            advanced_vocabulary_size=_env_int("RECO_ADVANCED_VOCABULARY_SIZE", 5000),
            vector_max_age_hours=_env_float("RECO_VECTOR_MAX_AGE_HOURS", 24.0),
            candidate_limit=_env_int("RECO_CANDIDATE_LIMIT", 100),
            default_limit=_env_int("RECO_DEFAULT_LIMIT", 10),
            max_limit=_env_int("RECO_MAX_LIMIT", 20),
            cache_enabled=_env_bool("RECO_ENABLE_CACHE", True),
            cache_ttl=_env_float("RECO_CACHE_TTL", 300.0),
            precompute_ttl=_env_float("RECO_PRECOMPUTE_TTL", 1800.0),
            metrics_ttl=_env_float("RECO_METRICS_TTL", 300.0),
            include_explanations=_env_bool("RECO_INCLUDE_EXPLANATIONS", True),
            anomaly_detection=_env_bool("RECO_ANOMALY_DETECTION", True),
            strategy_timeout=_env_float("RECO_STRATEGY_TIMEOUT", 5.0),
            diversity_penalty=_env_float("RECO_DIVERSITY_PENALTY", 0.9),
            min_confidence=_env_float("RECO_MIN_CONFIDENCE", 0.0),
            source_weights=_weights_from_env(),
            enabled_strategies=_enabled_from_env(),
        )


_settings: Optional[RecommendationSettings] = None


def get_settings() -> RecommendationSettings:
    global _settings
    if _settings is None:
        _settings = RecommendationSettings.from_env()
    return _settings
