"""
스코어링 전략 모듈.

- content_based: 현재 보고 있는 아이템과의 벡터 유사도
- collaborative: 비슷한 방문자들의 긍정 행동
- personalized: 프로필 선호도 / 읽기 패턴 / 길이 선호
- trending: 최근 참여도 + 누적 인기 지표
"""

from .base import ScoringStrategy, StrategyContext
from .collaborative import CollaborativeStrategy
from .content_based import ContentBasedStrategy
from .personalized import PersonalizedStrategy
from .trending import TrendingStrategy

__all__ = [
    "CollaborativeStrategy",
    "ContentBasedStrategy",
    "PersonalizedStrategy",
    "ScoringStrategy",
    "StrategyContext",
    "TrendingStrategy",
]
