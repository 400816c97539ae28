from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..data.preprocess import strip_tags


class InteractionKind(str, Enum):
    VIEW = "view"
    CLICK = "click"
    LIKE = "like"
    SHARE = "share"
    COMMENT = "comment"
    BOOKMARK = "bookmark"
    RECOMMENDATION_CLICK = "recommendation_click"

    @classmethod
    def parse(cls, value: Any) -> Optional["InteractionKind"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


# total_items_consumed 를 증가시키는 "열람" 계열
VIEW_KINDS = frozenset({InteractionKind.VIEW})

# collaborative 에서 긍정 신호로 보는 행동
POSITIVE_KINDS = frozenset({InteractionKind.LIKE, InteractionKind.BOOKMARK, InteractionKind.SHARE})

RECOMMENDATION_SOURCES = ("content_based", "collaborative", "personalized", "trending")


@dataclass
class ContentItem:
    item_id: int
    title: Optional[str] = None
    excerpt: Optional[str] = None
    body: Optional[str] = None
    category_ids: List[int] = field(default_factory=list)
    tag_ids: List[int] = field(default_factory=list)
    published_at: Optional[datetime] = None
    status: str = "published"
    author_id: Optional[int] = None
    views_count: int = 0
    likes_count: int = 0
    comments_count: int = 0
    bookmarks_count: int = 0

    @property
    def is_published(self) -> bool:
        return self.status == "published"

    @property
    def plain_body(self) -> str:
        return strip_tags(self.body or "")

    @property
    def combined_text(self) -> str:
        parts = [self.title or "", self.excerpt or "", self.plain_body]
        return " ".join(p for p in parts if p)

    @property
    def char_length(self) -> int:
        return len(self.plain_body)


@dataclass
class ContentVector:
    item_id: int
    content_vector: List[float] = field(default_factory=list)
    category_vector: List[float] = field(default_factory=list)
    tag_vector: List[float] = field(default_factory=list)
    length_normalized: float = 0.0
    readability_score: float = 0.0
    engagement_score: float = 0.0
    computed_at: Optional[datetime] = None
    model_version: str = "2.0"
    vocabulary_version: int = 0
    # "advanced" | "basic" (content_vector 를 만든 분석기)
    analyzer: str = "basic"

    def is_zero(self) -> bool:
        return not any(self.content_vector) and not any(self.category_vector) and not any(self.tag_vector)


@dataclass(frozen=True)
class Identity:
    account_id: Optional[int] = None
    session_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.account_id is None and not self.session_id

    @property
    def profile_key(self) -> str:
        # 로그인 사용자는 account 키, 아니면 session 키. 두 프로필은 병합하지 않는다
        if self.account_id is not None:
            return f"account:{self.account_id}"
        return f"session:{self.session_id}"


@dataclass
class ReadingPatterns:
    preferred_hours: Dict[int, float] = field(default_factory=dict)
    preferred_days: Dict[int, float] = field(default_factory=dict)
    avg_session_duration: float = 0.0
    reading_speed: str = "medium"
    avg_scroll_depth: float = 0.0


@dataclass
class VisitorProfile:
    profile_key: str
    account_id: Optional[int] = None
    session_id: Optional[str] = None
    category_preferences: Dict[int, float] = field(default_factory=dict)
    tag_interests: Dict[int, float] = field(default_factory=dict)
    reading_patterns: ReadingPatterns = field(default_factory=ReadingPatterns)
    preferred_length: str = "medium"
    avg_reading_time: float = 0.0
    engagement_rate: float = 0.0
    total_items_consumed: int = 0
    interactions_observed: int = 0
    return_rate: float = 0.0
    cluster_id: int = 4
    cluster_confidence: float = 0.3
    last_activity: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_version: str = "2.0"

    @classmethod
    def for_identity(cls, identity: Identity) -> "VisitorProfile":
        return cls(
            profile_key=identity.profile_key,
            account_id=identity.account_id,
            session_id=identity.session_id if identity.account_id is None else None,
        )

    def top_categories(self, n: int = 5) -> List[int]:
        ranked = sorted(self.category_preferences.items(), key=lambda kv: (-kv[1], kv[0]))
        return [cid for cid, _ in ranked[:n]]


@dataclass
class InteractionRecord:
    item_id: int
    kind: InteractionKind
    account_id: Optional[int] = None
    session_id: Optional[str] = None
    time_spent_seconds: float = 0.0
    scroll_percentage: float = 0.0
    completed_reading: bool = False
    recommendation_source: Optional[str] = None
    recommendation_position: Optional[int] = None
    recommendation_score: Optional[float] = None
    recommendation_context: Optional[Dict[str, Any]] = None
    impression: bool = False
    engagement_score: float = 0.0
    implicit_rating: float = 0.0
    created_at: Optional[datetime] = None
    interaction_id: Optional[str] = None
    # 이상 탐지 결과 (탐지된 경우에만)
    anomaly: Optional[Dict[str, Any]] = None

    @property
    def identity(self) -> Identity:
        return Identity(account_id=self.account_id, session_id=self.session_id)

    @property
    def profile_key(self) -> str:
        return self.identity.profile_key


@dataclass
class ScoredCandidate:
    """전략 하나가 후보 하나에 매긴 점수."""
    item: ContentItem
    score: float
    source: str
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RecommendedItem:
    item: ContentItem
    combined_score: float
    sources: List[str]
    source: str
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_frontend_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item.item_id,
            "title": self.item.title,
            "excerpt": self.item.excerpt,
            "categories": list(self.item.category_ids),
            "tags": list(self.item.tag_ids),
            "publishedAt": self.item.published_at.isoformat() if self.item.published_at else None,
            "score": self.combined_score,
            "source": self.source,
            "sources": list(self.sources),
            "reason": self.reason,
            "metadata": self.metadata,
        }


@dataclass
class RecommendationResult:
    identity: Identity
    items: List[RecommendedItem] = field(default_factory=list)
    context_item_id: Optional[int] = None
    generated_at: Optional[datetime] = None
    from_cache: bool = False
    skipped_strategies: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def to_frontend_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.identity.account_id,
            "session_id": self.identity.session_id,
            "context_item_id": self.context_item_id,
            "count": len(self.items),
            "results": [r.to_frontend_dict() for r in self.items],
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "from_cache": self.from_cache,
            "skipped_strategies": list(self.skipped_strategies),
        }
