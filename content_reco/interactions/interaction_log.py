from __future__ import annotations

import copy
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from ..errors import InvalidInteractionError
from ..models.data_models import (
    Identity,
    InteractionKind,
    InteractionRecord,
    RECOMMENDATION_SOURCES,
    RecommendedItem,
)
from .signals import compute_engagement_score, compute_implicit_rating

logger = logging.getLogger(__name__)

MAX_TIME_SPENT = 86400.0


class InteractionLog:
    """
    append-only 상호작용 로그. 조회 헬퍼는 다른 컴포넌트용.
    """

    def __init__(self, loader):
        self.loader = loader

    # ------------------------------------------------------
    # 쓰기
    # ------------------------------------------------------
    def build_record(
        self,
        identity: Identity,
        item_id: int,
        kind: Any,
        time_spent_seconds: Optional[float] = None,
        scroll_percentage: Optional[float] = None,
        completed_reading: bool = False,
        recommendation_source: Optional[str] = None,
        recommendation_position: Optional[int] = None,
        recommendation_score: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> InteractionRecord:
        """입력 검증 + 파생 신호 계산. 실패하면 InvalidInteractionError."""
        parsed = InteractionKind.parse(kind)
        if parsed is None:
            raise InvalidInteractionError(f"unknown interaction kind: {kind!r}")
        if identity is None or identity.is_empty:
            raise InvalidInteractionError("account_id or session_id is required")
        if item_id is None:
            raise InvalidInteractionError("item_id is required")

        time_spent = float(time_spent_seconds or 0.0)
        scroll = float(scroll_percentage or 0.0)
        if not 0.0 <= time_spent <= MAX_TIME_SPENT:
            raise InvalidInteractionError(f"time_spent_seconds out of range: {time_spent}")
        if not 0.0 <= scroll <= 100.0:
            raise InvalidInteractionError(f"scroll_percentage out of range: {scroll}")
        if recommendation_position is not None and recommendation_position < 1:
            raise InvalidInteractionError("recommendation_position is 1-based")
        if recommendation_source is not None and recommendation_source not in RECOMMENDATION_SOURCES:
            raise InvalidInteractionError(f"unknown recommendation_source: {recommendation_source!r}")

        payload = {
            "kind": parsed,
            "time_spent_seconds": time_spent,
            "scroll_percentage": scroll,
            "completed_reading": bool(completed_reading),
        }
        return InteractionRecord(
            interaction_id=str(uuid4()),
            account_id=identity.account_id,
            session_id=identity.session_id,
            item_id=int(item_id),
            kind=parsed,
            time_spent_seconds=time_spent,
            scroll_percentage=scroll,
            completed_reading=bool(completed_reading),
            recommendation_source=recommendation_source,
            recommendation_position=recommendation_position,
            recommendation_score=recommendation_score,
            engagement_score=compute_engagement_score(payload),
            implicit_rating=compute_implicit_rating(payload),
            created_at=now or datetime.utcnow(),
        )

    def append(self, record: InteractionRecord) -> InteractionRecord:
        self.loader.append_interactions([record])
        return record

    def record(self, identity: Identity, item_id: int, kind: Any, **kwargs) -> InteractionRecord:
        return self.append(self.build_record(identity, item_id, kind, **kwargs))

    def record_impressions(
        self,
        identity: Identity,
        items: Sequence[RecommendedItem],
        now: Optional[datetime] = None,
    ) -> List[InteractionRecord]:
        """
        추천 결과 노출 시 1회 호출. 아이템마다 synthetic view 레코드를 남긴다.
        """
        now = now or datetime.utcnow()
        records = []
        for position, rec in enumerate(items, start=1):
            records.append(
                InteractionRecord(
                    interaction_id=str(uuid4()),
                    account_id=identity.account_id,
                    session_id=identity.session_id,
                    item_id=rec.item.item_id,
                    kind=InteractionKind.VIEW,
                    recommendation_source=rec.source,
                    recommendation_position=position,
                    recommendation_score=float(rec.combined_score),
                    recommendation_context={
                        "algorithm": rec.source,
                        "sources": list(rec.sources),
                        "reason": rec.reason,
                        "metadata": copy.deepcopy(rec.metadata),
                    },
                    impression=True,
                    created_at=now,
                )
            )
        if records:
            self.loader.append_interactions(records)
        return records

    # ------------------------------------------------------
    # 조회
    # ------------------------------------------------------
    def for_profile(
        self,
        profile_key: str,
        since: Optional[datetime] = None,
        include_impressions: bool = False,
    ) -> List[InteractionRecord]:
        return self.loader.find_interactions(
            profile_keys=[profile_key],
            since=since,
            impressions=None if include_impressions else False,
        )

    def positive_interactions(
        self,
        profile_keys: Iterable[str],
        item_ids: Iterable[int],
        kinds: Iterable[InteractionKind],
    ) -> List[InteractionRecord]:
        return self.loader.find_interactions(
            profile_keys=list(profile_keys),
            item_ids=list(item_ids),
            kinds=list(kinds),
            impressions=False,
        )

    def recent_engagement_by_item(
        self,
        item_ids: Iterable[int],
        days: int = 7,
        now: Optional[datetime] = None,
    ) -> Dict[int, float]:
        now = now or datetime.utcnow()
        rows = self.loader.find_interactions(
            item_ids=list(item_ids),
            since=now - timedelta(days=days),
            impressions=False,
        )
        grouped: Dict[int, List[float]] = defaultdict(list)
        for r in rows:
            grouped[r.item_id].append(r.engagement_score)
        return {item_id: sum(v) / len(v) for item_id, v in grouped.items()}

    def window(self, days: int, now: Optional[datetime] = None) -> List[InteractionRecord]:
        now = now or datetime.utcnow()
        return self.loader.find_interactions(since=now - timedelta(days=days), until=now)
