from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..models.data_models import (
    ContentItem,
    ContentVector,
    InteractionKind,
    InteractionRecord,
    VisitorProfile,
)


class InMemoryDataLoader:
    """
    MongoDataLoader 와 같은 인터페이스의 메모리 저장소.
    테스트 / 데모 / RECO_STORAGE=memory 용.
    """

    def __init__(self, items: Optional[Iterable[ContentItem]] = None):
        self._lock = threading.Lock()
        self._items: Dict[int, ContentItem] = {}
        self._vectors: Dict[int, ContentVector] = {}
        self._profiles: Dict[str, VisitorProfile] = {}
        self._interactions: List[InteractionRecord] = []
        if items:
            self.upsert_items(items)

    def ping(self) -> bool:
        return True

    def ensure_indexes(self) -> None:
        pass

    # ------------------------------------------------------
    # 카탈로그
    # ------------------------------------------------------
    def upsert_items(self, items: Iterable[ContentItem]) -> None:
        with self._lock:
            for it in items:
                self._items[it.item_id] = it

    def _items_snapshot(self) -> List[ContentItem]:
        with self._lock:
            return list(self._items.values())

    def get_item(self, item_id: int) -> Optional[ContentItem]:
        with self._lock:
            return self._items.get(item_id)

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, ContentItem]:
        with self._lock:
            return {i: self._items[i] for i in item_ids if i in self._items}

    def get_published_items(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
        exclude_id: Optional[int] = None,
    ) -> List[ContentItem]:
        arr = [
            it for it in self._items_snapshot()
            if it.is_published
            and it.item_id != exclude_id
            and (now is None or it.published_at is None or it.published_at <= now)
        ]
        arr.sort(key=lambda x: (x.published_at or datetime.min, x.item_id), reverse=True)
        return arr[:int(limit)] if limit is not None else arr

    def count_published_items(self) -> int:
        return sum(1 for it in self._items_snapshot() if it.is_published)

    def get_category_universe(self) -> List[int]:
        return sorted({cid for it in self._items_snapshot() for cid in it.category_ids})

    def get_tag_universe(self) -> List[int]:
        return sorted({tid for it in self._items_snapshot() for tid in it.tag_ids})

    # ------------------------------------------------------
    # 콘텐츠 벡터
    # ------------------------------------------------------
    def get_vector(self, item_id: int) -> Optional[ContentVector]:
        with self._lock:
            return self._vectors.get(item_id)

    def get_vectors(self, item_ids: Iterable[int]) -> Dict[int, ContentVector]:
        with self._lock:
            return {i: self._vectors[i] for i in item_ids if i in self._vectors}

    def save_vector(self, vector: ContentVector) -> None:
        with self._lock:
            self._vectors[vector.item_id] = vector

    # ------------------------------------------------------
    # 방문자 프로필
    # ------------------------------------------------------
    def get_profile(self, profile_key: str) -> Optional[VisitorProfile]:
        with self._lock:
            prof = self._profiles.get(profile_key)
            return copy.deepcopy(prof) if prof else None

    def save_profile(self, profile: VisitorProfile) -> None:
        with self._lock:
            self._profiles[profile.profile_key] = copy.deepcopy(profile)

    def list_profiles(
        self,
        exclude_key: Optional[str] = None,
        limit: Optional[int] = None,
        require_preferences: bool = False,
    ) -> List[VisitorProfile]:
        with self._lock:
            profiles = sorted(self._profiles.items())
        arr = [
            p for k, p in profiles
            if k != exclude_key and (not require_preferences or p.category_preferences)
        ]
        if limit is not None:
            arr = arr[:int(limit)]
        return [copy.deepcopy(p) for p in arr]

    # ------------------------------------------------------
    # 상호작용 로그 (append-only)
    # ------------------------------------------------------
    def append_interactions(self, records: Iterable[InteractionRecord]) -> None:
        with self._lock:
            self._interactions.extend(records)

    def find_interactions(
        self,
        profile_keys: Optional[Iterable[str]] = None,
        item_ids: Optional[Iterable[int]] = None,
        kinds: Optional[Iterable[InteractionKind]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        impressions: Optional[bool] = None,
    ) -> List[InteractionRecord]:
        keys = set(profile_keys) if profile_keys is not None else None
        ids = set(item_ids) if item_ids is not None else None
        kind_set = set(kinds) if kinds is not None else None

        with self._lock:
            rows = list(self._interactions)

        out = []
        for r in rows:
            if keys is not None and r.profile_key not in keys:
                continue
            if ids is not None and r.item_id not in ids:
                continue
            if kind_set is not None and r.kind not in kind_set:
                continue
            if since is not None and (r.created_at is None or r.created_at < since):
                continue
            if until is not None and (r.created_at is None or r.created_at > until):
                continue
            if impressions is not None and r.impression != impressions:
                continue
            out.append(r)
        return out
