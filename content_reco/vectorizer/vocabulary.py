from __future__ import annotations

import logging
import hashlib
import math
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..data.preprocess import tokenize
from ..models.data_models import ContentItem
from .advanced_tfidf import analyze, build_advanced_vocabulary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VocabularySnapshot:
    """
    한 번 만들어지면 바뀌지 않는 vocabulary / IDF / 카테고리·태그 universe 묶음.
    갱신은 새 스냅샷을 만들어 통째로 교체한다.
    """
    version: int
    terms: Tuple[str, ...]
    idf: Dict[str, float]
    document_frequency: Dict[str, int]
    total_documents: int
    category_ids: Tuple[int, ...]
    tag_ids: Tuple[int, ...]
    built_at: datetime
    term_index: Dict[str, int] = field(default_factory=dict)
    category_index: Dict[int, int] = field(default_factory=dict)
    tag_index: Dict[int, int] = field(default_factory=dict)
    # 고급 분석기 (stemming + n-gram) vocabulary, 비활성이면 비어 있음
    advanced_terms: Tuple[str, ...] = ()
    advanced_idf: Dict[str, float] = field(default_factory=dict)
    advanced_index: Dict[str, int] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.terms)


def compute_idf(term: str, document_frequency: Dict[str, int], total_documents: int) -> float:
    # idf(t) = ln(N / df(t)), 코퍼스에 없는 term 은 0
    df = document_frequency.get(term, 0)
    if df <= 0 or total_documents <= 0:
        return 0.0
    return math.log(total_documents / df)


def snapshot_fingerprint(
    terms: Tuple[str, ...],
    idf: Dict[str, float],
    category_ids: Tuple[int, ...],
    tag_ids: Tuple[int, ...],
    advanced_terms: Tuple[str, ...] = (),
) -> int:
    """
    vocabulary 내용으로 만든 버전 번호. 코퍼스가 같으면 프로세스가 달라도 같은 값.
    """
    payload = "|".join([
        ",".join(terms),
        ",".join(f"{idf[t]:.12f}" for t in terms),
        ",".join(str(c) for c in category_ids),
        ",".join(str(t) for t in tag_ids),
    ])
    if advanced_terms:
        payload += "|advanced:" + ",".join(advanced_terms)
    return int(hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12], 16)


def build_snapshot(
    items: Iterable[ContentItem],
    vocabulary_size: int = 200,
    category_ids: Optional[Iterable[int]] = None,
    tag_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
    advanced: bool = False,
    advanced_vocabulary_size: int = 5000,
) -> VocabularySnapshot:
    items = list(items)
    corpus_counts: Counter = Counter()
    document_frequency: Counter = Counter()

    for it in items:
        tokens = tokenize(it.combined_text)
        corpus_counts.update(tokens)
        document_frequency.update(set(tokens))

    # 빈도 내림차순, 동률은 사전순
    ranked = sorted(corpus_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    terms = tuple(t for t, _ in ranked[:vocabulary_size])

    total = len(items)
    df_map = dict(document_frequency)
    idf = {t: compute_idf(t, df_map, total) for t in terms}

    if category_ids is None:
        category_ids = {c for it in items for c in it.category_ids}
    if tag_ids is None:
        tag_ids = {t for it in items for t in it.tag_ids}
    cats = tuple(sorted(set(category_ids)))
    tags = tuple(sorted(set(tag_ids)))

    advanced_terms: Tuple[str, ...] = ()
    advanced_idf: Dict[str, float] = {}
    if advanced:
        advanced_terms, advanced_idf = build_advanced_vocabulary(
            [analyze(it.combined_text) for it in items], max_size=advanced_vocabulary_size
        )

    return VocabularySnapshot(
        version=snapshot_fingerprint(terms, idf, cats, tags, advanced_terms),
        terms=terms,
        idf=idf,
        document_frequency=df_map,
        total_documents=total,
        category_ids=cats,
        tag_ids=tags,
        built_at=now or datetime.utcnow(),
        term_index={t: i for i, t in enumerate(terms)},
        category_index={c: i for i, c in enumerate(cats)},
        tag_index={t: i for i, t in enumerate(tags)},
        advanced_terms=advanced_terms,
        advanced_idf=advanced_idf,
        advanced_index={t: i for i, t in enumerate(advanced_terms)},
    )


class VocabularyCache:
    """
    read-through 캐시: 최초 조회 시 빌드, TTL 만료 또는 invalidate() 후 재빌드.
    읽기는 lock 없이 현재 스냅샷 참조만 가져간다.
    """

    def __init__(
        self,
        loader,
        vocabulary_size: int = 200,
        ttl: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        advanced: bool = False,
        advanced_vocabulary_size: int = 5000,
    ):
        self.loader = loader
        self.vocabulary_size = vocabulary_size
        self.advanced = advanced
        self.advanced_vocabulary_size = advanced_vocabulary_size
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[VocabularySnapshot] = None
        self._built_at_tick: float = 0.0

    def _is_fresh(self, snapshot: Optional[VocabularySnapshot], built_tick: float) -> bool:
        return snapshot is not None and (self._clock() - built_tick) < self.ttl

    def get(self) -> VocabularySnapshot:
        snapshot, built_tick = self._snapshot, self._built_at_tick
        if self._is_fresh(snapshot, built_tick):
            return snapshot

        with self._lock:
            if self._is_fresh(self._snapshot, self._built_at_tick):
                return self._snapshot
            return self._rebuild_locked()

    def _rebuild_locked(self) -> VocabularySnapshot:
        items: List[ContentItem] = self.loader.get_published_items()
        snapshot = build_snapshot(
            items,
            vocabulary_size=self.vocabulary_size,
            category_ids=self.loader.get_category_universe(),
            tag_ids=self.loader.get_tag_universe(),
            advanced=self.advanced,
            advanced_vocabulary_size=self.advanced_vocabulary_size,
        )
        self._snapshot = snapshot
        self._built_at_tick = self._clock()
        logger.info(
            f"[Vocabulary] snapshot v{snapshot.version} built: terms={snapshot.size}, "
            f"docs={snapshot.total_documents}, categories={len(snapshot.category_ids)}, tags={len(snapshot.tag_ids)}, "
            f"advanced_terms={len(snapshot.advanced_terms)}"
        )
        return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None
            self._built_at_tick = 0.0
        logger.info("[Vocabulary] snapshot invalidated")

    @property
    def current_version(self) -> int:
        snap = self._snapshot
        return snap.version if snap else 0
