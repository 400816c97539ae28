from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .. import MODEL_VERSION
from ..data.preprocess import readability_score, tokenize
from ..errors import VectorizationError
from ..models.data_models import ContentItem, ContentVector
from .advanced_tfidf import advanced_tfidf_vector, analyze
from .vocabulary import VocabularyCache, VocabularySnapshot

logger = logging.getLogger(__name__)

LENGTH_NORMALIZER = 10000.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    두 벡터의 cosine 유사도. 길이가 다르거나 한쪽이 영벡터면 0.
    음수가 없는 입력이면 결과는 [0, 1].
    """
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0.0 or nb == 0.0:
        return 0.0
    sim = float(np.dot(va, vb) / (na * nb))
    # 부동소수 오차로 1을 살짝 넘는 경우
    return max(-1.0, min(1.0, sim))


def engagement_from_counters(item: ContentItem) -> float:
    if item.views_count <= 0:
        return 0.0
    weighted = item.likes_count + 2 * item.comments_count + 1.5 * item.bookmarks_count
    return min(weighted / max(item.views_count, 1), 1.0)


def tfidf_vector(tokens: Iterable[str], snapshot: VocabularySnapshot) -> List[float]:
    counts = Counter(tokens)
    vector = [0.0] * snapshot.size
    if not counts:
        return vector
    max_count = max(counts.values())
    for term, idx in snapshot.term_index.items():
        c = counts.get(term)
        if c:
            vector[idx] = (c / max_count) * snapshot.idf.get(term, 0.0)
    return vector


def one_hot(ids: Iterable[int], index: Dict[int, int]) -> List[float]:
    vector = [0.0] * len(index)
    for i in ids:
        pos = index.get(i)
        if pos is not None:
            vector[pos] = 1.0
    return vector


class ContentVectorizer:
    """
    ContentItem → ContentVector.
    vocabulary/IDF 는 VocabularyCache 스냅샷을 사용하고, 결과는 loader 에 저장한다.

    advanced=True 이면 고급 분석기 (stemming + n-gram, sublinear TF, L2) 를 먼저 쓰고,
    실패하면 기본 TF-IDF, 그것도 실패하면 영벡터.
    """

    def __init__(
        self,
        loader,
        vocabulary: VocabularyCache,
        max_age_hours: float = 24.0,
        advanced: bool = False,
    ):
        self.loader = loader
        self.vocabulary = vocabulary
        self.max_age = timedelta(hours=max_age_hours)
        self.advanced = advanced

    # ------------------------------------------------------
    # 단건 벡터화
    # ------------------------------------------------------
    def vectorize(
        self,
        item: ContentItem,
        snapshot: Optional[VocabularySnapshot] = None,
        now: Optional[datetime] = None,
    ) -> ContentVector:
        snapshot = snapshot or self.vocabulary.get()
        now = now or datetime.utcnow()
        try:
            return self._build_vector(item, snapshot, now)
        except VectorizationError as e:
            # 벡터화 실패가 추천을 막으면 안 됨 → 영벡터
            logger.error(f"[Vectorizer] item_id={item.item_id} vectorization failed: {e}")
            return self.zero_vector(item.item_id, snapshot, now)

    def _content_features(self, item: ContentItem, snapshot: VocabularySnapshot) -> Tuple[List[float], str]:
        if self.advanced:
            try:
                vector = advanced_tfidf_vector(analyze(item.combined_text), snapshot.advanced_index, snapshot.advanced_idf)
                return vector, "advanced"
            except Exception as e:
                logger.warning(f"[Vectorizer] advanced TF-IDF failed for item_id={item.item_id}, falling back to basic: {e}")
        return tfidf_vector(tokenize(item.combined_text), snapshot), "basic"

    def _build_vector(self, item: ContentItem, snapshot: VocabularySnapshot, now: datetime) -> ContentVector:
        try:
            content_vector, analyzer = self._content_features(item, snapshot)
            return ContentVector(
                item_id=item.item_id,
                content_vector=content_vector,
                category_vector=one_hot(item.category_ids, snapshot.category_index),
                tag_vector=one_hot(item.tag_ids, snapshot.tag_index),
                length_normalized=min(item.char_length / LENGTH_NORMALIZER, 1.0),
                readability_score=readability_score(item.plain_body),
                engagement_score=engagement_from_counters(item),
                computed_at=now,
                model_version=MODEL_VERSION,
                vocabulary_version=snapshot.version,
                analyzer=analyzer,
            )
        except Exception as e:
            raise VectorizationError(f"item_id={item.item_id}: {e}") from e

    @staticmethod
    def zero_vector(item_id: int, snapshot: VocabularySnapshot, now: Optional[datetime] = None) -> ContentVector:
        return ContentVector(
            item_id=item_id,
            content_vector=[0.0] * snapshot.size,
            category_vector=[0.0] * len(snapshot.category_ids),
            tag_vector=[0.0] * len(snapshot.tag_ids),
            computed_at=now or datetime.utcnow(),
            model_version=MODEL_VERSION,
            vocabulary_version=snapshot.version,
        )

    @staticmethod
    def _content_size(vector: ContentVector, snapshot: VocabularySnapshot) -> int:
        if vector.analyzer == "advanced":
            return len(snapshot.advanced_terms)
        return snapshot.size

    def is_stale(self, vector: Optional[ContentVector], snapshot: VocabularySnapshot, now: datetime) -> bool:
        if vector is None or vector.computed_at is None:
            return True
        if now - vector.computed_at > self.max_age:
            return True
        # universe 가 바뀌면 길이/순서가 달라지므로 다시 계산
        return (
            vector.vocabulary_version != snapshot.version
            or len(vector.content_vector) != self._content_size(vector, snapshot)
            or len(vector.category_vector) != len(snapshot.category_ids)
            or len(vector.tag_vector) != len(snapshot.tag_ids)
        )

    def get_or_compute(
        self,
        item: ContentItem,
        snapshot: Optional[VocabularySnapshot] = None,
        now: Optional[datetime] = None,
    ) -> ContentVector:
        snapshot = snapshot or self.vocabulary.get()
        now = now or datetime.utcnow()
        vector = self.loader.get_vector(item.item_id)
        if not self.is_stale(vector, snapshot, now):
            return vector
        vector = self.vectorize(item, snapshot, now)
        self._save(vector)
        return vector

    def get_or_compute_many(
        self,
        items: Sequence[ContentItem],
        snapshot: Optional[VocabularySnapshot] = None,
        now: Optional[datetime] = None,
    ) -> Dict[int, ContentVector]:
        snapshot = snapshot or self.vocabulary.get()
        now = now or datetime.utcnow()
        stored = self.loader.get_vectors([it.item_id for it in items])

        vectors: Dict[int, ContentVector] = {}
        computed = 0
        for it in items:
            vec = stored.get(it.item_id)
            if self.is_stale(vec, snapshot, now):
                vec = self.vectorize(it, snapshot, now)
                self._save(vec)
                computed += 1
            vectors[it.item_id] = vec

        if computed:
            logger.info(f"[Vectorizer] lazily vectorized {computed}/{len(items)} items (vocab v{snapshot.version})")
        return vectors

    def _save(self, vector: ContentVector) -> None:
        try:
            self.loader.save_vector(vector)
        except Exception as e:
            logger.error(f"[Vectorizer] failed to persist vector item_id={vector.item_id}: {e}")

    # ------------------------------------------------------
    # 배치 재계산
    # ------------------------------------------------------
    def batch_revectorize(self, force: bool = False, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        누락/만료된 벡터를 다시 계산한다. 항목별 실패는 로그만 남기고 계속 진행.
        """
        now = now or datetime.utcnow()
        self.vocabulary.invalidate()
        snapshot = self.vocabulary.get()

        items = self.loader.get_published_items()
        stored = self.loader.get_vectors([it.item_id for it in items])

        summary = {"processed": 0, "failed": 0, "skipped": 0, "vocabulary_version": snapshot.version}
        for it in items:
            if not force and not self.is_stale(stored.get(it.item_id), snapshot, now):
                summary["skipped"] += 1
                continue
            try:
                vector = self._build_vector(it, snapshot, now)
                self.loader.save_vector(vector)
                summary["processed"] += 1
            except Exception as e:
                summary["failed"] += 1
                logger.error(f"[Vectorizer] batch item_id={it.item_id} failed: {e}")

        logger.info(
            f"[Vectorizer] batch done: processed={summary['processed']}, "
            f"failed={summary['failed']}, skipped={summary['skipped']}"
        )
        return summary
