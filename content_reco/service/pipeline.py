from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config import RecommendationSettings, get_settings
from ..errors import InvalidIdentityError, InvalidLimitError
from ..interactions.interaction_log import InteractionLog
from ..models.data_models import Identity, RecommendationResult, ScoredCandidate
from ..profile.profile_store import ProfileStore
from ..strategies import (
    CollaborativeStrategy,
    ContentBasedStrategy,
    PersonalizedStrategy,
    ScoringStrategy,
    StrategyContext,
    TrendingStrategy,
)
from ..vectorizer.content_vectorizer import ContentVectorizer
from ..vectorizer.vocabulary import VocabularyCache
from .cache import TTLCache
from .explain import explain
from .fusion import apply_diversity_penalty, fuse, rank

logger = logging.getLogger(__name__)


class RecommendationEngine:
    """
    후보 선정 → 4개 전략 병렬 실행 → 가중 합산 → 다양성 페널티 → top-N.
    반환된 추천은 노출 로그로 기록되고, 결과는 짧은 TTL 로 캐시된다.
    """

    def __init__(
        self,
        loader,
        settings: Optional[RecommendationSettings] = None,
        vectorizer: Optional[ContentVectorizer] = None,
        profile_store: Optional[ProfileStore] = None,
        interaction_log: Optional[InteractionLog] = None,
        strategies: Optional[Sequence[ScoringStrategy]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.loader = loader
        self.settings = settings or get_settings()
        s = self.settings

        self.vectorizer = vectorizer or ContentVectorizer(
            loader,
            VocabularyCache(
                loader,
                vocabulary_size=s.vocabulary_size,
                ttl=s.vocabulary_ttl,
                advanced=s.advanced_tfidf,
                advanced_vocabulary_size=s.advanced_vocabulary_size,
            ),
            max_age_hours=s.vector_max_age_hours,
            advanced=s.advanced_tfidf,
        )
        self.profile_store = profile_store or ProfileStore(
            loader,
            window_days=s.profile_window_days,
            similar_pool=s.similar_profile_pool,
            similar_limit=s.similar_profile_limit,
            similar_threshold=s.similar_profile_threshold,
        )
        self.interaction_log = interaction_log or InteractionLog(loader)
        self.strategies: List[ScoringStrategy] = list(strategies) if strategies is not None else [
            ContentBasedStrategy(),
            CollaborativeStrategy(self.profile_store, self.interaction_log),
            PersonalizedStrategy(),
            TrendingStrategy(self.interaction_log, window_days=s.trending_window_days),
        ]
        self.clock = clock
        self.cache = TTLCache(ttl_sec=s.cache_ttl)
        self.precompute_cache = TTLCache(ttl_sec=s.precompute_ttl)

    # ------------------------------------------------------
    # 요청 검증
    # ------------------------------------------------------
    def _validate(self, identity: Optional[Identity], limit: Optional[int]) -> int:
        if identity is None or identity.is_empty:
            raise InvalidIdentityError("account_id or session_id is required")
        if limit is None:
            limit = self.settings.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidLimitError(f"limit must be an integer, got {limit!r}")
        if not 1 <= limit <= self.settings.max_limit:
            raise InvalidLimitError(f"limit must be between 1 and {self.settings.max_limit}, got {limit}")
        return limit

    def _cache_key(self, prefix: str, identity: Identity, context_item_id: Optional[int], limit: int) -> str:
        weights = ",".join(f"{k}={v}" for k, v in sorted(self.settings.source_weights.items()))
        return f"{prefix}:{identity.profile_key}:{identity.session_id}:{context_item_id}:{limit}:{weights}"

    # ------------------------------------------------------
    # 공개 API
    # ------------------------------------------------------
    def recommend(
        self,
        identity: Identity,
        context_item_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> RecommendationResult:
        limit = self._validate(identity, limit)
        key = self._cache_key("reco", identity, context_item_id, limit)

        if self.settings.cache_enabled:
            hit = self.cache.get(key)
            if hit is not None:
                logger.info(f"[Engine] cache hit: {key}")
                return dataclasses.replace(hit, from_cache=True)

        now = self.clock()
        result = self._generate(identity, context_item_id, limit, now, self.strategies)

        # 노출 로그 실패가 추천 응답을 막지 않도록
        try:
            self.interaction_log.record_impressions(identity, result.items, now=now)
        except Exception as e:
            logger.error(f"[Engine] failed to log impressions for {identity.profile_key}: {e}")

        if self.settings.cache_enabled:
            self.cache.set(key, result)
        return result

    def precompute(self, identity: Identity, limit: int = 20) -> RecommendationResult:
        """
        컨텍스트 아이템 없이 프로필 + 인기 기반 추천을 미리 계산 (30분 캐시).
        """
        limit = self._validate(identity, limit)
        key = self._cache_key("precomputed", identity, None, limit)
        if self.settings.cache_enabled:
            hit = self.precompute_cache.get(key)
            if hit is not None:
                return dataclasses.replace(hit, from_cache=True)

        strategies = [s for s in self.strategies if not s.requires_context_item]
        result = self._generate(identity, None, limit, self.clock(), strategies)
        if self.settings.cache_enabled:
            self.precompute_cache.set(key, result)
        return result

    def clear_cache(self) -> None:
        self.cache.clear()
        self.precompute_cache.clear()

    # ------------------------------------------------------
    # 생성
    # ------------------------------------------------------
    def _generate(
        self,
        identity: Identity,
        context_item_id: Optional[int],
        limit: int,
        now: datetime,
        strategies: Sequence[ScoringStrategy],
    ) -> RecommendationResult:
        s = self.settings
        logger.info(f"[Engine] recommend: key={identity.profile_key}, context={context_item_id}, limit={limit}")

        candidates = self.loader.get_published_items(now=now, limit=s.candidate_limit, exclude_id=context_item_id)
        if not candidates:
            logger.warning("[Engine] empty candidate pool")
            return RecommendationResult(identity=identity, context_item_id=context_item_id, generated_at=now)

        ctx = StrategyContext(candidates=candidates, now=now, limit=limit)
        ctx.profile = self.profile_store.get(identity)

        needs_vectors = context_item_id is not None and any(st.requires_context_item for st in strategies)
        if needs_vectors:
            ctx.context_item = self.loader.get_item(context_item_id)
            if ctx.context_item is not None:
                snapshot = self.vectorizer.vocabulary.get()
                ctx.context_vector = self.vectorizer.get_or_compute(ctx.context_item, snapshot, now)
                ctx.candidate_vectors = self.vectorizer.get_or_compute_many(candidates, snapshot, now)

        scored, skipped = self._run_strategies(strategies, ctx)

        fused = fuse(scored, s.weight_for)
        diversified = apply_diversity_penalty(fused, s.diversity_penalty)
        final = rank(diversified, limit, s.min_confidence)
        if s.include_explanations:
            self._attach_explanations(final, ctx.profile, now)

        logger.info(
            f"[Engine] candidates={len(candidates)}, scored={len(scored)}, fused={len(fused)}, "
            f"returned={len(final)}, skipped={skipped}"
        )
        return RecommendationResult(
            identity=identity,
            items=final,
            context_item_id=context_item_id,
            generated_at=now,
            skipped_strategies=skipped,
        )

    def _attach_explanations(self, items, profile, now: datetime) -> None:
        for rec in items:
            try:
                rec.metadata["explanation"] = explain(rec, profile, now)
            except Exception as e:
                logger.warning(f"[Engine] explanation failed for item {rec.item.item_id}: {e}")
                rec.metadata["explanation"] = None

    def _run_strategies(
        self,
        strategies: Sequence[ScoringStrategy],
        ctx: StrategyContext,
    ) -> Tuple[List[ScoredCandidate], List[str]]:
        skipped: List[str] = []
        active: List[ScoringStrategy] = []
        for st in strategies:
            if not self.settings.is_enabled(st.name) or not st.is_applicable(ctx):
                skipped.append(st.name)
            else:
                active.append(st)

        if not active:
            return [], skipped

        scored: List[ScoredCandidate] = []
        executor = ThreadPoolExecutor(max_workers=len(active), thread_name_prefix="reco-strategy")
        try:
            futures: Dict = {executor.submit(st.score, ctx): st for st in active}
            done, not_done = wait(futures, timeout=self.settings.strategy_timeout)

            for fut in not_done:
                st = futures[fut]
                fut.cancel()
                skipped.append(st.name)
                logger.warning(f"[Engine] strategy {st.name} timed out after {self.settings.strategy_timeout}s")

            for fut in done:
                st = futures[fut]
                try:
                    scored.extend(fut.result())
                except Exception as e:
                    skipped.append(st.name)
                    logger.error(f"[Engine] strategy {st.name} failed: {e}")
        finally:
            executor.shutdown(wait=False)

        # 스레드 완료 순서와 무관하게 결정적인 순서
        order = {st.name: i for i, st in enumerate(strategies)}
        scored.sort(key=lambda c: (order.get(c.source, len(order)), -c.score, c.item.item_id))
        return scored, skipped
