import time

import pytest

from content_reco.config import RecommendationSettings
from content_reco.data.memory_loader import InMemoryDataLoader
from content_reco.errors import InvalidIdentityError, InvalidLimitError, RecommendationRequestError
from content_reco.models.data_models import Identity, InteractionKind, ScoredCandidate
from content_reco.service import pipeline
from content_reco.service.pipeline import RecommendationEngine
from content_reco.strategies import ContentBasedStrategy, ScoringStrategy

from .conftest import NOW, make_record


class ExplodingStrategy(ScoringStrategy):
    name = "personalized"

    def score(self, ctx):
        raise RuntimeError("model exploded")


class SlowStrategy(ScoringStrategy):
    name = "collaborative"

    def score(self, ctx):
        time.sleep(0.5)
        return [ScoredCandidate(item=c, score=1.0, source=self.name, reason="slow") for c in ctx.candidates]


@pytest.mark.parametrize("limit", [0, 21, -3, "5", 2.5, True])
def test_invalid_limit_rejected(engine, visitor, loader, limit):
    with pytest.raises(InvalidLimitError):
        engine.recommend(visitor, limit=limit)
    assert loader.find_interactions() == []


def test_missing_identity_rejected(engine):
    with pytest.raises(InvalidIdentityError):
        engine.recommend(Identity(), limit=5)
    with pytest.raises(RecommendationRequestError):
        engine.recommend(None)


def test_empty_candidate_pool_returns_empty_result(settings, visitor):
    engine = RecommendationEngine(InMemoryDataLoader(), settings, clock=lambda: NOW)
    result = engine.recommend(visitor, context_item_id=1, limit=5)
    assert result.items == []
    assert result.to_frontend_dict()["count"] == 0


def test_zero_history_uses_only_content_and_trending(engine, visitor):
    result = engine.recommend(visitor, context_item_id=1, limit=10)

    assert len(result.items) > 0
    for rec in result.items:
        assert set(rec.sources) <= {"content_based", "trending"}
    assert {"collaborative", "personalized"} <= set(result.skipped_strategies)


def test_results_are_ranked_and_exclude_context(engine, visitor):
    result = engine.recommend(visitor, context_item_id=1, limit=10)
    scores = [r.combined_score for r in result.items]
    ids = [r.item.item_id for r in result.items]

    assert scores == sorted(scores, reverse=True)
    assert 1 not in ids
    assert 5 not in ids  # draft
    assert len(set(ids)) == len(ids)
    assert ids[0] == 2


def test_limit_is_respected(engine, visitor):
    assert len(engine.recommend(visitor, context_item_id=1, limit=1).items) == 1


def test_impressions_logged_once_and_cache_hit(engine, visitor, loader):
    first = engine.recommend(visitor, context_item_id=1, limit=3)
    second = engine.recommend(visitor, context_item_id=1, limit=3)

    assert not first.from_cache
    assert second.from_cache
    assert [r.item.item_id for r in second.items] == [r.item.item_id for r in first.items]
    assert len(loader.find_interactions(impressions=True)) == len(first.items)


def test_cache_disabled_regenerates(loader, visitor):
    settings = RecommendationSettings(cache_enabled=False)
    engine = RecommendationEngine(loader, settings, clock=lambda: NOW)
    engine.recommend(visitor, context_item_id=1, limit=3)
    assert not engine.recommend(visitor, context_item_id=1, limit=3).from_cache
    engine.precompute(visitor, limit=5)
    assert not engine.precompute(visitor, limit=5).from_cache
    assert len(engine.precompute_cache) == 0


def test_failing_strategy_is_skipped(loader, settings, visitor):
    engine = RecommendationEngine(
        loader,
        settings,
        strategies=[ContentBasedStrategy(), ExplodingStrategy()],
        clock=lambda: NOW,
    )
    result = engine.recommend(visitor, context_item_id=1, limit=5)
    assert "personalized" in result.skipped_strategies
    assert all(rec.sources == ["content_based"] for rec in result.items)
    assert result.items


def test_slow_strategy_times_out(loader, visitor):
    settings = RecommendationSettings(strategy_timeout=0.05)
    engine = RecommendationEngine(
        loader,
        settings,
        strategies=[SlowStrategy()],
        clock=lambda: NOW,
    )
    result = engine.recommend(visitor, limit=5)
    assert result.skipped_strategies == ["collaborative"]
    assert result.items == []


def test_disabled_strategy_is_skipped(loader, visitor):
    settings = RecommendationSettings()
    settings.enabled_strategies["trending"] = False
    engine = RecommendationEngine(loader, settings, clock=lambda: NOW)
    result = engine.recommend(visitor, context_item_id=1, limit=5)
    assert "trending" in result.skipped_strategies
    assert all("trending" not in rec.sources for rec in result.items)


def test_profile_enables_personalized_and_collaborative(engine, loader):
    me = Identity(account_id=7)
    twin = Identity(account_id=8)
    for identity in (me, twin):
        engine.profile_store.apply_interaction(
            make_record(2, kind=InteractionKind.LIKE, identity=identity, time_spent_seconds=90),
            now=NOW,
        )
    loader.append_interactions([
        make_record(2, kind=InteractionKind.LIKE, identity=twin, implicit_rating=2.0),
    ])

    result = engine.recommend(me, limit=5)
    sources = {s for rec in result.items for s in rec.sources}
    assert "personalized" in sources
    assert "collaborative" in sources
    assert "content_based" in result.skipped_strategies


def test_precompute_skips_context_and_impressions(engine, visitor, loader):
    result = engine.precompute(visitor, limit=5)
    assert "content_based" not in {s for rec in result.items for s in rec.sources}
    assert loader.find_interactions(impressions=True) == []
    assert engine.precompute(visitor, limit=5).from_cache


def test_result_serialization(engine, visitor):
    payload = engine.recommend(visitor, context_item_id=1, limit=3).to_frontend_dict()
    assert payload["session_id"] == "sess-abc"
    assert payload["count"] == len(payload["results"])
    first = payload["results"][0]
    assert {"id", "title", "score", "source", "sources", "reason", "metadata"} <= set(first)
    assert "pre_penalty_score" in first["metadata"]
    assert 0.0 <= first["metadata"]["confidence"] <= 100.0
    explanation = first["metadata"]["explanation"]
    assert explanation["algorithm"] in {"content_based", "trending", "hybrid"}
    assert explanation["confidence_breakdown"]["level"] in {"high", "medium", "low", "exploratory"}


def test_explanations_can_be_disabled(loader, visitor):
    engine = RecommendationEngine(loader, RecommendationSettings(include_explanations=False), clock=lambda: NOW)
    result = engine.recommend(visitor, context_item_id=1, limit=3)
    assert result.items
    assert all("explanation" not in rec.metadata for rec in result.items)


def test_explanation_failure_does_not_break_recommendation(engine, visitor, monkeypatch):
    def boom(rec, profile, now):
        raise RuntimeError("no words")

    monkeypatch.setattr(pipeline, "explain", boom)
    result = engine.recommend(visitor, context_item_id=1, limit=3)
    assert result.items
    assert all(rec.metadata["explanation"] is None for rec in result.items)
