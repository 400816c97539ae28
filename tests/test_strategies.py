import pytest

from content_reco.interactions import InteractionLog
from content_reco.models.data_models import (
    ContentItem,
    Identity,
    InteractionKind,
    ReadingPatterns,
    VisitorProfile,
)
from content_reco.profile import ProfileStore
from content_reco.strategies import (
    CollaborativeStrategy,
    PersonalizedStrategy,
    StrategyContext,
    TrendingStrategy,
)
from content_reco.strategies.personalized import compute_personal_score

from .conftest import NOW, make_record


def _ctx(candidates, profile=None, limit=10):
    return StrategyContext(candidates=list(candidates), now=NOW, limit=limit, profile=profile)


def test_personalized_prefers_stronger_category():
    profile = VisitorProfile(profile_key="session:p", category_preferences={1: 1.0, 2: 0.2})
    cat1 = ContentItem(item_id=10, title="same", body="same body", category_ids=[1])
    cat2 = ContentItem(item_id=11, title="same", body="same body", category_ids=[2])

    results = PersonalizedStrategy().score(_ctx([cat2, cat1], profile))
    assert [r.item.item_id for r in results] == [10, 11]
    assert results[0].score > results[1].score
    assert results[0].reason == "Matches your favorite categories"


def test_personalized_pattern_and_length_bonus():
    profile = VisitorProfile(
        profile_key="session:p",
        preferred_length="long",
        reading_patterns=ReadingPatterns(preferred_hours={12: 1.0}, preferred_days={3: 1.0}, avg_scroll_depth=80),
    )
    long_item = ContentItem(item_id=1, body="word " * 900)
    total, feats = compute_personal_score(long_item, profile, NOW)
    # 0.5 + 0.3 + 0.2 + 0.15 → 1.0 으로 제한
    assert feats["pattern"] == 1.0
    assert feats["length"] == pytest.approx(1.0 - abs(long_item.char_length - 4000) / 5000)
    assert total == pytest.approx(0.2 * 1.0 + 0.1 * feats["length"])


def test_personalized_needs_profile():
    strategy = PersonalizedStrategy()
    assert not strategy.is_applicable(_ctx([ContentItem(item_id=1)]))


def test_collaborative_scores_items_liked_by_similar_visitors(loader):
    store = ProfileStore(loader)
    me = VisitorProfile(profile_key="session:me", session_id="me", category_preferences={1: 1.0})
    twin = Identity(session_id="twin")
    loader.save_profile(VisitorProfile(profile_key=twin.profile_key, session_id="twin", category_preferences={1: 0.9}))
    loader.append_interactions([
        make_record(2, kind=InteractionKind.LIKE, identity=twin, implicit_rating=1.5),
        make_record(2, kind=InteractionKind.BOOKMARK, identity=twin, implicit_rating=2.5),
        make_record(3, kind=InteractionKind.VIEW, identity=twin, implicit_rating=4.0),
    ])

    strategy = CollaborativeStrategy(store, InteractionLog(loader))
    results = strategy.score(_ctx(loader.get_published_items(), me))

    assert [r.item.item_id for r in results] == [2]
    # 1명 / 1명 × (평균 2.0 / 5)
    assert results[0].score == pytest.approx(0.4)
    assert results[0].metadata["similar_users_liked"] == 1


def test_collaborative_without_neighbours_is_empty(loader):
    me = VisitorProfile(profile_key="session:me", category_preferences={1: 1.0})
    strategy = CollaborativeStrategy(ProfileStore(loader), InteractionLog(loader))
    assert strategy.score(_ctx(loader.get_published_items(), me)) == []


def test_trending_ranks_popular_items(loader):
    results = TrendingStrategy(InteractionLog(loader)).score(_ctx(loader.get_published_items()))
    ids = [r.item.item_id for r in results]
    assert ids[0] == 3
    # 조회수/좋아요가 적은 4번은 최소 점수 미달
    assert 4 not in ids


def test_trending_uses_recent_engagement(loader):
    loader.append_interactions([make_record(4, engagement_score=1.0)])
    results = TrendingStrategy(InteractionLog(loader)).score(_ctx(loader.get_published_items()))
    item4 = next(r for r in results if r.item.item_id == 4)
    assert item4.metadata["recent_engagement"] == 1.0
    assert item4.score > 0.4
