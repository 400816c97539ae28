from datetime import timedelta

import mongomock
import pytest

from content_reco.config import RecommendationSettings
from content_reco.data.data_loader import MongoDataLoader
from content_reco.data.mock_data import get_mock_items
from content_reco.models.data_models import (
    ContentVector,
    Identity,
    InteractionKind,
    ReadingPatterns,
    VisitorProfile,
)
from content_reco.service.pipeline import RecommendationEngine

from .conftest import NOW, make_record


@pytest.fixture
def mongo_loader():
    loader = MongoDataLoader(client=mongomock.MongoClient(), db_name="content_reco_test")
    loader.upsert_items(get_mock_items(NOW))
    return loader


def test_catalog_queries(mongo_loader):
    published = mongo_loader.get_published_items(now=NOW)
    assert [it.item_id for it in published] == [4, 3, 2, 1]
    assert [it.item_id for it in mongo_loader.get_published_items(now=NOW, limit=2, exclude_id=4)] == [3, 2]
    assert mongo_loader.count_published_items() == 4
    assert mongo_loader.get_category_universe() == [1, 2, 3, 4]
    assert mongo_loader.get_tag_universe() == [10, 11, 12]
    assert mongo_loader.get_item(1).title == "Kitchen renovation tips"
    assert mongo_loader.get_item(99) is None
    assert set(mongo_loader.get_items([1, 2, 99])) == {1, 2}


def test_vector_roundtrip(mongo_loader):
    vec = ContentVector(
        item_id=1,
        content_vector=[0.0, 0.5],
        category_vector=[1.0],
        computed_at=NOW,
        vocabulary_version=7,
        analyzer="advanced",
    )
    mongo_loader.save_vector(vec)
    stored = mongo_loader.get_vector(1)
    assert stored.content_vector == [0.0, 0.5]
    assert stored.vocabulary_version == 7
    assert stored.analyzer == "advanced"
    assert stored.computed_at == NOW
    assert set(mongo_loader.get_vectors([1, 2])) == {1}


def test_profile_keys_survive_string_conversion(mongo_loader):
    profile = VisitorProfile(
        profile_key="account:5",
        account_id=5,
        category_preferences={1: 1.0, 3: 0.25},
        reading_patterns=ReadingPatterns(preferred_hours={9: 0.5}),
        updated_at=NOW,
    )
    mongo_loader.save_profile(profile)
    stored = mongo_loader.get_profile("account:5")
    assert stored.category_preferences == {1: 1.0, 3: 0.25}
    assert stored.reading_patterns.preferred_hours == {9: 0.5}

    mongo_loader.save_profile(VisitorProfile(profile_key="session:empty", session_id="empty"))
    keys = [p.profile_key for p in mongo_loader.list_profiles(require_preferences=True)]
    assert keys == ["account:5"]
    assert mongo_loader.list_profiles(exclude_key="account:5")[0].profile_key == "session:empty"


def test_interaction_filters(mongo_loader):
    visitor = Identity(session_id="s1")
    mongo_loader.append_interactions([
        make_record(1, kind=InteractionKind.LIKE, identity=visitor),
        make_record(2, identity=visitor, impression=True, recommendation_source="trending"),
        make_record(3, identity=Identity(account_id=2), created_at=NOW - timedelta(days=20)),
    ])

    assert len(mongo_loader.find_interactions()) == 3
    mine = mongo_loader.find_interactions(profile_keys=["session:s1"], impressions=False)
    assert [r.item_id for r in mine] == [1]
    assert mine[0].kind == InteractionKind.LIKE
    assert [r.item_id for r in mongo_loader.find_interactions(kinds=[InteractionKind.VIEW])] == [3, 2]
    assert len(mongo_loader.find_interactions(since=NOW - timedelta(days=7))) == 2


def test_engine_runs_on_mongo(mongo_loader):
    engine = RecommendationEngine(mongo_loader, RecommendationSettings(), clock=lambda: NOW)
    result = engine.recommend(Identity(session_id="s1"), context_item_id=1, limit=3)
    assert result.items
    assert mongo_loader.get_vector(2) is not None
    assert len(mongo_loader.find_interactions(impressions=True)) == len(result.items)
