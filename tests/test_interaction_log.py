from datetime import timedelta

import pytest

from content_reco.errors import InvalidInteractionError
from content_reco.interactions import InteractionLog, compute_engagement_score, compute_implicit_rating
from content_reco.models.data_models import Identity, InteractionKind

from .conftest import NOW, make_record


def test_engagement_score_formula():
    score = compute_engagement_score({
        "kind": InteractionKind.LIKE,
        "time_spent_seconds": 180,
        "scroll_percentage": 100,
    })
    # 0.3*0.6 + 0.3*1 + 0.2*1 + 0.2
    assert score == pytest.approx(0.88)
    assert compute_engagement_score({"kind": "view"}) == pytest.approx(0.03)


def test_engagement_score_is_capped():
    score = compute_engagement_score({
        "kind": InteractionKind.COMMENT,
        "time_spent_seconds": 10000,
        "scroll_percentage": 100,
    })
    assert score == 1.0


def test_implicit_rating_formula():
    rating = compute_implicit_rating({
        "kind": InteractionKind.LIKE,
        "time_spent_seconds": 180,
        "scroll_percentage": 100,
        "completed_reading": True,
    })
    # 0.8 + min(0.6, 0.5) + 0.3 + 0.3
    assert rating == pytest.approx(1.9)


def test_build_record_derives_signals(loader, visitor):
    log = InteractionLog(loader)
    record = log.build_record(visitor, 1, "bookmark", time_spent_seconds=90, scroll_percentage=50, now=NOW)
    assert record.kind == InteractionKind.BOOKMARK
    assert record.profile_key == "session:sess-abc"
    assert record.engagement_score > 0
    assert record.implicit_rating > 0
    assert record.interaction_id
    assert record.created_at == NOW


@pytest.mark.parametrize(
    "kwargs",
    [
        {"kind": "teleport"},
        {"kind": "view", "time_spent_seconds": -1},
        {"kind": "view", "scroll_percentage": 120},
        {"kind": "view", "recommendation_position": 0},
        {"kind": "view", "recommendation_source": "magic"},
    ],
)
def test_invalid_interactions_rejected_without_side_effects(loader, visitor, kwargs):
    log = InteractionLog(loader)
    kind = kwargs.pop("kind")
    with pytest.raises(InvalidInteractionError):
        log.record(visitor, 1, kind, **kwargs)
    assert loader.find_interactions() == []


def test_missing_identity_rejected(loader):
    with pytest.raises(InvalidInteractionError):
        InteractionLog(loader).build_record(Identity(), 1, "view")


def test_record_impressions_marks_rows(loader, visitor, engine):
    result = engine.recommend(visitor, context_item_id=1, limit=3)
    rows = loader.find_interactions(impressions=True)
    assert len(rows) == len(result.items)
    assert [r.recommendation_position for r in rows] == list(range(1, len(rows) + 1))
    assert all(r.kind == InteractionKind.VIEW for r in rows)
    assert rows[0].recommendation_context["algorithm"] == result.items[0].source


def test_impression_context_does_not_share_result_metadata(loader, visitor, engine):
    result = engine.recommend(visitor, context_item_id=1, limit=3)
    row = loader.find_interactions(impressions=True)[0]
    assert row.recommendation_context["metadata"] == result.items[0].metadata

    result.items[0].metadata["confidence"] = -1.0
    assert row.recommendation_context["metadata"]["confidence"] != -1.0


def test_recent_engagement_excludes_impressions_and_old_rows(loader):
    loader.append_interactions([
        make_record(1, engagement_score=0.8),
        make_record(1, engagement_score=0.4),
        make_record(1, engagement_score=0.0, impression=True, recommendation_source="trending"),
        make_record(2, engagement_score=0.9, created_at=NOW - timedelta(days=10)),
    ])
    avg = InteractionLog(loader).recent_engagement_by_item([1, 2], days=7, now=NOW)
    assert avg == {1: pytest.approx(0.6)}
