from datetime import timedelta

import pytest

from content_reco.metrics import (
    MetricsEvaluator,
    hit_rate,
    mean_average_precision,
    mean_reciprocal_rank,
    ndcg_at_k,
    novelty,
    personalization,
    relevance_score,
)
from content_reco.models.data_models import Identity, InteractionKind

from .conftest import NOW, make_record

CLICK = InteractionKind.RECOMMENDATION_CLICK


def _clicks(engaged_positions, identity=None, source="content_based"):
    rows = []
    for pos in range(1, 11):
        rows.append(
            make_record(
                pos,
                kind=CLICK,
                identity=identity,
                recommendation_source=source,
                recommendation_position=pos,
                engagement_score=0.8 if pos in engaged_positions else 0.2,
            )
        )
    return rows


def _evaluator(loader):
    return MetricsEvaluator(loader, clock=lambda: NOW)


def test_precision_at_10_scenario(loader):
    loader.append_interactions(_clicks({1, 2, 3, 5, 8, 9}))
    assert _evaluator(loader).precision_at_k(k=10) == pytest.approx(0.6)


def test_precision_counts_completed_reading(loader):
    rows = _clicks(set())
    rows[0].completed_reading = True
    loader.append_interactions(rows)
    assert _evaluator(loader).precision_at_k(k=10) == pytest.approx(0.1)


def test_recall_uses_all_engaged_items(loader):
    loader.append_interactions(_clicks({1, 2, 3}))
    loader.append_interactions([make_record(40, engagement_score=0.9)])
    evaluator = _evaluator(loader)
    assert evaluator.recall_at_k(k=10) == pytest.approx(3 / 4)
    assert evaluator.recall_at_k(k=2) == pytest.approx(2 / 4)


def test_empty_log_gives_zero_metrics(loader):
    evaluator = _evaluator(loader)
    assert evaluator.precision_at_k() == 0.0
    assert evaluator.recall_at_k() == 0.0
    assert evaluator.f1_score() == 0.0
    assert evaluator.ndcg_at_k() == 0.0
    assert evaluator.ctr() == 0.0
    assert evaluator.diversity() == 0.0
    assert evaluator.coverage() == 0.0


def test_window_excludes_old_rows(loader):
    old = _clicks({1, 2})
    for r in old:
        r.created_at = NOW - timedelta(days=30)
    loader.append_interactions(old)
    assert _evaluator(loader).precision_at_k(k=10, days=7) == 0.0


def test_metrics_stay_in_unit_range(loader):
    loader.append_interactions(_clicks({1, 4, 7}, identity=Identity(session_id="a")))
    loader.append_interactions(_clicks({2, 3}, identity=Identity(account_id=9)))
    # 같은 position 에 여러 번 클릭
    loader.append_interactions([
        make_record(1, kind=CLICK, recommendation_position=1, engagement_score=1.0, completed_reading=True),
        make_record(2, kind=CLICK, recommendation_position=1, engagement_score=1.0, completed_reading=True),
    ])
    evaluator = _evaluator(loader)
    for value in (evaluator.precision_at_k(), evaluator.recall_at_k(), evaluator.f1_score(), evaluator.ndcg_at_k()):
        assert 0.0 <= value <= 1.0


def test_ndcg_perfect_ordering_is_one():
    rows = [
        make_record(1, kind=CLICK, recommendation_position=1, engagement_score=0.9, completed_reading=True),
        make_record(2, kind=CLICK, recommendation_position=2, engagement_score=0.5),
        make_record(3, kind=CLICK, recommendation_position=3, engagement_score=0.1),
    ]
    assert ndcg_at_k(rows, k=10) == pytest.approx(1.0)
    assert ndcg_at_k(list(reversed(rows)), k=10) == pytest.approx(1.0)

    rows[0].recommendation_position, rows[2].recommendation_position = 3, 1
    assert ndcg_at_k(rows, k=10) < 1.0


def test_ndcg_is_computed_per_session():
    # 같은 계정이라도 세션마다 따로 랭킹을 평가
    rows = [
        make_record(1, kind=CLICK, identity=Identity(account_id=7, session_id="s1"),
                    recommendation_position=1, engagement_score=0.9, completed_reading=True),
        make_record(2, kind=CLICK, identity=Identity(account_id=7, session_id="s2"),
                    recommendation_position=3, engagement_score=0.9, completed_reading=True),
    ]
    assert ndcg_at_k(rows, k=10) == pytest.approx((1.0 + 0.5) / 2)


def test_relevance_score_bonuses():
    record = make_record(1, engagement_score=0.6, completed_reading=True, scroll_percentage=90, time_spent_seconds=200)
    assert relevance_score(record) == pytest.approx(2.6)


def test_ctr_diversity_and_coverage(loader):
    clicks = _clicks({1})[:4]
    clicks.append(make_record(1, kind=CLICK, recommendation_source="trending", recommendation_position=1))
    impressions = [
        make_record(i, impression=True, recommendation_source="trending", recommendation_position=i)
        for i in range(1, 11)
    ]
    loader.append_interactions(clicks + impressions)

    evaluator = _evaluator(loader)
    assert evaluator.ctr() == pytest.approx(5 / 10)
    assert evaluator.diversity() == pytest.approx(4 / 5)
    # 게시 아이템 4개 중 1~4 번이 클릭됨
    assert evaluator.coverage() == pytest.approx(1.0)


def test_performance_by_source_and_ab_test(loader):
    loader.append_interactions(_clicks({1, 2, 3, 4, 5, 6, 7, 8}, source="personalized"))
    loader.append_interactions(_clicks(set(), source="trending"))
    loader.append_interactions([make_record(3, impression=True, recommendation_source="trending")])

    evaluator = _evaluator(loader)
    by_source = evaluator.performance_by_source()
    assert set(by_source) == {"personalized", "trending"}
    assert by_source["trending"]["total_recommendations"] == 10
    assert by_source["personalized"]["avg_engagement"] == pytest.approx(0.68)

    ab = evaluator.ab_test("personalized", "trending")
    assert ab["winner"] == "variant_a"
    assert ab["variant_a"]["sample_size"] == 10

    assert evaluator.ab_test("trending", "trending")["winner"] == "tie"


def test_report_is_rounded_and_cached(loader):
    loader.append_interactions(_clicks({1, 2}))
    evaluator = _evaluator(loader)

    report = evaluator.report(k=5, days=7)
    assert report["k"] == 5
    assert report["days"] == 7
    assert report["generated_at"] == NOW.isoformat()
    assert report["precision_at_k"] == pytest.approx(0.4)
    assert {"recall_at_k", "f1_score", "ndcg_at_k", "ctr", "avg_engagement", "diversity", "coverage"} <= set(report)
    assert {"map_at_k", "mrr", "hit_rate", "novelty", "personalization"} <= set(report)

    loader.append_interactions(_clicks({1, 2, 3, 4, 5}))
    assert evaluator.report(k=5, days=7) is report
    assert evaluator.report(k=10, days=7) is not report


def _impressions(item_ids, identity):
    return [
        make_record(item_id, identity=identity, impression=True, recommendation_source="trending", recommendation_position=pos)
        for pos, item_id in enumerate(item_ids, start=1)
    ]


def _ranking_rows():
    a = Identity(session_id="a")
    b = Identity(session_id="b")
    rows = _impressions([1, 2, 3, 4], a) + _impressions([5, 6, 7, 8], b)
    # a: 2, 4 관련 / b: 관련 없음
    rows += [
        make_record(2, kind=CLICK, identity=a, engagement_score=0.9),
        make_record(4, kind=CLICK, identity=a, completed_reading=True),
        make_record(6, kind=CLICK, identity=b, engagement_score=0.1),
    ]
    return rows


def test_map_mrr_and_hit_rate_per_session():
    rows = _ranking_rows()
    # a: (1/2 + 2/4) / 2 = 0.5, b: 0
    assert mean_average_precision(rows, k=10) == pytest.approx(0.25)
    assert mean_reciprocal_rank(rows, k=10) == pytest.approx(0.25)
    assert hit_rate(rows, k=10) == pytest.approx(0.5)
    # k=1 이면 a 의 리스트는 [1] 뿐
    assert hit_rate(rows, k=1) == 0.0


def test_ranking_metrics_without_impressions_are_zero(loader):
    loader.append_interactions(_clicks({1, 2}))
    evaluator = _evaluator(loader)
    assert evaluator.map_at_k() == 0.0
    assert evaluator.mrr() == 0.0
    assert evaluator.hit_rate() == 0.0
    assert evaluator.novelty() == 0.0
    assert evaluator.personalization() == 0.0


def test_novelty_rewards_less_read_items():
    rows = _ranking_rows()
    # 읽은 세션은 a, b 두 개. 2, 4, 6 은 각각 한 세션 → -log2(1/2) = 1
    # 추천 8개 중 3개만 기여
    assert novelty(rows, k=10) == pytest.approx(3 / 8)


def test_personalization_is_one_minus_jaccard():
    rows = _ranking_rows()
    assert personalization(rows, k=10) == pytest.approx(1.0)

    c = Identity(session_id="c")
    rows += _impressions([1, 2, 5, 6], c)
    # (a,b)=1, (a,c)=1-2/6, (b,c)=1-2/6
    assert personalization(rows, k=10) == pytest.approx((1 + 2 * (1 - 2 / 6)) / 3)
