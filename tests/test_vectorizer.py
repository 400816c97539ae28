import math
from datetime import timedelta

import pytest

from content_reco.data.memory_loader import InMemoryDataLoader
from content_reco.errors import VectorizationError
from content_reco.models.data_models import ContentItem
from content_reco.strategies import ContentBasedStrategy, StrategyContext
from content_reco.vectorizer import ContentVectorizer, VocabularyCache, cosine_similarity
from content_reco.vectorizer import content_vectorizer
from content_reco.vectorizer.advanced_tfidf import build_advanced_vocabulary
from content_reco.vectorizer.vocabulary import build_snapshot, compute_idf

from .conftest import NOW


def _kitchen_items():
    return [
        ContentItem(item_id=1, title="kitchen renovation tips", category_ids=[1], published_at=NOW - timedelta(days=3)),
        ContentItem(item_id=2, title="kitchen remodel guide", category_ids=[1], published_at=NOW - timedelta(days=2)),
        ContentItem(item_id=3, title="unrelated topic", category_ids=[9], published_at=NOW - timedelta(days=1)),
    ]


def _vectorizer(loader, **kwargs):
    return ContentVectorizer(loader, VocabularyCache(loader, vocabulary_size=200), **kwargs)


# ------------------------------------------------------
# cosine
# ------------------------------------------------------
def test_cosine_similarity_properties():
    v = [0.2, 0.0, 1.5]
    assert cosine_similarity(v, v) == pytest.approx(1.0)
    assert cosine_similarity(v, [0.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
    sim = cosine_similarity([1.0, 2.0, 0.0], [0.0, 3.0, 4.0])
    assert 0.0 <= sim <= 1.0


# ------------------------------------------------------
# vocabulary / idf
# ------------------------------------------------------
def test_compute_idf_formula():
    df = {"kitchen": 2, "tips": 1}
    assert compute_idf("kitchen", df, 3) == pytest.approx(math.log(3 / 2))
    assert compute_idf("tips", df, 3) == pytest.approx(math.log(3))
    assert compute_idf("missing", df, 3) == 0.0


def test_snapshot_version_is_content_based():
    a = build_snapshot(_kitchen_items(), now=NOW)
    b = build_snapshot(_kitchen_items(), now=NOW + timedelta(hours=5))
    assert a.version == b.version

    changed = _kitchen_items() + [ContentItem(item_id=4, title="garden lighting")]
    assert build_snapshot(changed, now=NOW).version != a.version


def test_vocabulary_cache_rebuilds_after_ttl():
    loader = InMemoryDataLoader(_kitchen_items())
    tick = [0.0]
    cache = VocabularyCache(loader, ttl=10, clock=lambda: tick[0])

    first = cache.get()
    assert cache.get() is first

    tick[0] = 11.0
    assert cache.get() is not first

    cache.invalidate()
    assert cache.current_version == 0


# ------------------------------------------------------
# vectors
# ------------------------------------------------------
def test_tfidf_non_negative_and_sized_to_vocabulary(loader, now):
    vectorizer = _vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()
    for item in loader.get_published_items():
        vec = vectorizer.vectorize(item, snapshot, now)
        assert len(vec.content_vector) == snapshot.size
        assert all(v >= 0.0 for v in vec.content_vector)
        assert len(vec.category_vector) == len(snapshot.category_ids)
        assert 0.0 <= vec.readability_score <= 1.0
        assert 0.0 <= vec.engagement_score <= 1.0


def test_vectorization_is_deterministic(loader, now):
    vectorizer = _vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()
    item = loader.get_item(1)
    assert vectorizer.vectorize(item, snapshot, now) == vectorizer.vectorize(item, snapshot, now)


def test_kitchen_scenario_content_similarity():
    loader = InMemoryDataLoader(_kitchen_items())
    vectorizer = _vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()
    vectors = vectorizer.get_or_compute_many(loader.get_published_items(), snapshot, NOW)

    def score(context_id):
        ctx = StrategyContext(
            candidates=[it for it in loader.get_published_items() if it.item_id != context_id],
            now=NOW,
            limit=10,
            context_item=loader.get_item(context_id),
            context_vector=vectors[context_id],
            candidate_vectors=vectors,
        )
        return {c.item.item_id: c.score for c in ContentBasedStrategy().score(ctx)}

    from_a, from_b = score(1), score(2)
    assert from_a[2] > 0.3
    assert from_b[1] > 0.3
    assert 3 not in from_a and 3 not in from_b

    ctx_vec = vectors[3]
    for other in (1, 2):
        total = (
            0.5 * cosine_similarity(ctx_vec.content_vector, vectors[other].content_vector)
            + 0.3 * cosine_similarity(ctx_vec.category_vector, vectors[other].category_vector)
            + 0.2 * cosine_similarity(ctx_vec.tag_vector, vectors[other].tag_vector)
        )
        assert total < 0.1


def test_vectorize_failure_returns_zero_vector(loader, now, monkeypatch):
    vectorizer = _vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()

    def boom(*args, **kwargs):
        raise RuntimeError("bad body")

    monkeypatch.setattr(content_vectorizer, "readability_score", boom)
    with pytest.raises(VectorizationError):
        vectorizer._build_vector(loader.get_item(1), snapshot, now)
    vec = vectorizer.vectorize(loader.get_item(1), snapshot, now)
    assert vec.is_zero()
    assert len(vec.content_vector) == snapshot.size


def test_staleness_rules(loader, now):
    vectorizer = _vectorizer(loader, max_age_hours=24)
    snapshot = vectorizer.vocabulary.get()
    vec = vectorizer.vectorize(loader.get_item(1), snapshot, now)

    assert vectorizer.is_stale(None, snapshot, now)
    assert not vectorizer.is_stale(vec, snapshot, now + timedelta(hours=23))
    assert vectorizer.is_stale(vec, snapshot, now + timedelta(hours=25))

    vec.vocabulary_version = snapshot.version + 1
    assert vectorizer.is_stale(vec, snapshot, now)


def test_get_or_compute_persists_lazily(loader, now):
    vectorizer = _vectorizer(loader)
    assert loader.get_vector(2) is None
    vec = vectorizer.get_or_compute(loader.get_item(2), now=now)
    assert loader.get_vector(2) == vec


def test_batch_revectorize_counts(loader, now):
    vectorizer = _vectorizer(loader)

    first = vectorizer.batch_revectorize(now=now)
    assert first["processed"] == 4
    assert first["failed"] == 0

    second = vectorizer.batch_revectorize(now=now)
    assert second["processed"] == 0
    assert second["skipped"] == 4

    forced = vectorizer.batch_revectorize(force=True, now=now)
    assert forced["processed"] == 4


# ------------------------------------------------------
# 고급 분석기 (stemming + n-gram)
# ------------------------------------------------------
def _advanced_vectorizer(loader):
    return ContentVectorizer(loader, VocabularyCache(loader, advanced=True), advanced=True)


def test_advanced_vocabulary_document_frequency_filter():
    docs = [["sol", "luna"], ["sol", "mar"], ["sol", "luna"], ["rio"], ["sol"]]
    terms, idf = build_advanced_vocabulary(docs)

    # 1개 문서에만 나온 mar / rio 는 제외, idf 내림차순
    assert terms == ("luna", "sol")
    assert idf["luna"] == pytest.approx(math.log(5 / 2))
    assert idf["sol"] == pytest.approx(math.log(5 / 4))
    assert build_advanced_vocabulary([]) == ((), {})


def test_advanced_vectors_are_l2_normalized(loader, now):
    vectorizer = _advanced_vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()
    assert "kitchen" in snapshot.advanced_terms

    vec = vectorizer.vectorize(loader.get_item(1), snapshot, now)
    assert vec.analyzer == "advanced"
    assert len(vec.content_vector) == len(snapshot.advanced_terms)
    assert math.sqrt(sum(v * v for v in vec.content_vector)) == pytest.approx(1.0)
    assert not vectorizer.is_stale(vec, snapshot, now)


def test_advanced_falls_back_to_basic_tfidf(now):
    loader = InMemoryDataLoader([
        ContentItem(item_id=1, title="alpha beta", category_ids=[1], published_at=now - timedelta(days=1)),
        ContentItem(item_id=2, title="gamma delta", category_ids=[2], published_at=now - timedelta(days=1)),
    ])
    vectorizer = _advanced_vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()
    # 공통 term 이 없으면 고급 vocabulary 가 비어서 실패
    assert snapshot.advanced_terms == ()

    vec = vectorizer.vectorize(loader.get_item(1), snapshot, now)
    assert vec.analyzer == "basic"
    assert len(vec.content_vector) == snapshot.size
    assert not vec.is_zero()


def test_advanced_error_falls_back_to_basic(loader, now, monkeypatch):
    vectorizer = _advanced_vectorizer(loader)
    snapshot = vectorizer.vocabulary.get()

    def boom(*args, **kwargs):
        raise RuntimeError("stemmer crashed")

    monkeypatch.setattr(content_vectorizer, "advanced_tfidf_vector", boom)
    vec = vectorizer.vectorize(loader.get_item(1), snapshot, now)
    assert vec.analyzer == "basic"
    assert any(vec.content_vector)
