import threading
from datetime import timedelta

from content_reco.data.memory_loader import InMemoryDataLoader
from content_reco.models.data_models import ContentItem, VisitorProfile

from .conftest import NOW


def _item(item_id):
    return ContentItem(
        item_id=item_id,
        title=f"item {item_id}",
        category_ids=[item_id % 5],
        published_at=NOW - timedelta(hours=1),
    )


def test_catalog_reads_during_concurrent_upserts():
    loader = InMemoryDataLoader([_item(i) for i in range(10)])
    errors = []

    def writer(start):
        for i in range(start, start + 500):
            loader.upsert_items([_item(i)])

    def reader():
        try:
            for _ in range(200):
                loader.get_published_items(now=NOW)
                loader.get_category_universe()
                loader.count_published_items()
                loader.get_items(range(50))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(1000 * (n + 1),)) for n in range(2)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert loader.count_published_items() == 10 + 2 * 500


def test_profile_reads_return_copies(loader):
    loader.save_profile(VisitorProfile(profile_key="session:x", session_id="x", category_preferences={1: 0.5}))
    profile = loader.get_profile("session:x")
    profile.category_preferences[1] = 9.0
    assert loader.get_profile("session:x").category_preferences == {1: 0.5}
