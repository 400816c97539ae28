from datetime import datetime, timedelta

import pytest

from content_reco.config import RecommendationSettings
from content_reco.data.memory_loader import InMemoryDataLoader
from content_reco.data.mock_data import get_mock_items
from content_reco.models.data_models import Identity, InteractionKind, InteractionRecord
from content_reco.service.pipeline import RecommendationEngine

# 수요일 정오 (UTC)
NOW = datetime(2024, 5, 15, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return RecommendationSettings()


@pytest.fixture
def loader():
    return InMemoryDataLoader(get_mock_items(NOW))


@pytest.fixture
def engine(loader, settings):
    return RecommendationEngine(loader, settings, clock=lambda: NOW)


@pytest.fixture
def visitor():
    return Identity(session_id="sess-abc")


def make_record(
    item_id,
    kind=InteractionKind.VIEW,
    identity=None,
    created_at=None,
    **kwargs,
):
    identity = identity or Identity(session_id="sess-abc")
    return InteractionRecord(
        item_id=item_id,
        kind=kind,
        account_id=identity.account_id,
        session_id=identity.session_id,
        created_at=created_at or NOW - timedelta(hours=1),
        **kwargs,
    )
