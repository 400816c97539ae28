from datetime import datetime, timedelta
from typing import List, Optional

from ..models.data_models import ContentItem


def get_mock_items(now: Optional[datetime] = None) -> List[ContentItem]:
    now = now or datetime.utcnow()
    return [
        ContentItem(
            item_id=1,
            title="Kitchen renovation tips",
            excerpt="Plan the budget before the first cabinet comes down.",
            body="<p>Kitchen renovation starts with layout. Measure twice. Pick durable counters.</p>",
            category_ids=[1],
            tag_ids=[10, 11],
            published_at=now - timedelta(days=3),
            views_count=820,
            likes_count=64,
            comments_count=12,
            bookmarks_count=20,
        ),
        ContentItem(
            item_id=2,
            title="Kitchen remodel guide",
            excerpt="A step by step kitchen remodel checklist.",
            body="<p>Remodel the kitchen in phases. Cabinets first, then counters and lighting!</p>",
            category_ids=[1],
            tag_ids=[10],
            published_at=now - timedelta(days=2),
            views_count=410,
            likes_count=30,
            comments_count=4,
            bookmarks_count=9,
        ),
        ContentItem(
            item_id=3,
            title="Garden lighting ideas",
            excerpt="Solar lamps, string lights and path markers.",
            body="<p>Garden lighting changes how a yard feels at night. Start with paths.</p>",
            category_ids=[2],
            tag_ids=[12],
            published_at=now - timedelta(days=1),
            views_count=1500,
            likes_count=140,
            comments_count=60,
            bookmarks_count=33,
        ),
        ContentItem(
            item_id=4,
            title="Budget bathroom refresh",
            excerpt="Small changes with a big visual payoff.",
            body="<p>Swap fixtures, regrout tiles and repaint. A bathroom refresh can be cheap.</p>",
            category_ids=[3],
            tag_ids=[11],
            published_at=now - timedelta(hours=6),
            views_count=95,
            likes_count=7,
            comments_count=1,
            bookmarks_count=2,
        ),
        ContentItem(
            item_id=5,
            title="Draft: upcoming tool reviews",
            body="<p>Not ready yet.</p>",
            category_ids=[4],
            status="draft",
        ),
    ]
