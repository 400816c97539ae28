import logging

from .data.memory_loader import InMemoryDataLoader
from .data.mock_data import get_mock_items
from .interface.api_interface import configure, get_recommendations, log_interaction


def demo_recommendations(session_id: str = "demo-session"):
    configure(InMemoryDataLoader(get_mock_items()))

    print(f"=== Session {session_id} Recommendations (cold start) ===")
    for r in get_recommendations(session_id=session_id, context_item_id=1, limit=3)["results"]:
        print(f"{r['title']} (score={r['score']:.4f}, source={r['source']})")

    log_interaction(item_id=1, interaction_type="like", session_id=session_id, time_spent_seconds=180)
    log_interaction(
        item_id=2,
        interaction_type="view",
        session_id=session_id,
        time_spent_seconds=240,
        scroll_percentage=95,
        completed_reading=True,
    )

    print(f"=== Session {session_id} Recommendations (after interactions) ===")
    for r in get_recommendations(session_id=session_id, limit=3)["results"]:
        print(f"{r['title']} (score={r['score']:.4f}, sources={r['sources']})")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    demo_recommendations()
