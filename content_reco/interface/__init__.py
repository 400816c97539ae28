from .api_interface import (
    compare_sources,
    configure,
    ensure_storage,
    evaluate_metrics,
    get_precomputed_recommendations,
    get_profile_insights,
    get_recommendations,
    log_interaction,
    ping,
    recompute_profiles,
    revectorize_content,
)

__all__ = [
    "compare_sources",
    "configure",
    "ensure_storage",
    "evaluate_metrics",
    "get_precomputed_recommendations",
    "get_profile_insights",
    "get_recommendations",
    "log_interaction",
    "ping",
    "recompute_profiles",
    "revectorize_content",
]
