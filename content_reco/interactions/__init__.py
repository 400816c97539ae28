from .interaction_log import InteractionLog
from .signals import compute_engagement_score, compute_implicit_rating

__all__ = ["InteractionLog", "compute_engagement_score", "compute_implicit_rating"]
