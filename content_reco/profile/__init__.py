from .clustering import SEGMENT_LABELS, classify, segment_label
from .profile_store import ProfileStore, profile_similarity

__all__ = ["ProfileStore", "SEGMENT_LABELS", "classify", "profile_similarity", "segment_label"]
