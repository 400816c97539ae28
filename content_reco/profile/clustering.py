from typing import Dict, Tuple

from ..models.data_models import VisitorProfile

# 세그먼트 id 의미는 아래 임계값에 고정되어 있음 (학습된 모델 아님)
POWER_USER = 0
REGULAR_ENGAGED = 1
CASUAL_RETURNER = 2
EXPLORER = 3
NEW_OR_INACTIVE = 4

SEGMENT_LABELS: Dict[int, str] = {
    POWER_USER: "power_user",
    REGULAR_ENGAGED: "regular_engaged",
    CASUAL_RETURNER: "casual_returner",
    EXPLORER: "explorer",
    NEW_OR_INACTIVE: "new_or_inactive",
}


def assign_cluster(profile: VisitorProfile) -> int:
    engagement = profile.engagement_rate or 0.0
    returns = profile.return_rate or 0.0
    consumed = profile.total_items_consumed or 0

    if engagement > 0.7 and returns > 0.5:
        return POWER_USER
    if engagement > 0.4 and consumed > 10:
        return REGULAR_ENGAGED
    if returns > 0.3:
        return CASUAL_RETURNER
    if consumed > 5:
        return EXPLORER
    return NEW_OR_INACTIVE


def cluster_confidence(profile: VisitorProfile) -> float:
    consumed = profile.total_items_consumed or 0
    if consumed > 50:
        return 0.9
    if consumed > 20:
        return 0.7
    if consumed > 5:
        return 0.5
    return 0.3


def classify(profile: VisitorProfile) -> Tuple[int, float]:
    cluster_id = max(0, min(assign_cluster(profile), NEW_OR_INACTIVE))
    return cluster_id, cluster_confidence(profile)


def segment_label(cluster_id: int) -> str:
    return SEGMENT_LABELS.get(cluster_id, SEGMENT_LABELS[NEW_OR_INACTIVE])
