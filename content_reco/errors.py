"""추천 코어에서 호출자에게 노출되는 예외."""


class ContentRecoError(Exception):
    pass


class RecommendationRequestError(ContentRecoError, ValueError):
    """잘못된 추천 요청 (부작용 없이 즉시 거절)."""


class InvalidIdentityError(RecommendationRequestError):
    pass


class InvalidLimitError(RecommendationRequestError):
    pass


class InvalidInteractionError(ContentRecoError, ValueError):
    """알 수 없는 interaction kind 또는 범위를 벗어난 값."""


class VectorizationError(ContentRecoError):
    pass


class ProfileUpdateError(ContentRecoError):
    pass
