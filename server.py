"""
콘텐츠 추천 서버 - FastAPI 메인 파일.

콘텐츠 유사도 / 협업 / 개인화 / 트렌딩 4개 전략을 합산한 추천 API와
상호작용 로그, 방문자 인사이트, 유지보수 배치, 오프라인 지표를 제공합니다.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from content_reco import MODEL_VERSION
from content_reco.errors import InvalidInteractionError, RecommendationRequestError
from content_reco.interface.api_interface import (
    compare_sources,
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

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# --- Schemas ---


class RecommendedItemOut(BaseModel):
    """개별 추천 아이템"""
    id: int
    title: Optional[str] = None
    excerpt: Optional[str] = None
    categories: List[int] = []
    tags: List[int] = []
    publishedAt: Optional[str] = None
    score: float
    source: str
    sources: List[str] = []
    reason: str = ""
    metadata: Dict[str, Any] = {}


class RecommendationResponse(BaseModel):
    """추천 API 응답"""
    account_id: Optional[int] = None
    session_id: Optional[str] = None
    context_item_id: Optional[int] = None
    count: int
    results: List[RecommendedItemOut]
    generated_at: Optional[str] = None
    from_cache: bool = False
    skipped_strategies: List[str] = []


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str
    service: str
    version: str
    storage: str


class InteractionRequest(BaseModel):
    """상호작용 로그 요청"""
    item_id: int
    interaction_type: str = "view"
    account_id: Optional[int] = None
    session_id: Optional[str] = None
    time_spent_seconds: Optional[float] = None
    scroll_percentage: Optional[float] = None
    completed_reading: bool = False
    recommendation_source: Optional[str] = None
    recommendation_position: Optional[int] = None
    recommendation_score: Optional[float] = None


class InteractionResponse(BaseModel):
    """상호작용 로그 응답"""
    ok: bool
    interaction_id: str
    engagement_score: float
    implicit_rating: float
    anomaly: Optional[Dict[str, Any]] = None


# --- Lifespan ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 시작 및 종료"""
    logger.info("[Startup] Content Recommendation Server starting...")

    try:
        logger.info("[Startup] Checking storage and indexes...")
        ensure_storage()
        logger.info(f"[Startup] Storage ready: {ping()}")
    except Exception as e:
        logger.warning(f"[Startup] Storage warmup failed (will retry on first request): {e}")

    yield

    logger.info("[Shutdown] Content Recommendation Server shutting down...")


app = FastAPI(
    title="Content Recommendation Server",
    description="콘텐츠 / 협업 / 개인화 / 트렌딩 하이브리드 추천 API",
    version=MODEL_VERSION,
    lifespan=lifespan,
)


# --- API Endpoints ---


@app.get("/")
def root():
    """루트 엔드포인트"""
    return {
        "message": "Content Recommendation Server",
        "version": MODEL_VERSION,
        "endpoints": [
            "/health",
            "/recommendations",
            "/recommendations/precomputed",
            "/recommendations/interactions",
            "/profiles/insights",
            "/maintenance/vectors",
            "/maintenance/profiles",
            "/metrics",
            "/metrics/ab",
        ],
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """헬스 체크"""
    try:
        storage = "ok" if ping() else "unavailable"
    except Exception as e:
        logger.warning(f"[API] Health storage check failed: {e}")
        storage = "unavailable"
    return HealthResponse(
        status="ok",
        service="content-recommendation",
        version=MODEL_VERSION,
        storage=storage,
    )


@app.get("/recommendations", response_model=RecommendationResponse)
def recommendations(
    account_id: Optional[int] = Query(None, description="로그인 사용자 ID"),
    session_id: Optional[str] = Query(None, description="세션 ID (비로그인 방문자)"),
    context_item_id: Optional[int] = Query(None, description="현재 보고 있는 아이템 ID"),
    limit: Optional[int] = Query(None, description="추천 개수 (1~20, 기본 10)"),
):
    """
    하이브리드 추천.

    1. 게시된 아이템 중 후보 선정 (context 아이템 제외)
    2. 4개 전략 병렬 실행 후 가중 합산
    3. 같은 카테고리 반복에 다양성 페널티
    4. 상위 limit 개 반환 + 노출 로그 기록
    """
    try:
        logger.info(
            f"[API] Recommendations: account_id={account_id}, session_id={session_id}, "
            f"context_item_id={context_item_id}, limit={limit}"
        )
        result = get_recommendations(
            account_id=account_id,
            session_id=session_id,
            context_item_id=context_item_id,
            limit=limit,
        )
        logger.info(f"[API] Returned {result['count']} recommendations")
        return result

    except RecommendationRequestError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"[API] Recommendation error: {e}")
        raise HTTPException(status_code=500, detail=f"추천 생성 실패: {str(e)}")


@app.get("/recommendations/precomputed", response_model=RecommendationResponse)
def precomputed_recommendations(
    account_id: Optional[int] = Query(None, description="로그인 사용자 ID"),
    session_id: Optional[str] = Query(None, description="세션 ID (비로그인 방문자)"),
    limit: int = Query(20, description="추천 개수 (1~20)"),
):
    """
    컨텍스트 아이템 없는 프로필 / 트렌딩 기반 추천 (30분 캐시, 노출 로그 없음).
    """
    try:
        return get_precomputed_recommendations(account_id=account_id, session_id=session_id, limit=limit)
    except RecommendationRequestError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"[API] Precomputed recommendation error: {e}")
        raise HTTPException(status_code=500, detail=f"사전 추천 생성 실패: {str(e)}")


@app.post("/recommendations/interactions", response_model=InteractionResponse)
def interactions(request: InteractionRequest):
    """
    상호작용 로그 기록.

    조회 / 클릭 / 좋아요 / 북마크 / 공유 / 댓글 / 추천 클릭 시 호출.
    engagement_score, implicit_rating 을 계산해서 반환하고 프로필을 바로 갱신합니다.
    """
    try:
        logger.info(
            f"[API] Interaction log: item_id={request.item_id}, type={request.interaction_type}, "
            f"account_id={request.account_id}, session_id={request.session_id}"
        )
        result = log_interaction(
            item_id=request.item_id,
            interaction_type=request.interaction_type,
            account_id=request.account_id,
            session_id=request.session_id,
            time_spent_seconds=request.time_spent_seconds,
            scroll_percentage=request.scroll_percentage,
            completed_reading=request.completed_reading,
            recommendation_source=request.recommendation_source,
            recommendation_position=request.recommendation_position,
            recommendation_score=request.recommendation_score,
        )
        logger.info(
            f"[API] Interaction logged: interaction_id={result['interaction_id']}, "
            f"engagement={result['engagement_score']}"
        )
        return InteractionResponse(**result)

    except InvalidInteractionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"[API] Interaction log error: {e}")
        raise HTTPException(status_code=500, detail=f"상호작용 로그 실패: {str(e)}")


@app.get("/profiles/insights")
def profile_insights(
    account_id: Optional[int] = Query(None, description="로그인 사용자 ID"),
    session_id: Optional[str] = Query(None, description="세션 ID (비로그인 방문자)"),
):
    """방문자 프로필 요약 (상위 카테고리, 세그먼트, 읽기 패턴)"""
    try:
        return get_profile_insights(account_id=account_id, session_id=session_id)
    except RecommendationRequestError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"[API] Insights error: {e}")
        raise HTTPException(status_code=500, detail=f"인사이트 조회 실패: {str(e)}")


@app.post("/maintenance/vectors")
def maintenance_vectors(force: bool = Query(False, description="모든 아이템 강제 재계산")):
    """누락 / 만료된 콘텐츠 벡터 재계산"""
    try:
        logger.info(f"[API] Revectorize: force={force}")
        return revectorize_content(force=force)
    except Exception as e:
        logger.error(f"[API] Revectorize error: {e}")
        raise HTTPException(status_code=500, detail=f"벡터 재계산 실패: {str(e)}")


@app.post("/maintenance/profiles")
def maintenance_profiles(
    max_age_hours: float = Query(24.0, gt=0, description="이보다 오래된 프로필만 재계산"),
):
    """오래된 방문자 프로필 전체 재계산"""
    try:
        logger.info(f"[API] Recompute profiles: max_age_hours={max_age_hours}")
        return recompute_profiles(max_age_hours=max_age_hours)
    except Exception as e:
        logger.error(f"[API] Profile recompute error: {e}")
        raise HTTPException(status_code=500, detail=f"프로필 재계산 실패: {str(e)}")


@app.get("/metrics")
def metrics(
    k: int = Query(10, ge=1, le=100, description="Precision/Recall/NDCG 의 K"),
    days: int = Query(7, ge=1, le=365, description="집계 기간(일)"),
):
    """오프라인 추천 지표 리포트 (5분 캐시)"""
    try:
        return evaluate_metrics(k=k, days=days)
    except Exception as e:
        logger.error(f"[API] Metrics error: {e}")
        raise HTTPException(status_code=500, detail=f"지표 계산 실패: {str(e)}")


@app.get("/metrics/ab")
def metrics_ab(
    variant_a: str = Query(..., description="비교할 추천 source A"),
    variant_b: str = Query(..., description="비교할 추천 source B"),
    days: int = Query(7, ge=1, le=365, description="집계 기간(일)"),
):
    """두 추천 source 의 참여도 / 완독률 비교"""
    try:
        return compare_sources(variant_a, variant_b, days=days)
    except Exception as e:
        logger.error(f"[API] A/B metrics error: {e}")
        raise HTTPException(status_code=500, detail=f"A/B 비교 실패: {str(e)}")
