# app/api/v1/routers/recommendations.py
from fastapi import APIRouter, Body, Depends, HTTPException
from typing import Optional
import time
import logging

from app.api.deps import activity_repo_dep, product_repo_dep, recommendation_service_dep
from app.api.v1.schemas.reco import ActivityIn, GenerateIn
from app.core.config import get_settings
from app.domain.errors import NoRecommendationsAvailable, NotFound, UpstreamUnavailable
from app.domain.models.activity import ActivityRecord
from app.domain.models.recommendation import BatchResult, RecommendationSet, RecommendationView
from app.domain.services.activity_svc import create_user_activity
from app.domain.services.batch_svc import run_batch

logger = logging.getLogger(__name__)

router = APIRouter(prefix=get_settings().api_prefix, tags=["recommendations"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (NotFound, NoRecommendationsAvailable)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, UpstreamUnavailable):
        return HTTPException(status_code=503, detail="Upstream store unavailable")
    return HTTPException(status_code=500, detail="Internal error")


@router.post("/activities", response_model=ActivityRecord, status_code=201)
async def create_activity(
    body: ActivityIn,
    activity_repo = Depends(activity_repo_dep),
    product_repo = Depends(product_repo_dep),
):
    logger.info("Request: create_activity user_id=%s product_id=%s type=%s",
                body.user_id, body.product_id, body.activity_type.value)
    try:
        return await create_user_activity(
            activity_repo,
            product_repo,
            user_id=body.user_id,
            product_id=body.product_id,
            activity_type=body.activity_type,
            metadata=body.metadata,
        )
    except (NotFound, UpstreamUnavailable) as e:
        raise _http_error(e)


@router.get("/users/{user_id}", response_model=RecommendationView)
async def get_user_recommendations(user_id: str, service = Depends(recommendation_service_dep)):
    """
    Current recommendations with product details. Generates on demand.
    The first read marks the set as sent.
    """
    t0 = time.perf_counter()
    try:
        view = await service.get(user_id)
    except (NoRecommendationsAvailable, UpstreamUnavailable) as e:
        raise _http_error(e)
    logger.info("Response: get_user_recommendations user_id=%s count=%s elapsed_time=%.4fs",
                user_id, len(view.products), time.perf_counter() - t0)
    return view


@router.post("/users/{user_id}/generate", response_model=RecommendationSet)
async def generate_user_recommendations(
    user_id: str,
    body: Optional[GenerateIn] = Body(default=None),
    service = Depends(recommendation_service_dep),
):
    preferences = body.preferences.model_dump() if body and body.preferences else None
    logger.info("Request: generate user_id=%s preferences=%s", user_id, preferences)
    try:
        return await service.generate(user_id, preferences)
    except (NoRecommendationsAvailable, UpstreamUnavailable) as e:
        raise _http_error(e)


@router.post("/batch", response_model=BatchResult)
async def generate_batch_recommendations(
    service = Depends(recommendation_service_dep),
    activity_repo = Depends(activity_repo_dep),
):
    settings = get_settings()
    try:
        return await run_batch(
            service,
            activity_repo,
            concurrency=settings.batch_concurrency,
            timeout_s=settings.batch_timeout_s,
        )
    except UpstreamUnavailable as e:
        raise _http_error(e)


@router.patch("/{recommendation_id}/sent", response_model=RecommendationSet)
async def mark_recommendation_as_sent(recommendation_id: str, service = Depends(recommendation_service_dep)):
    try:
        return await service.mark_sent(recommendation_id)
    except (NotFound, UpstreamUnavailable) as e:
        raise _http_error(e)
