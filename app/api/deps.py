# app/api/deps.py
from fastapi import Depends, Request
from app.core.config import Settings, get_settings
from app.db.mongo import get_db
from app.db.redis import get_redis
from app.domain.repositories.activity_repo import ActivityRepo
from app.domain.repositories.product_repo import ProductRepo
from app.domain.repositories.reco_cache_repo import RecoCacheRepo
from app.domain.repositories.recommendation_repo import RecommendationRepo
from app.domain.services.recommendation_svc import RecommendationService
from app.utils.locks import generation_lock_factory

# Dependency for injecting the MongoDB database into endpoints/services
async def mongo_db(db = Depends(get_db)):
    return db

# Dependency for injecting the Redis client into endpoints/services
def redis_dep():
    return get_redis()

# Event publisher lives on app.state (created/closed by the lifespan)
def publisher_dep(request: Request):
    return request.app.state.publisher

def product_repo_dep(db = Depends(mongo_db)) -> ProductRepo:
    return ProductRepo(db)

def activity_repo_dep(db = Depends(mongo_db)) -> ActivityRepo:
    return ActivityRepo(db)

def recommendation_service_dep(
    db = Depends(mongo_db),
    redis = Depends(redis_dep),
    publisher = Depends(publisher_dep),
    settings: Settings = Depends(get_settings),
) -> RecommendationService:
    return build_recommendation_service(db, redis, publisher, settings)

def build_recommendation_service(db, redis, publisher, settings: Settings) -> RecommendationService:
    """Wire repositories, cache and locks; shared by routes, consumer and scheduler."""
    return RecommendationService(
        product_repo=ProductRepo(db),
        activity_repo=ActivityRepo(db),
        recommendation_repo=RecommendationRepo(db),
        publisher=publisher,
        settings=settings,
        cache=RecoCacheRepo(redis, prefix=settings.recommendation_cache_prefix),
        lock_factory=generation_lock_factory(redis, settings.generation_lock_ttl),
    )
