# app/core/lifespan.py
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from app.api.deps import build_recommendation_service
from app.core.config import get_settings
from app.db import mongo, redis as r
from app.domain.errors import UpstreamUnavailable
from app.domain.repositories.activity_repo import ActivityRepo
from app.domain.repositories.product_repo import ProductRepo
from app.domain.repositories.recommendation_repo import RecommendationRepo
from app.domain.services.batch_svc import run_batch
from app.domain.services.recommendation_svc import utcnow
from app.jobs.scheduler import run_daily
from app.messaging.consumer import KafkaEventConsumer, build_handlers
from app.messaging.publisher import KafkaEventPublisher
from app.seed import seed_mock_data

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # --- Startup ---
    await mongo.connect()
    db = mongo.get_db()
    for repo in (ProductRepo(db), ActivityRepo(db), RecommendationRepo(db)):
        try:
            await repo.ensure_indexes()
        except UpstreamUnavailable as e:
            logger.warning("index creation skipped for %s: %s", type(repo).__name__, e)

    if settings.SEED_MOCK_DATA and settings.APP_ENV == "development":
        await seed_mock_data(ProductRepo(db), ActivityRepo(db))

    # Redis optional
    await r.connect()

    publisher = KafkaEventPublisher(
        settings.KAFKA_BOOTSTRAP_SERVERS,
        client_id=settings.KAFKA_CLIENT_ID,
        send_timeout_s=settings.kafka_send_timeout_s,
    )
    await publisher.connect()
    app.state.publisher = publisher

    service = build_recommendation_service(db, r.get_redis(), publisher, settings)

    consumer = None
    if settings.KAFKA_CONSUMER_ENABLED and settings.KAFKA_BOOTSTRAP_SERVERS:
        consumer = KafkaEventConsumer(
            settings.KAFKA_BOOTSTRAP_SERVERS,
            settings.KAFKA_CONSUMER_GROUP,
            build_handlers(settings=settings, service=service,
                           activity_repo=ActivityRepo(db), product_repo=ProductRepo(db)),
        )
        await consumer.start()

    scheduler_task = None
    if settings.BATCH_SCHEDULER_ENABLED:
        scheduler_task = asyncio.create_task(
            run_daily(
                lambda: run_batch(service, ActivityRepo(db),
                                  concurrency=settings.batch_concurrency,
                                  timeout_s=settings.batch_timeout_s),
                hour=settings.batch_schedule_hour,
                clock=utcnow,
            ),
            name="batch-scheduler",
        )

    # Application runs
    yield

    # --- Shutdown ---
    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
    if consumer is not None:
        await consumer.stop()
    await publisher.close()
    await r.disconnect()
    await mongo.disconnect()
    logger.info("recommendation service shut down")
