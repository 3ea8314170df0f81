# app/messaging/consumer.py
"""
Inbound events from the user service.

- user.activity            -> record the interaction
- user.preferences.updated -> regenerate with the new preferences

Delivery is at-least-once; handler and poll errors are logged so one bad
message or broker hiccup never stops the loop.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from kafka import KafkaConsumer
from kafka.errors import KafkaError

from app.domain.errors import RecommendationError
from app.domain.services.activity_svc import create_user_activity

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[None]]


def _field(message: Dict[str, Any], *names: str):
    for n in names:
        if message.get(n):
            return message[n]
    return None


def build_handlers(*, settings, service, activity_repo, product_repo) -> Dict[str, Handler]:
    async def handle_user_activity(message: Dict[str, Any]) -> None:
        user_id = _field(message, "user_id", "userId")
        product_id = _field(message, "product_id", "productId")
        activity_type = _field(message, "activity_type", "activityType")
        if not (user_id and product_id and activity_type):
            logger.warning("user.activity ignored, missing fields: %s", sorted(message))
            return
        try:
            await create_user_activity(
                activity_repo,
                product_repo,
                user_id=str(user_id),
                product_id=str(product_id),
                activity_type=activity_type,
                metadata=message.get("metadata") or {},
            )
        except (RecommendationError, ValueError) as e:
            logger.error("user.activity failed user_id=%s err=%s", user_id, e)

    async def handle_preferences_updated(message: Dict[str, Any]) -> None:
        user_id = _field(message, "user_id", "userId")
        preferences = message.get("preferences")
        if not (user_id and preferences):
            logger.warning("user.preferences.updated ignored, missing fields: %s", sorted(message))
            return
        try:
            rec = await service.generate(str(user_id), preferences)
            logger.info("preferences regenerate user_id=%s recommendation_id=%s", user_id, rec.recommendation_id)
        except RecommendationError as e:
            logger.error("preferences regenerate failed user_id=%s err=%s", user_id, e)

    return {
        settings.topic_user_activity: handle_user_activity,
        settings.topic_user_preferences_updated: handle_preferences_updated,
    }


async def dispatch(handlers: Dict[str, Handler], topic: str, raw: bytes | str | Dict[str, Any]) -> bool:
    """Decode one record and route it. Returns False when it could not be handled."""
    handler = handlers.get(topic)
    if handler is None:
        logger.warning("no handler for topic=%s", topic)
        return False
    try:
        message = raw if isinstance(raw, dict) else json.loads(raw)
    except (ValueError, TypeError) as e:
        logger.error("undecodable message topic=%s err=%s", topic, e)
        return False
    if not isinstance(message, dict):
        logger.error("unexpected payload type topic=%s type=%s", topic, type(message).__name__)
        return False
    try:
        await handler(message)
    except Exception:
        logger.exception("handler failed topic=%s", topic)
        return False
    return True


class KafkaEventConsumer:
    """Polls kafka-python's blocking consumer in a worker thread; handlers run on the event loop."""

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        handlers: Dict[str, Handler],
        *,
        poll_timeout_ms: int = 1000,
        retry_backoff_s: float = 5.0,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.handlers = handlers
        self.poll_timeout_ms = poll_timeout_ms
        self.retry_backoff_s = retry_backoff_s
        self._consumer: Optional[KafkaConsumer] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        try:
            self._consumer = await asyncio.to_thread(
                KafkaConsumer,
                *self.handlers.keys(),
                bootstrap_servers=self.bootstrap_servers.split(","),
                group_id=self.group_id,
                enable_auto_commit=True,
                auto_offset_reset="earliest",
            )
        except KafkaError as e:
            logger.warning("Kafka consumer failed to initialize: %s", e)
            return
        self._task = asyncio.create_task(self._run(), name="kafka-consumer")
        logger.info("Kafka consumer started topics=%s", list(self.handlers))

    async def _run(self) -> None:
        while True:
            try:
                batches = await asyncio.to_thread(self._consumer.poll, self.poll_timeout_ms)
            except KafkaError as e:
                logger.warning("Kafka poll failed, retrying in %.1fs: %s", self.retry_backoff_s, e)
                await asyncio.sleep(self.retry_backoff_s)
                continue
            for tp, records in batches.items():
                for record in records:
                    await dispatch(self.handlers, tp.topic, record.value)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("Kafka consumer task had failed: %r", e)
            self._task = None
        if self._consumer is not None:
            await asyncio.to_thread(self._consumer.close)
            self._consumer = None
            logger.info("Kafka consumer stopped")
