# app/messaging/publisher.py
"""
Kafka event publisher. One instance per process, created and closed by the
FastAPI lifespan and injected where needed (no module-level producer).
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from app.domain.errors import EventPublishFailure

logger = logging.getLogger(__name__)


def _encode(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, default=str, separators=(",", ":")).encode("utf-8")


class KafkaEventPublisher:
    def __init__(self, bootstrap_servers: str, *, client_id: str = "recommendation-service", send_timeout_s: int = 5):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.send_timeout_s = send_timeout_s
        self._producer: Optional[KafkaProducer] = None

    @property
    def enabled(self) -> bool:
        return bool(self.bootstrap_servers)

    @property
    def connected(self) -> bool:
        return self._producer is not None

    async def connect(self) -> None:
        if not self.enabled:
            logger.warning("No KAFKA_BOOTSTRAP_SERVERS configured, events will not be published")
            return
        try:
            self._producer = await asyncio.to_thread(
                KafkaProducer,
                bootstrap_servers=self.bootstrap_servers.split(","),
                client_id=self.client_id,
                value_serializer=_encode,
                key_serializer=lambda k: k.encode("utf-8") if k else None,
                acks="all",
                retries=3,
                linger_ms=25,
            )
            logger.info("Kafka producer connected bootstrap=%s", self.bootstrap_servers)
        except KafkaError as e:
            logger.warning("Kafka producer failed to initialize: %s", e)
            self._producer = None

    async def publish(self, topic: str, payload: Dict[str, Any], key: Optional[str] = None) -> None:
        """Send and wait for the broker ack. Raises EventPublishFailure."""
        if self._producer is None:
            if not self.enabled:
                logger.debug("publish skipped topic=%s (kafka disabled)", topic)
                return
            raise EventPublishFailure(f"producer not connected, topic={topic}")
        key = key or payload.get("user_id")

        def _send():
            return self._producer.send(topic, value=payload, key=key).get(timeout=self.send_timeout_s)

        try:
            meta = await asyncio.to_thread(_send)
            logger.debug("published topic=%s partition=%s offset=%s", topic, meta.partition, meta.offset)
        except KafkaError as e:
            raise EventPublishFailure(f"topic={topic}: {e}") from e

    async def close(self) -> None:
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        try:
            await asyncio.to_thread(producer.flush, 2)
        finally:
            await asyncio.to_thread(producer.close)
        logger.info("Kafka producer closed")
