import asyncio
import json
import time
from types import SimpleNamespace

import pytest
from kafka.errors import KafkaError
from kafka.structs import TopicPartition

from app.domain.errors import NotFound
from app.domain.models.activity import ActivityType
from app.domain.services.activity_svc import create_user_activity
from app.messaging.consumer import KafkaEventConsumer, build_handlers, dispatch
from app.utils.locks import generation_lock_factory

from conftest import DownRedis


async def test_create_activity_stamps_server_time(activity_repo, catalog, clock):
    rec = await create_user_activity(activity_repo, catalog, user_id="u1", product_id="phone",
                                     activity_type="cart", metadata={"source": "web"}, clock=clock)
    assert rec.activity_type is ActivityType.CART
    assert rec.timestamp == clock.now
    assert rec.metadata == {"source": "web"}
    assert activity_repo.records == [rec]


async def test_create_activity_unknown_product(activity_repo, catalog):
    with pytest.raises(NotFound):
        await create_user_activity(activity_repo, catalog, user_id="u1", product_id="nope", activity_type="view")
    assert activity_repo.records == []


async def test_create_activity_rejects_unknown_type(activity_repo, catalog):
    with pytest.raises(ValueError):
        await create_user_activity(activity_repo, catalog, user_id="u1", product_id="phone", activity_type="like")


@pytest.fixture
def handlers(settings, service, activity_repo, catalog):
    return build_handlers(settings=settings, service=service, activity_repo=activity_repo, product_repo=catalog)


async def test_user_activity_event_is_recorded(handlers, activity_repo):
    raw = json.dumps({"userId": "u7", "productId": "laptop", "activityType": "wishlist"}).encode()
    assert await dispatch(handlers, "user.activity", raw) is True
    [rec] = activity_repo.records
    assert (rec.user_id, rec.product_id, rec.activity_type) == ("u7", "laptop", ActivityType.WISHLIST)


async def test_user_activity_event_with_bad_product_is_dropped(handlers, activity_repo):
    raw = {"user_id": "u7", "product_id": "ghost", "activity_type": "view"}
    assert await dispatch(handlers, "user.activity", raw) is True
    assert activity_repo.records == []


async def test_user_activity_event_missing_fields(handlers, activity_repo):
    assert await dispatch(handlers, "user.activity", {"user_id": "u7"}) is True
    assert activity_repo.records == []


async def test_preferences_event_regenerates(handlers, recommendation_repo, publisher):
    raw = json.dumps({"userId": "u9", "preferences": {"categories": ["footwear"]}})
    assert await dispatch(handlers, "user.preferences.updated", raw) is True
    [rec] = recommendation_repo.items.values()
    assert rec.user_id == "u9"
    assert rec.products[0].product_id == "shoes"
    assert publisher.events[0][0] == "recommendation.created"


async def test_undecodable_and_unknown_topic(handlers):
    assert await dispatch(handlers, "user.activity", b"{not json") is False
    assert await dispatch(handlers, "user.activity", b"[1, 2]") is False
    assert await dispatch(handlers, "something.else", b"{}") is False


async def test_handler_crash_is_contained(handlers):
    async def explode(message):
        raise RuntimeError("unexpected")
    handlers["user.activity"] = explode
    assert await dispatch(handlers, "user.activity", {"user_id": "u1"}) is False


async def test_preferences_event_with_redis_down(handlers, service, recommendation_repo):
    service.lock_factory = generation_lock_factory(DownRedis(), 30)
    raw = b'{"userId":"u9","preferences":{"categories":["electronics"]}}'
    assert await dispatch(handlers, "user.preferences.updated", raw) is True
    [rec] = recommendation_repo.items.values()
    assert rec.user_id == "u9"


class ScriptedKafkaConsumer:
    """Stands in for kafka-python's KafkaConsumer: replays poll results, then idles."""

    def __init__(self, script):
        self.script = list(script)
        self.closed = False

    def poll(self, timeout_ms):
        if not self.script:
            time.sleep(0.01)
            return {}
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    def close(self):
        self.closed = True


async def test_consumer_loop_survives_poll_and_handler_errors():
    seen = []
    done = asyncio.Event()

    async def handle(message):
        if message["n"] == 1:
            raise RuntimeError("bad message")
        seen.append(message["n"])
        done.set()

    tp = TopicPartition("user.activity", 0)
    records = [SimpleNamespace(value=json.dumps({"n": n}).encode()) for n in (1, 2)]
    fake = ScriptedKafkaConsumer([KafkaError("broker gone"), {tp: records}])

    consumer = KafkaEventConsumer("localhost:9092", "g", {"user.activity": handle}, retry_backoff_s=0)
    consumer._consumer = fake
    consumer._task = asyncio.create_task(consumer._run())

    await asyncio.wait_for(done.wait(), timeout=5)
    assert seen == [2]
    assert not consumer._task.done()

    await consumer.stop()
    assert fake.closed is True


async def test_stop_after_task_died():
    async def crashed():
        raise RuntimeError("dead")

    consumer = KafkaEventConsumer("localhost:9092", "g", {})
    consumer._task = asyncio.create_task(crashed())
    await asyncio.sleep(0)
    await consumer.stop()
    assert consumer._task is None
