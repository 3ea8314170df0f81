"""
Shared fixtures: in-memory stand-ins for the Mongo repositories, the Kafka
publisher and Redis, plus a controllable clock.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import Settings
from app.domain.errors import EventPublishFailure
from app.domain.models.activity import ActivityRecord, ActivityType, ResolvedActivity
from app.domain.models.product import Product
from app.domain.models.recommendation import RecommendationSet
from app.domain.services.recommendation_svc import RecommendationService

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Builders
# ============================================================================

def make_product(pid: str, category: str = "electronics", tags=(), rating: float = 4.0,
                 in_stock: bool = True, price: float = 10.0) -> Product:
    return Product(product_id=pid, name=pid.title(), description=f"{pid} description", price=price,
                   image_url=f"https://example.com/{pid}.jpg", category=category, tags=list(tags),
                   rating=rating, in_stock=in_stock)


def make_activity(user_id: str, product_id: str, activity_type: str = "view",
                  days_ago: float = 0, metadata: Optional[dict] = None, now: datetime = NOW) -> ActivityRecord:
    return ActivityRecord(user_id=user_id, product_id=product_id, activity_type=ActivityType(activity_type),
                          timestamp=now - timedelta(days=days_ago), metadata=metadata or {})


# ============================================================================
# Doubles
# ============================================================================

class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now = self.now + timedelta(**kw)


class FakeProductRepo:
    def __init__(self, products: List[Product] = ()):
        self.items: Dict[str, Product] = {p.product_id: p for p in products}

    def add(self, *products: Product) -> None:
        for p in products:
            self.items[p.product_id] = p

    def remove(self, product_id: str) -> None:
        self.items.pop(product_id, None)

    async def get_by_product_id(self, product_id):
        return self.items.get(product_id)

    async def get_many_by_product_ids(self, ids):
        return [self.items[i] for i in ids if i in self.items]

    async def query(self, *, categories_in=None, categories_nin=None, exclude_ids=None, in_stock=True, limit=None):
        if limit is not None and limit <= 0:
            return []
        out = []
        for p in self.items.values():
            if in_stock is not None and p.in_stock != in_stock:
                continue
            if categories_in is not None and p.category not in set(categories_in):
                continue
            if categories_nin and p.category in set(categories_nin):
                continue
            if exclude_ids and p.product_id in set(exclude_ids):
                continue
            out.append(p)
        out.sort(key=lambda p: (-p.rating, p.product_id))
        return out[:limit] if limit else out

    async def count(self):
        return len(self.items)

    async def insert_many(self, products):
        self.add(*products)
        return len(products)


class FakeActivityRepo:
    def __init__(self, product_repo: FakeProductRepo, records: List[ActivityRecord] = ()):
        self.product_repo = product_repo
        self.records: List[ActivityRecord] = list(records)

    async def find_by_user(self, user_id, limit=50):
        mine = sorted((r for r in self.records if r.user_id == user_id), key=lambda r: r.timestamp, reverse=True)
        out = []
        for r in mine[:limit]:
            p = self.product_repo.items.get(r.product_id)
            if p is not None:
                out.append(ResolvedActivity(r, p))
        return out

    async def distinct_user_ids(self):
        return sorted({r.user_id for r in self.records})

    async def append(self, record):
        self.records.append(record)
        return record

    async def count(self):
        return len(self.records)

    async def insert_many(self, records):
        self.records.extend(records)
        return len(records)


class FakeRecommendationRepo:
    def __init__(self):
        self.items: Dict[str, RecommendationSet] = {}
        self.inserted: List[str] = []

    async def find_latest_active(self, user_id, now, *, unsent_only=False):
        cands = [r for r in self.items.values()
                 if r.user_id == user_id and r.is_active(now) and not (unsent_only and r.sent)]
        if not cands:
            return None
        return max(cands, key=lambda r: r.created_at).model_copy(deep=True)

    async def get_by_id(self, recommendation_id):
        r = self.items.get(recommendation_id)
        return r.model_copy(deep=True) if r else None

    async def insert(self, rec):
        self.items[rec.recommendation_id] = rec.model_copy(deep=True)
        self.inserted.append(rec.recommendation_id)
        return rec

    async def set_sent(self, recommendation_id, sent_at):
        r = self.items.get(recommendation_id)
        if r is None or r.sent:
            return None
        r = r.model_copy(update={"sent": True, "sent_at": sent_at})
        self.items[recommendation_id] = r
        return r.model_copy(deep=True)


class FakePublisher:
    def __init__(self, recommendation_repo: Optional[FakeRecommendationRepo] = None, fail: bool = False):
        self.recommendation_repo = recommendation_repo
        self.fail = fail
        self.events: List[tuple] = []
        # recommendation ids that were already persisted when their event went out
        self.persisted_at_publish: List[bool] = []

    async def publish(self, topic, payload, key=None):
        if self.recommendation_repo is not None:
            self.persisted_at_publish.append(payload["recommendation_id"] in self.recommendation_repo.items)
        if self.fail:
            raise EventPublishFailure("broker down")
        self.events.append((topic, payload))


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache helpers."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.expiry: Dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def exists(self, key):
        return 1 if key in self.store else 0


class DownRedis:
    """Redis that went away after startup: every call fails."""

    async def _down(self, *a, **kw):
        raise RedisConnectionError("down")

    get = set = delete = exists = eval = _down


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def catalog() -> FakeProductRepo:
    return FakeProductRepo([
        make_product("phone", "electronics", ["smartphone", "mobile", "tech"], 4.5),
        make_product("laptop", "electronics", ["laptop", "computer", "tech"], 4.7),
        make_product("headphones", "electronics", ["headphones", "audio", "tech"], 4.3),
        make_product("tshirt", "clothing", ["t-shirt", "summer", "fashion"], 4.1),
        make_product("shoes", "footwear", ["shoes", "running", "sports"], 4.6),
    ])


@pytest.fixture
def activity_repo(catalog) -> FakeActivityRepo:
    return FakeActivityRepo(catalog)


@pytest.fixture
def recommendation_repo() -> FakeRecommendationRepo:
    return FakeRecommendationRepo()


@pytest.fixture
def publisher(recommendation_repo) -> FakePublisher:
    return FakePublisher(recommendation_repo)


@pytest.fixture
def service(catalog, activity_repo, recommendation_repo, publisher, settings, clock) -> RecommendationService:
    return RecommendationService(
        product_repo=catalog,
        activity_repo=activity_repo,
        recommendation_repo=recommendation_repo,
        publisher=publisher,
        settings=settings,
        clock=clock,
    )
