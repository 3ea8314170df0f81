# app/seed.py
"""
Mock catalog and activity for local development and demos.
Never called on the request path; only from the lifespan when SEED_MOCK_DATA is
set in development, or by hand:  python -m app.seed
"""
from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.domain.models.activity import ActivityRecord, ActivityType
from app.domain.models.product import Product

logger = logging.getLogger(__name__)

MOCK_USER_IDS = [
    "607f1f77bcf86cd799439011",
    "607f1f77bcf86cd799439012",
    "607f1f77bcf86cd799439013",
    "607f1f77bcf86cd799439014",
]

MOCK_PRODUCTS = [
    Product(product_id="prod_smartphone_x", name="Smartphone X", description="Latest smartphone with amazing features",
            price=999.99, image_url="https://example.com/smartphone-x.jpg", category="electronics",
            tags=["smartphone", "mobile", "tech"], rating=4.5),
    Product(product_id="prod_laptop_pro", name="Laptop Pro", description="Powerful laptop for professionals",
            price=1499.99, image_url="https://example.com/laptop-pro.jpg", category="electronics",
            tags=["laptop", "computer", "tech"], rating=4.7),
    Product(product_id="prod_wireless_headphones", name="Wireless Headphones",
            description="Premium wireless headphones with noise cancellation", price=299.99,
            image_url="https://example.com/wireless-headphones.jpg", category="electronics",
            tags=["headphones", "audio", "tech"], rating=4.3),
    Product(product_id="prod_summer_tshirt", name="Summer T-Shirt", description="Comfortable cotton t-shirt for summer",
            price=29.99, image_url="https://example.com/summer-tshirt.jpg", category="clothing",
            tags=["t-shirt", "summer", "fashion"], rating=4.1),
    Product(product_id="prod_denim_jeans", name="Denim Jeans", description="Classic denim jeans for everyday wear",
            price=49.99, image_url="https://example.com/denim-jeans.jpg", category="clothing",
            tags=["jeans", "denim", "fashion"], rating=4.4),
    Product(product_id="prod_running_shoes", name="Running Shoes", description="Lightweight running shoes for athletes",
            price=129.99, image_url="https://example.com/running-shoes.jpg", category="footwear",
            tags=["shoes", "running", "sports"], rating=4.6),
    Product(product_id="prod_coffee_table", name="Coffee Table", description="Modern coffee table for your living room",
            price=199.99, image_url="https://example.com/coffee-table.jpg", category="furniture",
            tags=["table", "living room", "home"], rating=4.2),
    Product(product_id="prod_decorative_lamp", name="Decorative Lamp", description="Elegant lamp for home decoration",
            price=79.99, image_url="https://example.com/decorative-lamp.jpg", category="home",
            tags=["lamp", "lighting", "decor"], rating=4.0),
    Product(product_id="prod_kitchen_blender", name="Kitchen Blender", description="High-performance blender for your kitchen",
            price=149.99, image_url="https://example.com/kitchen-blender.jpg", category="appliances",
            tags=["blender", "kitchen", "home"], rating=4.5),
    Product(product_id="prod_yoga_mat", name="Yoga Mat", description="Non-slip yoga mat for your workouts",
            price=39.99, image_url="https://example.com/yoga-mat.jpg", category="fitness",
            tags=["yoga", "fitness", "sports"], rating=4.3),
]


def mock_activities(
    products: List[Product],
    *,
    user_ids: List[str] = MOCK_USER_IDS,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[ActivityRecord]:
    """5 views, 2 carts, 1 purchase per user; wishlist and search on a coin flip."""
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    if not products:
        return []

    def days_ago(max_days: int) -> datetime:
        return now - timedelta(days=rng.randrange(max_days))

    out: List[ActivityRecord] = []
    for uid in user_ids:
        for _ in range(5):
            p = rng.choice(products)
            out.append(ActivityRecord(user_id=uid, product_id=p.product_id, activity_type=ActivityType.VIEW,
                                      timestamp=days_ago(30), metadata={"view_duration": rng.randint(10, 310)}))
        for _ in range(2):
            p = rng.choice(products)
            out.append(ActivityRecord(user_id=uid, product_id=p.product_id, activity_type=ActivityType.CART,
                                      timestamp=days_ago(15), metadata={"quantity": rng.randint(1, 3)}))
        p = rng.choice(products)
        out.append(ActivityRecord(user_id=uid, product_id=p.product_id, activity_type=ActivityType.PURCHASE,
                                  timestamp=days_ago(60),
                                  metadata={"order_id": f"ORD-{rng.randint(1000, 10999)}",
                                            "quantity": rng.randint(1, 2), "price": p.price}))
        if rng.random() > 0.5:
            p = rng.choice(products)
            out.append(ActivityRecord(user_id=uid, product_id=p.product_id, activity_type=ActivityType.WISHLIST,
                                      timestamp=days_ago(45)))
        if rng.random() > 0.3:
            p = rng.choice(products)
            out.append(ActivityRecord(user_id=uid, product_id=p.product_id, activity_type=ActivityType.SEARCH,
                                      timestamp=days_ago(20), metadata={"search_query": p.category}))
    return out


async def seed_mock_data(product_repo, activity_repo, *, rng: Optional[random.Random] = None) -> dict:
    """Fill empty collections only; existing data is never touched."""
    inserted = {"products": 0, "activities": 0}
    if await product_repo.count() == 0:
        inserted["products"] = await product_repo.insert_many(MOCK_PRODUCTS)
        logger.info("seed products inserted=%s", inserted["products"])
    if await activity_repo.count() == 0:
        products = await product_repo.query(in_stock=None)
        inserted["activities"] = await activity_repo.insert_many(mock_activities(products, rng=rng))
        logger.info("seed activities inserted=%s", inserted["activities"])
    return inserted


async def _main() -> None:
    from app.core.config import get_settings
    from app.core.logging import configure_logging, level_for
    from app.db import mongo
    from app.domain.repositories.activity_repo import ActivityRepo
    from app.domain.repositories.product_repo import ProductRepo

    settings = get_settings()
    configure_logging(level=level_for(settings))
    if settings.APP_ENV == "production":
        raise SystemExit("refusing to seed a production database")
    await mongo.connect()
    try:
        db = mongo.get_db()
        print(await seed_mock_data(ProductRepo(db), ActivityRepo(db)))
    finally:
        await mongo.disconnect()


if __name__ == "__main__":
    asyncio.run(_main())
