# app/domain/repositories/product_repo.py

from __future__ import annotations
from typing import Iterable, Optional, List
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from app.db.mongo import to_document, upstream
from app.domain.models.product import Product

class ProductRepo:
    """
    Catalog repository backed by the 'products' collection.
    Read-only from the engine's point of view; insert_many exists for seeding.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "products"):
        self.col = db[collection_name]

    async def ensure_indexes(self) -> None:
        with upstream("products.create_index"):
            await self.col.create_index("product_id", unique=True)
            await self.col.create_index([("category", ASCENDING), ("rating", DESCENDING)])
            await self.col.create_index("tags")

    async def get_by_product_id(self, product_id: str) -> Optional[Product]:
        with upstream("products.find_one"):
            doc = await self.col.find_one({"product_id": product_id}, {"_id": 0})
        return Product.model_validate(doc) if doc else None

    async def get_many_by_product_ids(self, ids: List[str]) -> List[Product]:
        """Batch fetch; missing ids are simply absent from the result (order not guaranteed)."""
        if not ids:
            return []
        with upstream("products.find"):
            docs = await self.col.find({"product_id": {"$in": ids}}, {"_id": 0}).to_list(length=None)
        return [Product.model_validate(d) for d in docs]

    async def query(
        self,
        *,
        categories_in: Optional[Iterable[str]] = None,
        categories_nin: Optional[Iterable[str]] = None,
        exclude_ids: Optional[Iterable[str]] = None,
        in_stock: Optional[bool] = True,
        limit: Optional[int] = None,
    ) -> List[Product]:
        """
        Products sorted by rating (desc), product_id as a stable tiebreak.
        `categories_in=None` means no category restriction; an empty list matches nothing.
        `in_stock=None` skips the stock filter, True/False select on it.
        """
        filt: dict = {}
        if in_stock is not None:
            filt["in_stock"] = in_stock
        cat: dict = {}
        if categories_in is not None:
            cat["$in"] = list(categories_in)
        if categories_nin:
            cat["$nin"] = list(categories_nin)
        if cat:
            filt["category"] = cat
        if exclude_ids:
            filt["product_id"] = {"$nin": list(exclude_ids)}

        if limit is not None and limit <= 0:
            return []
        cursor = self.col.find(filt, {"_id": 0}).sort([("rating", DESCENDING), ("product_id", ASCENDING)])
        if limit:
            cursor = cursor.limit(limit)
        with upstream("products.query"):
            docs = await cursor.to_list(length=limit)
        return [Product.model_validate(d) for d in docs]

    async def count(self) -> int:
        with upstream("products.count"):
            return await self.col.count_documents({})

    async def insert_many(self, products: List[Product]) -> int:
        if not products:
            return 0
        with upstream("products.insert_many"):
            res = await self.col.insert_many([to_document(p) for p in products])
        return len(res.inserted_ids)
