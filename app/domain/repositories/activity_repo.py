# app/domain/repositories/activity_repo.py
from __future__ import annotations

from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.db.mongo import to_document, upstream
from app.domain.models.activity import ActivityRecord, ResolvedActivity
from app.domain.models.product import Product


class ActivityRepo:
    """
    Append-only activity store backed by the 'activities' collection.
    Reads join each activity with its product; dangling references are dropped.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "activities",
                 products_collection: str = "products"):
        self.col = db[collection_name]
        self.products_collection = products_collection

    async def ensure_indexes(self) -> None:
        with upstream("activities.create_index"):
            await self.col.create_index("activity_id", unique=True)
            await self.col.create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
            await self.col.create_index([("user_id", ASCENDING), ("product_id", ASCENDING), ("activity_type", ASCENDING)])

    async def find_by_user(self, user_id: str, limit: int = 50) -> List[ResolvedActivity]:
        """Most recent `limit` activities (newest first), then resolved against the catalog."""
        pipeline = [
            {"$match": {"user_id": user_id}},
            {"$sort": {"timestamp": -1}},
            {"$limit": limit},
            {"$lookup": {
                "from": self.products_collection,
                "localField": "product_id",
                "foreignField": "product_id",
                "as": "prod",
            }},
            # inner join: activities whose product vanished are skipped
            {"$unwind": {"path": "$prod", "preserveNullAndEmptyArrays": False}},
            {"$project": {"_id": 0, "prod._id": 0}},
        ]
        with upstream("activities.find_by_user"):
            docs = await self.col.aggregate(pipeline).to_list(length=limit)
        out: List[ResolvedActivity] = []
        for d in docs:
            prod = d.pop("prod")
            out.append(ResolvedActivity(ActivityRecord.model_validate(d), Product.model_validate(prod)))
        return out

    async def distinct_user_ids(self) -> List[str]:
        with upstream("activities.distinct"):
            ids = await self.col.distinct("user_id")
        return sorted(ids)

    async def append(self, record: ActivityRecord) -> ActivityRecord:
        with upstream("activities.insert_one"):
            await self.col.insert_one(to_document(record))
        return record

    async def count(self) -> int:
        with upstream("activities.count"):
            return await self.col.count_documents({})

    async def insert_many(self, records: List[ActivityRecord]) -> int:
        if not records:
            return 0
        with upstream("activities.insert_many"):
            res = await self.col.insert_many([to_document(r) for r in records])
        return len(res.inserted_ids)
