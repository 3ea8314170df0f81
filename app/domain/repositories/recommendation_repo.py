# app/domain/repositories/recommendation_repo.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from app.db.mongo import to_document, upstream
from app.domain.models.recommendation import RecommendationSet


class RecommendationRepo:
    """
    Generated recommendation sets ('recommendations' collection).
    Sets expire through a TTL index on expires_at; the engine never deletes them.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "recommendations"):
        self.col = db[collection_name]

    async def ensure_indexes(self) -> None:
        with upstream("recommendations.create_index"):
            await self.col.create_index("recommendation_id", unique=True)
            await self.col.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
            await self.col.create_index("expires_at", expireAfterSeconds=0)

    async def find_latest_active(
        self, user_id: str, now: datetime, *, unsent_only: bool = False
    ) -> Optional[RecommendationSet]:
        filt: dict = {"user_id": user_id, "expires_at": {"$gt": now}}
        if unsent_only:
            filt["sent"] = False
        with upstream("recommendations.find_latest_active"):
            doc = await self.col.find_one(filt, {"_id": 0}, sort=[("created_at", DESCENDING)])
        return RecommendationSet.model_validate(doc) if doc else None

    async def get_by_id(self, recommendation_id: str) -> Optional[RecommendationSet]:
        with upstream("recommendations.find_one"):
            doc = await self.col.find_one({"recommendation_id": recommendation_id}, {"_id": 0})
        return RecommendationSet.model_validate(doc) if doc else None

    async def insert(self, rec: RecommendationSet) -> RecommendationSet:
        with upstream("recommendations.insert_one"):
            await self.col.insert_one(to_document(rec))
        return rec

    async def set_sent(self, recommendation_id: str, sent_at: datetime) -> Optional[RecommendationSet]:
        """
        Flip sent -> true only if it is still false.
        Returns the updated set, or None when nothing matched (missing or already sent).
        """
        with upstream("recommendations.set_sent"):
            doc = await self.col.find_one_and_update(
                {"recommendation_id": recommendation_id, "sent": False},
                {"$set": {"sent": True, "sent_at": sent_at}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        return RecommendationSet.model_validate(doc) if doc else None
