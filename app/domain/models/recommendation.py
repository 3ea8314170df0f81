from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from app.domain.models.product import ProductSummary


class Reason(str, Enum):
    SIMILAR_PURCHASE = "similar_purchase"
    SIMILAR_VIEW = "similar_view"
    POPULAR_IN_CATEGORY = "popular_in_category"
    TRENDING = "trending"
    FREQUENTLY_BOUGHT_TOGETHER = "frequently_bought_together"
    WISHLIST_RECOMMENDATION = "wishlist_recommendation"


class ScoredProduct(BaseModel):
    product_id: str
    score: float = Field(ge=0, le=1)
    reason: Reason
    model_config = {"frozen": True}


class RecommendationSet(BaseModel):
    recommendation_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    products: List[ScoredProduct]
    created_at: datetime
    expires_at: datetime
    sent: bool = False
    sent_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


class ResolvedRecommendation(BaseModel):
    product: ProductSummary
    score: float
    reason: Reason


class RecommendationView(BaseModel):
    """Read view of a set, products resolved against the catalog."""
    recommendation_id: str
    user_id: str
    products: List[ResolvedRecommendation]
    created_at: datetime
    expires_at: datetime
    sent: bool
    sent_at: Optional[datetime] = None


class BatchResult(BaseModel):
    success: int = 0
    failed: int = 0
    total: int = 0
    timed_out: bool = False
