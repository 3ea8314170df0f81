from datetime import datetime
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from app.domain.models.product import Product


class ActivityType(str, Enum):
    VIEW = "view"
    CART = "cart"
    PURCHASE = "purchase"
    WISHLIST = "wishlist"
    SEARCH = "search"


class ActivityRecord(BaseModel):
    activity_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    product_id: str
    activity_type: ActivityType
    timestamp: datetime
    # view_duration | quantity | search_query | price | order_id, all optional
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}  # immuable = safe

    @property
    def search_query(self) -> Optional[str]:
        # producers on the broker still send the camelCase key
        q = self.metadata.get("search_query") or self.metadata.get("searchQuery")
        return str(q) if q else None


class ResolvedActivity(NamedTuple):
    """An activity joined with the product it points at."""
    activity: ActivityRecord
    product: Product
