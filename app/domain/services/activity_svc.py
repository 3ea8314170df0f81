import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from app.domain.errors import NotFound
from app.domain.models.activity import ActivityRecord, ActivityType

logger = logging.getLogger(__name__)


async def create_user_activity(
    activity_repo,
    product_repo,
    *,
    user_id: str,
    product_id: str,
    activity_type: ActivityType | str,
    metadata: Optional[Dict[str, Any]] = None,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> ActivityRecord:
    """Record one interaction. The product must exist at write time."""
    if await product_repo.get_by_product_id(product_id) is None:
        raise NotFound(f"Product not found: {product_id}")

    record = ActivityRecord(
        user_id=user_id,
        product_id=product_id,
        activity_type=ActivityType(activity_type),
        timestamp=clock(),
        metadata=dict(metadata or {}),
    )
    await activity_repo.append(record)
    logger.info("activity recorded user_id=%s product_id=%s type=%s",
                user_id, product_id, record.activity_type.value)
    return record
