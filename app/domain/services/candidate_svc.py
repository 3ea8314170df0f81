import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from app.domain.models.activity import ActivityType, ResolvedActivity
from app.domain.models.product import Product

logger = logging.getLogger(__name__)


@dataclass
class CandidateSelection:
    candidates: List[Product]
    activities: List[ResolvedActivity] = field(default_factory=list)
    # True when the user had no usable history and candidates come from popularity
    fallback: bool = False


@dataclass
class InterestSets:
    viewed: set = field(default_factory=set)
    purchased: set = field(default_factory=set)
    cart: set = field(default_factory=set)
    # raw search queries, matched against category names as-is
    searched: set = field(default_factory=set)

    @classmethod
    def from_activities(cls, activities: Iterable[ResolvedActivity]) -> "InterestSets":
        s = cls()
        for act, prod in activities:
            t = act.activity_type
            if t == ActivityType.VIEW:
                s.viewed.add(prod.category)
            elif t == ActivityType.PURCHASE:
                s.purchased.add(prod.category)
            elif t == ActivityType.CART:
                s.cart.add(prod.category)
            elif t == ActivityType.SEARCH and act.search_query:
                s.searched.add(act.search_query)
        return s

    def categories(self) -> set:
        return self.viewed | self.purchased | self.cart | self.searched


async def popular_products(
    product_repo,
    *,
    limit: int,
    preferred_categories: Optional[List[str]] = None,
) -> List[Product]:
    """Top rated in-stock products, preferred categories first, padded with the rest."""
    preferred = list(preferred_categories or [])
    products: List[Product] = []
    if preferred:
        products = await product_repo.query(categories_in=preferred, in_stock=True, limit=limit)
    if len(products) < limit:
        products += await product_repo.query(
            categories_nin=preferred, in_stock=True, limit=limit - len(products)
        )
    return products


async def select_candidates(
    activity_repo,
    product_repo,
    user_id: str,
    *,
    max_recommendations: int = 5,
    history_limit: int = 50,
    preferred_categories: Optional[List[str]] = None,
) -> CandidateSelection:
    t0 = time.perf_counter()
    activities = await activity_repo.find_by_user(user_id, limit=history_limit)
    logger.debug("candidates history user_id=%s activities=%s", user_id, len(activities))

    if not activities:
        products = await popular_products(
            product_repo, limit=max_recommendations, preferred_categories=preferred_categories
        )
        logger.info("candidates fallback=popular user_id=%s n=%s time=%.3fs",
                    user_id, len(products), time.perf_counter() - t0)
        return CandidateSelection(candidates=products, fallback=True)

    seen_ids = {prod.product_id for _, prod in activities}
    interest = InterestSets.from_activities(activities).categories()

    pool = await product_repo.query(categories_in=interest, exclude_ids=seen_ids, in_stock=True)

    shortfall = max_recommendations - len(pool)
    if shortfall > 0:
        extra = await product_repo.query(
            categories_nin=interest, exclude_ids=seen_ids, in_stock=True, limit=shortfall
        )
        logger.debug("candidates top_up user_id=%s shortfall=%s added=%s", user_id, shortfall, len(extra))
        pool = pool + extra

    logger.info("candidates done user_id=%s interest=%s n=%s time=%.3fs",
                user_id, sorted(interest), len(pool), time.perf_counter() - t0)
    return CandidateSelection(candidates=pool, activities=activities)
