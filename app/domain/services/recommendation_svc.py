# app/domain/services/recommendation_svc.py
"""
Recommendation lifecycle: reuse of unexpired sets, generation, persistence,
creation events, delivery ("sent") bookkeeping and the cached read view.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from redis.exceptions import RedisError

from app.domain.errors import EventPublishFailure, NoRecommendationsAvailable, NotFound
from app.domain.models.product import ProductSummary
from app.domain.models.recommendation import (
    RecommendationSet,
    RecommendationView,
    ResolvedRecommendation,
    ScoredProduct,
)
from app.domain.services.candidate_svc import select_candidates
from app.domain.services.constants import CREATED_EVENT_TOP_N, USER_VIEW_KEY
from app.domain.services.scoring_svc import ScoringConfig, score_candidates, score_popular

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationService:
    def __init__(
        self,
        *,
        product_repo,
        activity_repo,
        recommendation_repo,
        publisher,
        settings,
        cache=None,
        lock_factory: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.products = product_repo
        self.activities = activity_repo
        self.recommendations = recommendation_repo
        self.publisher = publisher
        self.settings = settings
        self.cache = cache
        self.lock_factory = lock_factory
        self.clock = clock
        self.scoring = ScoringConfig.from_settings(settings)

    # ---- generate -----------------------------------------------------------

    async def generate(self, user_id: str, preferences: Optional[Dict[str, Any]] = None) -> RecommendationSet:
        """
        Return the user's current unsent set if one is still valid, otherwise build,
        persist and announce a new one. Raises NoRecommendationsAvailable when
        nothing survives filtering.
        """
        existing = await self.recommendations.find_latest_active(user_id, self.clock(), unsent_only=True)
        if existing:
            logger.info("generate reuse user_id=%s recommendation_id=%s", user_id, existing.recommendation_id)
            return existing

        if self.lock_factory is None:
            return await self._generate_new(user_id, preferences)

        lock = self.lock_factory(user_id)
        try:
            acquired = await lock.acquire()
            if not acquired:
                # someone else is generating for this user: wait, then reuse their result
                logger.info("generate lock busy user_id=%s, waiting", user_id)
                await lock.wait(timeout=self.settings.generation_lock_wait_s)
                existing = await self.recommendations.find_latest_active(user_id, self.clock(), unsent_only=True)
                if existing:
                    return existing
                acquired = await lock.acquire()
        except RedisError as e:
            # same accepted race as running without Redis
            logger.warning("generate lock unavailable user_id=%s err=%s, generating without lock", user_id, e)
            return await self._generate_new(user_id, preferences)

        if not acquired:
            logger.warning("generate lock still held user_id=%s, generating anyway", user_id)
            return await self._generate_new(user_id, preferences)
        try:
            existing = await self.recommendations.find_latest_active(user_id, self.clock(), unsent_only=True)
            if existing:
                return existing
            return await self._generate_new(user_id, preferences)
        finally:
            await self._release(lock, user_id)

    async def _release(self, lock, user_id: str) -> None:
        try:
            await lock.release()
        except RedisError as e:
            # the lock TTL frees it eventually
            logger.warning("generate lock release failed user_id=%s err=%s", user_id, e)

    async def rank(self, user_id: str, preferences: Optional[Dict[str, Any]] = None) -> List[ScoredProduct]:
        """Select, score, filter and cut candidates. No persistence."""
        preferred = list((preferences or {}).get("categories") or [])
        limit = self.settings.max_recommendations
        selection = await select_candidates(
            self.activities,
            self.products,
            user_id,
            max_recommendations=limit,
            history_limit=self.settings.activity_history_limit,
            preferred_categories=preferred,
        )
        if selection.fallback:
            # popularity path is not subject to the minimum score
            return score_popular(selection.candidates, preferred)[:limit]

        scored = score_candidates(
            selection.candidates,
            selection.activities,
            now=self.clock(),
            preferred_categories=preferred,
            config=self.scoring,
        )
        kept = [s for s in scored if s.score >= self.settings.minimum_score]
        logger.debug("rank user_id=%s scored=%s kept=%s", user_id, len(scored), len(kept))
        return kept[:limit]

    async def _generate_new(self, user_id: str, preferences: Optional[Dict[str, Any]]) -> RecommendationSet:
        t0 = time.perf_counter()
        products = await self.rank(user_id, preferences)
        if not products:
            logger.info("generate empty user_id=%s", user_id)
            raise NoRecommendationsAvailable(user_id)

        now = self.clock()
        rec = RecommendationSet(
            user_id=user_id,
            products=products,
            created_at=now,
            expires_at=now + timedelta(days=self.settings.expiry_days),
        )
        await self.recommendations.insert(rec)
        if self.cache is not None:
            await self.cache.invalidate(USER_VIEW_KEY.format(user_id=user_id))

        # announce only after a successful persist; a broker outage never fails generation
        await self._publish_created(rec)

        logger.info("generate done user_id=%s recommendation_id=%s items=%s time=%.3fs",
                    user_id, rec.recommendation_id, len(rec.products), time.perf_counter() - t0)
        return rec

    async def _publish_created(self, rec: RecommendationSet) -> bool:
        top = rec.products[:CREATED_EVENT_TOP_N]
        try:
            found = {p.product_id: p for p in await self.products.get_many_by_product_ids([s.product_id for s in top])}
            items = [
                {
                    "id": p.product_id,
                    "name": p.name,
                    "price": p.price,
                    "image_url": p.image_url,
                    "category": p.category,
                }
                for p in (found.get(s.product_id) for s in top)
                if p is not None
            ]
            if not items:
                logger.info("publish skipped recommendation_id=%s (no resolvable products)", rec.recommendation_id)
                return False
            await self.publisher.publish(
                self.settings.topic_recommendation_created,
                {
                    "recommendation_id": rec.recommendation_id,
                    "user_id": rec.user_id,
                    "products": items,
                    "timestamp": self.clock().isoformat(),
                },
            )
            return True
        except Exception as e:  # EventPublishFailure, UpstreamUnavailable, ...
            level = logging.WARNING if isinstance(e, EventPublishFailure) else logging.ERROR
            logger.log(level, "publish recommendation.created failed recommendation_id=%s err=%s",
                       rec.recommendation_id, e)
            return False

    # ---- read path ----------------------------------------------------------

    async def get(self, user_id: str) -> RecommendationView:
        """
        Current set for the user (generated on demand), with products resolved.
        NOTE: reading delivers the set: the first read marks it sent.
        """
        if self.cache is None:
            return await self._load_view(user_id)
        return await self.cache.get_or_fetch(
            USER_VIEW_KEY.format(user_id=user_id),
            lambda: self._load_view(user_id),
            ttl=self.settings.recommendation_cache_ttl,
            model=RecommendationView,
        )

    async def _load_view(self, user_id: str) -> RecommendationView:
        rec = await self.recommendations.find_latest_active(user_id, self.clock())
        if rec is None:
            rec = await self.generate(user_id)

        resolved = await self.resolve(rec)
        rec = await self._deliver(rec)

        return RecommendationView(
            recommendation_id=rec.recommendation_id,
            user_id=rec.user_id,
            products=resolved,
            created_at=rec.created_at,
            expires_at=rec.expires_at,
            sent=rec.sent,
            sent_at=rec.sent_at,
        )

    async def resolve(self, rec: RecommendationSet) -> List[ResolvedRecommendation]:
        """Join scored entries with the catalog, keeping rank order and dropping vanished products."""
        found = {p.product_id: p for p in await self.products.get_many_by_product_ids(
            [s.product_id for s in rec.products])}
        out = []
        for s in rec.products:
            p = found.get(s.product_id)
            if p is None:
                logger.debug("resolve drop recommendation_id=%s product_id=%s", rec.recommendation_id, s.product_id)
                continue
            out.append(ResolvedRecommendation(product=ProductSummary.from_product(p), score=s.score, reason=s.reason))
        return out

    async def _deliver(self, rec: RecommendationSet) -> RecommendationSet:
        """The read-path mutation: mark a set sent the first time it is read."""
        if rec.sent:
            return rec
        updated = await self.recommendations.set_sent(rec.recommendation_id, self.clock())
        if updated is None:
            # lost a race with another reader/mark_sent; reload what they wrote
            updated = await self.recommendations.get_by_id(rec.recommendation_id) or rec
        logger.info("deliver recommendation_id=%s sent_at=%s", updated.recommendation_id, updated.sent_at)
        return updated

    # ---- mark sent ----------------------------------------------------------

    async def mark_sent(self, recommendation_id: str) -> RecommendationSet:
        """Idempotent: an already sent set is returned untouched (sent_at unchanged)."""
        rec = await self.recommendations.get_by_id(recommendation_id)
        if rec is None:
            raise NotFound(f"Recommendation not found: {recommendation_id}")
        if rec.sent:
            return rec
        updated = await self.recommendations.set_sent(recommendation_id, self.clock())
        if updated is None:
            updated = await self.recommendations.get_by_id(recommendation_id) or rec
        if self.cache is not None:
            await self.cache.invalidate(USER_VIEW_KEY.format(user_id=updated.user_id))
        logger.info("mark_sent recommendation_id=%s sent_at=%s", recommendation_id, updated.sent_at)
        return updated
