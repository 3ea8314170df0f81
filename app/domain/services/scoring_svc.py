"""
Scoring engine: pure functions, no I/O.

Every candidate gets an additive score made of
  - base quality (rating),
  - declared category preference,
  - weighted activity counts in the candidate's category,
  - tag similarity to previously touched products, decayed per day,
  - a flat trending bonus for very busy categories,
clamped to [0, 1], plus the reason code that explains it.
"""
from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from app.domain.models.activity import ResolvedActivity
from app.domain.models.product import Product
from app.domain.models.recommendation import Reason, ScoredProduct
from app.domain.services.constants import (
    BASE_QUALITY_WEIGHT,
    CATEGORY_ACTIVITY_CAP,
    CATEGORY_ACTIVITY_DIVISOR,
    POPULAR_PREFERENCE_BOOST,
    PREFERENCE_BOOST,
    REASON_PRIORITY,
    SECONDS_PER_DAY,
    SIMILARITY_CAP,
    TRENDING_BOOST,
    TRENDING_THRESHOLD,
    UNKNOWN_ACTIVITY_WEIGHT,
)

DEFAULT_WEIGHTS = {
    "purchase": 1.0,
    "cart": 0.8,
    "wishlist": 0.7,
    "view": 0.5,
    "search": 0.3,
}


@dataclass(frozen=True)
class ScoringConfig:
    activity_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    time_decay_factor: float = 0.9

    @classmethod
    def from_settings(cls, settings) -> "ScoringConfig":
        return cls(
            activity_weights=dict(settings.activity_weights),
            time_decay_factor=settings.time_decay_factor,
        )

    def weight(self, activity_type: str) -> float:
        return self.activity_weights.get(activity_type, UNKNOWN_ACTIVITY_WEIGHT)


def clamp(score: float) -> float:
    return min(max(score, 0.0), 1.0)


def time_decay(factor: float, then: datetime, now: datetime) -> float:
    """factor ** whole days elapsed; future timestamps count as today."""
    days = math.floor((now - then).total_seconds() / SECONDS_PER_DAY)
    return factor ** max(days, 0)


def tag_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    sa, sb = set(a), set(b)
    if not sa or not sb:
        return 0.0
    return len(sa & sb) / max(len(sa), len(sb))


class CategoryStats:
    """Per-category activity counts for one user's history."""

    def __init__(self) -> None:
        self.counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.totals: Dict[str, int] = defaultdict(int)

    @classmethod
    def from_activities(cls, activities: Sequence[ResolvedActivity]) -> "CategoryStats":
        stats = cls()
        for act, prod in activities:
            if not prod.category:
                continue
            stats.counts[prod.category][act.activity_type.value] += 1
            stats.totals[prod.category] += 1
        return stats

    def __contains__(self, category: str) -> bool:
        return self.totals.get(category, 0) > 0

    def weighted(self, category: str, config: ScoringConfig) -> Dict[str, float]:
        counts = self.counts.get(category, {})
        return {t: counts.get(t, 0) * config.weight(t) for t in config.activity_weights}

    def total(self, category: str) -> int:
        return self.totals.get(category, 0)


def attribute_reason(weighted: Dict[str, float]) -> Reason:
    """Highest weighted activity type wins; ties resolve in REASON_PRIORITY order.

    A category dominated by search activity keeps the default reason.
    """
    search = weighted.get("search", 0.0)
    for i, (activity_type, reason) in enumerate(REASON_PRIORITY):
        w = weighted.get(activity_type, 0.0)
        later = [weighted.get(t, 0.0) for t, _ in REASON_PRIORITY[i + 1:]]
        if all(w >= other for other in later) and w >= search:
            return Reason(reason)
    return Reason.POPULAR_IN_CATEGORY


def similarity_boost(
    candidate: Product,
    activities: Sequence[ResolvedActivity],
    now: datetime,
    config: ScoringConfig,
) -> float:
    cand_tags = set(candidate.tags)
    total = 0.0
    for act, prod in activities:
        if prod.product_id == candidate.product_id:
            continue
        sim = tag_similarity(prod.tags, cand_tags)
        if sim <= 0:
            continue
        total += sim * config.weight(act.activity_type.value) * time_decay(
            config.time_decay_factor, act.timestamp, now
        )
    return min(total, SIMILARITY_CAP)


def score_candidate(
    candidate: Product,
    activities: Sequence[ResolvedActivity],
    stats: CategoryStats,
    preferred: set,
    now: datetime,
    config: ScoringConfig,
) -> ScoredProduct:
    score = candidate.rating / 5 * BASE_QUALITY_WEIGHT
    reason = Reason.POPULAR_IN_CATEGORY

    if candidate.category in preferred:
        score += PREFERENCE_BOOST

    if candidate.category in stats:
        weighted = stats.weighted(candidate.category, config)
        score += min(sum(weighted.values()) / CATEGORY_ACTIVITY_DIVISOR, CATEGORY_ACTIVITY_CAP)
        reason = attribute_reason(weighted)

    score += similarity_boost(candidate, activities, now, config)

    if stats.total(candidate.category) > TRENDING_THRESHOLD:
        score += TRENDING_BOOST
        reason = Reason.TRENDING

    return ScoredProduct(product_id=candidate.product_id, score=clamp(score), reason=reason)


def score_candidates(
    candidates: Sequence[Product],
    activities: Sequence[ResolvedActivity],
    *,
    now: datetime,
    preferred_categories: Optional[Iterable[str]] = None,
    config: Optional[ScoringConfig] = None,
) -> List[ScoredProduct]:
    """Score and rank candidates, highest first. sorted() is stable so ties keep input order."""
    config = config or ScoringConfig()
    preferred = set(preferred_categories or [])
    stats = CategoryStats.from_activities(activities)
    scored = [score_candidate(c, activities, stats, preferred, now, config) for c in candidates]
    return sorted(scored, key=lambda s: s.score, reverse=True)


def score_popular(
    products: Sequence[Product],
    preferred_categories: Optional[Iterable[str]] = None,
) -> List[ScoredProduct]:
    """Scoring for users without history: rating plus preference, always popular_in_category."""
    preferred = set(preferred_categories or [])
    out = []
    for p in products:
        score = p.rating / 5
        if p.category in preferred:
            score += POPULAR_PREFERENCE_BOOST
        out.append(ScoredProduct(product_id=p.product_id, score=clamp(score), reason=Reason.POPULAR_IN_CATEGORY))
    return out
