"""Personalised business recommendations built from a user's review history."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from .ai import recommendation_strategy
from .geo import haversine_km
from .scoring import (
    BusinessFeatures,
    UserTasteProfile,
    match_reason,
    overall_personalization,
    personalized_score,
)
from .serializers import business_to_list_item
from .storage import DB

logger = logging.getLogger(__name__)

RECOMMENDATION_TYPES = ("general", "nearby", "trending", "similar")
NEARBY_LIMIT_KM = 10.0
REFRESH_INTERVAL = timedelta(hours=24)


@dataclass(slots=True)
class RecommendationRequest:
    rec_type: str = "general"
    city: str | None = None
    category: str | None = None
    lat: float | None = None
    lng: float | None = None
    limit: int = 10
    exclude_visited: bool = True

    @property
    def location(self) -> tuple[float, float] | None:
        if self.lat is None or self.lng is None:
            return None
        return (self.lat, self.lng)


def build_profile(
    user: dict[str, Any], reviews: Sequence[dict[str, Any]], location: tuple[float, float] | None = None
) -> UserTasteProfile:
    """Derive taste signals: liked categories, price ranges, visited ids and keywords."""
    liked: Counter[str] = Counter()
    reviewed: Counter[str] = Counter()
    prices: Counter[str] = Counter()
    keywords: list[str] = []
    visited: set[str] = set()
    for review in reviews:
        visited.add(review["business_id"])
        business = review.get("business") or {}
        category = business.get("category")
        if category:
            reviewed[category] += 1
            if (review.get("rating") or 0) >= 4:
                liked[category] += 1
        if business.get("price_range"):
            prices[business["price_range"]] += 1
        analysis = review.get("ai_analysis") or {}
        for keyword in analysis.get("keywords") or analysis.get("tags") or []:
            if keyword not in keywords:
                keywords.append(keyword)

    favourites = liked or reviewed
    return UserTasteProfile(
        favorite_categories=[name for name, _ in favourites.most_common()],
        preferred_price_ranges=[name for name, _ in prices.most_common()],
        visited_business_ids=visited,
        review_keywords=keywords,
        level=user.get("level") or "BEGINNER",
        location=location,
    )


def _candidate_pool(
    businesses: list[dict[str, Any]], profile: UserTasteProfile, request: RecommendationRequest
) -> list[dict[str, Any]]:
    pool = []
    for business in businesses:
        if request.exclude_visited and business["id"] in profile.visited_business_ids:
            continue
        if request.rec_type == "similar" and business["category"] not in profile.favorite_categories:
            continue
        if request.location is not None:
            business["distance"] = haversine_km(
                request.lat, request.lng, business["lat"], business["lng"]
            )
            if request.rec_type == "nearby" and business["distance"] > NEARBY_LIMIT_KM:
                continue
        pool.append(business)
    if request.rec_type == "trending":
        pool.sort(key=lambda b: b.get("trend_score") or 0.0, reverse=True)
    return pool


async def recommend(user: dict[str, Any], request: RecommendationRequest) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Score candidate businesses for a user; returns (items, meta)."""
    reviews = await DB.reviews_with_business_for_user(user["id"])
    profile = build_profile(user, reviews, request.location)
    businesses = await DB.list_businesses(city=request.city, category=request.category)
    pool = _candidate_pool(businesses, profile, request)

    scored: list[tuple[dict[str, Any], int]] = []
    for business in pool:
        features = BusinessFeatures.from_payload(business)
        score = personalized_score(features, profile)
        item = business_to_list_item(business)
        item["personalizedScore"] = score
        item["matchReason"] = match_reason(features, profile)
        item["distanceKm"] = (
            round(business["distance"], 2) if business.get("distance") is not None else None
        )
        scored.append((item, score))

    # sorted() is stable, so trending keeps its trendScore order between equal scores
    scored.sort(key=lambda pair: pair[1], reverse=True)
    items = [item for item, _ in scored[: request.limit]]

    strategy = await recommendation_strategy(profile.as_prompt_payload(), items, request.rec_type)
    meta = {
        "userId": user["id"],
        "type": request.rec_type,
        "total": len(items),
        "personalizedScore": overall_personalization([i["personalizedScore"] for i in items]),
        "recommendations": strategy,
        "nextUpdate": (datetime.now(UTC) + REFRESH_INTERVAL).isoformat(),
    }
    logger.info(
        "Recommendations generated",
        extra={"user_id": user["id"], "type": request.rec_type, "count": len(items)},
    )
    return items, meta


__all__ = ["RECOMMENDATION_TYPES", "RecommendationRequest", "build_profile", "recommend"]
