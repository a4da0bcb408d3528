from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from .validators import fold_text


def round_half_up(value: float) -> int:
    """Round halves up (2.5 -> 3), unlike the built-in round()."""
    return int(math.floor(value + 0.5))


@dataclass(slots=True)
class BusinessFeatures:
    business_id: str
    name: str
    category: str
    subcategory: str | None = None
    description: str = ""
    keywords: list[str] = field(default_factory=list)
    price_range: str = "MODERATE"
    avg_rating: float = 0.0
    total_reviews: int = 0
    health_score: float = 0.0
    verified: bool = False
    is_premium: bool = False
    distance_km: float | None = None

    @classmethod
    def from_payload(cls, payload: dict, distance_km: float | None = None) -> BusinessFeatures:
        return cls(
            business_id=str(payload.get("id")),
            name=payload.get("name") or "",
            category=payload.get("category") or "",
            subcategory=payload.get("subcategory"),
            description=payload.get("description") or "",
            keywords=list(payload.get("keywords") or []),
            price_range=payload.get("price_range") or "MODERATE",
            avg_rating=float(payload.get("avg_rating") or 0.0),
            total_reviews=int(payload.get("total_reviews") or 0),
            health_score=float(payload.get("health_score") or 0.0),
            verified=bool(payload.get("verified")),
            is_premium=bool(payload.get("is_premium")),
            distance_km=distance_km if distance_km is not None else payload.get("distance"),
        )


@dataclass(slots=True)
class UserTasteProfile:
    favorite_categories: list[str] = field(default_factory=list)
    preferred_price_ranges: list[str] = field(default_factory=list)
    visited_business_ids: set[str] = field(default_factory=set)
    review_keywords: list[str] = field(default_factory=list)
    level: str = "BEGINNER"
    location: tuple[float, float] | None = None

    def as_prompt_payload(self) -> dict:
        return {
            "favoriteCategories": self.favorite_categories,
            "preferredPriceRanges": self.preferred_price_ranges,
            "visitedBusinesses": len(self.visited_business_ids),
            "reviewKeywords": self.review_keywords[:20],
            "level": self.level,
            "hasLocation": self.location is not None,
        }


def query_terms(query: str | None) -> list[str]:
    return [term for term in fold_text(query).split() if term]


def relevance_score(
    features: BusinessFeatures, query: str, enhanced_query: str | None = None
) -> float:
    """Rank a business against the original and the AI-enhanced query."""
    name = fold_text(features.name)
    category = fold_text(features.category)
    subcategory = fold_text(features.subcategory)
    description = fold_text(features.description)
    keywords = [fold_text(k) for k in features.keywords]

    score = 0.0
    for term in query_terms(query):
        if term in name:
            score += 10
        if term in category:
            score += 8
        if subcategory and term in subcategory:
            score += 8
        score += 6 * sum(1 for keyword in keywords if term in keyword)
        if term in description:
            score += 4

    for term in query_terms(enhanced_query or query):
        if term in name:
            score += 3
        if term in description:
            score += 2

    if features.verified:
        score += 2
    if features.is_premium:
        score += 1
    score += features.avg_rating
    return score


def _matching_keywords(features: BusinessFeatures, profile: UserTasteProfile) -> list[str]:
    """Business keywords containing any of the user's review keywords."""
    wanted = [fold_text(k) for k in profile.review_keywords if k]
    if not wanted:
        return []
    return [
        keyword
        for keyword in features.keywords
        if any(term in fold_text(keyword) for term in wanted)
    ]


def personalized_score(features: BusinessFeatures, profile: UserTasteProfile) -> int:
    score = features.avg_rating * 8
    if features.category in profile.favorite_categories:
        score += 20
    if features.price_range in profile.preferred_price_ranges:
        score += 15
    score += features.health_score
    score += 2 * len(_matching_keywords(features, profile))
    score += min(features.total_reviews / 50, 5)
    if profile.location is not None and features.distance_km is not None:
        if features.distance_km < 2:
            score += 5
        elif features.distance_km > 10:
            score -= 5
    if profile.level in {"GURU", "LOCAL_HERO"} and features.health_score > 9:
        score += 5
    return round_half_up(score)


def match_reason(features: BusinessFeatures, profile: UserTasteProfile) -> str:
    reasons: list[str] = []
    if features.category in profile.favorite_categories:
        reasons.append(f"you enjoy {features.category} places")
    if features.avg_rating >= 4.5:
        reasons.append("it is highly rated")
    if features.price_range in profile.preferred_price_ranges:
        reasons.append("it fits your price preference")
    keywords = _matching_keywords(features, profile)
    if keywords:
        reasons.append(f"it matches your interest in {keywords[0]}")
    if features.health_score > 8.5:
        reasons.append("it has excellent hygiene scores")
    if not reasons:
        reasons.append("it is a good overall fit")
    return " and ".join(reasons[:2])


def overall_personalization(scores: Sequence[float]) -> int:
    if not scores:
        return 0
    average = sum(scores) / len(scores)
    return round_half_up(average / 100 * 100)


def health_score(
    hygiene: float, service: float, recent_reviews: int, rating: float
) -> float:
    volume = min(recent_reviews / 10, 10)
    return round(hygiene * 0.4 + service * 0.3 + volume * 0.2 + rating * 0.1, 1)


__all__ = [
    "BusinessFeatures",
    "round_half_up",
    "UserTasteProfile",
    "health_score",
    "match_reason",
    "overall_personalization",
    "personalized_score",
    "query_terms",
    "relevance_score",
]
