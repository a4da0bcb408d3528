from __future__ import annotations

from typing import Any

from .availability import is_open_now
from .catalog import price_range_symbol
from .gamification import level_progress
from .geo import format_distance


def get_attr(o: Any, key: str, default=None):
    if isinstance(o, dict):
        return o.get(key, default)
    return getattr(o, key, default)


def _cover_photo(b: Any) -> str | None:
    images = get_attr(b, "images", []) or []
    if not images:
        return None
    return get_attr(images[0], "url")


def hours_to_payload(rows: list[Any] | None) -> list[dict[str, Any]]:
    return [
        {
            "day": get_attr(row, "day"),
            "openTime": get_attr(row, "open_time"),
            "closeTime": get_attr(row, "close_time"),
            "isClosed": bool(get_attr(row, "is_closed", False)),
        }
        for row in rows or []
    ]


def business_to_list_item(b: Any) -> dict[str, Any]:
    price_range = get_attr(b, "price_range")
    payload = {
        "id": str(get_attr(b, "id")),
        "slug": get_attr(b, "slug"),
        "name": get_attr(b, "name"),
        "description": get_attr(b, "description"),
        "category": get_attr(b, "category"),
        "subcategory": get_attr(b, "subcategory"),
        "address": get_attr(b, "address"),
        "city": get_attr(b, "city"),
        "district": get_attr(b, "district"),
        "neighborhood": get_attr(b, "neighborhood"),
        "lat": get_attr(b, "lat"),
        "lng": get_attr(b, "lng"),
        "phone": get_attr(b, "phone"),
        "website": get_attr(b, "website"),
        "verified": bool(get_attr(b, "verified", False)),
        "isPremium": bool(get_attr(b, "is_premium", False)),
        "avgRating": float(get_attr(b, "avg_rating", 0.0) or 0.0),
        "totalReviews": int(get_attr(b, "total_reviews", 0) or 0),
        "totalCheckIns": int(get_attr(b, "total_check_ins", 0) or 0),
        "healthScore": float(get_attr(b, "health_score", 0.0) or 0.0),
        "trendScore": float(get_attr(b, "trend_score", 0.0) or 0.0),
        "priceRange": price_range,
        "priceSymbol": price_range_symbol(price_range),
        "keywords": list(get_attr(b, "keywords", []) or []),
        "amenities": list(get_attr(b, "amenities", []) or []),
        "coverPhoto": _cover_photo(b),
        "isOpen": is_open_now(get_attr(b, "working_hours", []) or []),
    }
    distance = get_attr(b, "distance")
    if distance is not None:
        payload["distance"] = round(float(distance), 2)
        payload["distanceText"] = format_distance(float(distance))
    return payload


def business_to_detail(b: Any, recent_reviews: list[Any] | None = None) -> dict[str, Any]:
    payload = business_to_list_item(b)
    payload.update(
        {
            "email": get_attr(b, "email"),
            "ownerId": get_attr(b, "owner_id"),
            "hygieneScore": float(get_attr(b, "hygiene_score", 0.0) or 0.0),
            "serviceScore": float(get_attr(b, "service_score", 0.0) or 0.0),
            "valueScore": float(get_attr(b, "value_score", 0.0) or 0.0),
            "covidSafety": bool(get_attr(b, "covid_safety", False)),
            "aiSummary": get_attr(b, "ai_summary"),
            "workingHours": hours_to_payload(get_attr(b, "working_hours")),
            "images": [
                {
                    "id": get_attr(image, "id"),
                    "url": get_attr(image, "url"),
                    "caption": get_attr(image, "caption"),
                    "aiTags": list(get_attr(image, "ai_tags", []) or []),
                    "position": get_attr(image, "position", 0),
                }
                for image in get_attr(b, "images", []) or []
            ],
            "createdAt": get_attr(b, "created_at"),
            "updatedAt": get_attr(b, "updated_at"),
        }
    )
    if recent_reviews is not None:
        payload["reviews"] = [review_to_payload(r) for r in recent_reviews]
    return payload


def review_to_payload(r: Any) -> dict[str, Any]:
    payload = {
        "id": str(get_attr(r, "id")),
        "userId": get_attr(r, "user_id"),
        "businessId": get_attr(r, "business_id"),
        "rating": get_attr(r, "rating"),
        "title": get_attr(r, "title"),
        "content": get_attr(r, "content"),
        "photos": list(get_attr(r, "photos", []) or []),
        "visitDate": get_attr(r, "visit_date"),
        "wouldRecommend": get_attr(r, "would_recommend"),
        "categories": get_attr(r, "category_ratings"),
        "helpfulVotes": int(get_attr(r, "helpful_votes", 0) or 0),
        "aiAnalysis": get_attr(r, "ai_analysis"),
        "aiAnalysisDate": get_attr(r, "ai_analysis_date"),
        "createdAt": get_attr(r, "created_at"),
        "updatedAt": get_attr(r, "updated_at"),
    }
    user = get_attr(r, "user")
    if user:
        payload["user"] = {
            "id": get_attr(user, "id"),
            "firstName": get_attr(user, "first_name"),
            "lastName": get_attr(user, "last_name"),
            "avatar": get_attr(user, "avatar"),
            "level": get_attr(user, "level"),
            "totalReviews": int(get_attr(user, "total_reviews", 0) or 0),
        }
    business = get_attr(r, "business")
    if business:
        payload["business"] = {
            "id": get_attr(business, "id"),
            "name": get_attr(business, "name"),
            "slug": get_attr(business, "slug"),
            "category": get_attr(business, "category"),
            "city": get_attr(business, "city"),
        }
    return payload


def user_to_payload(u: Any, *, include_progress: bool = False) -> dict[str, Any]:
    level = get_attr(u, "level") or "BEGINNER"
    xp = int(get_attr(u, "experience_points", 0) or 0)
    payload = {
        "id": get_attr(u, "id"),
        "externalId": get_attr(u, "external_id"),
        "email": get_attr(u, "email"),
        "firstName": get_attr(u, "first_name"),
        "lastName": get_attr(u, "last_name"),
        "avatar": get_attr(u, "avatar"),
        "bio": get_attr(u, "bio"),
        "location": get_attr(u, "location"),
        "website": get_attr(u, "website"),
        "socialLinks": dict(get_attr(u, "social_links", {}) or {}),
        "level": level,
        "experiencePoints": xp,
        "totalReviews": int(get_attr(u, "total_reviews", 0) or 0),
        "helpfulVotes": int(get_attr(u, "helpful_votes", 0) or 0),
        "totalPhotos": int(get_attr(u, "total_photos", 0) or 0),
        "visitedBusinesses": int(get_attr(u, "visited_businesses", 0) or 0),
        "followingCount": int(get_attr(u, "following_count", 0) or 0),
        "streakDays": int(get_attr(u, "streak_days", 0) or 0),
        "createdAt": get_attr(u, "created_at"),
    }
    if include_progress:
        payload["levelProgress"] = level_progress(level, xp)
    return payload


__all__ = [
    "business_to_detail",
    "business_to_list_item",
    "get_attr",
    "hours_to_payload",
    "review_to_payload",
    "user_to_payload",
]
