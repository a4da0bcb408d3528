"""Directory search: filtering, relevance ranking, nearby lookup and autocomplete."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .ai import enhance_query
from .availability import is_open_now
from .catalog import CATEGORIES, POPULAR_SEARCHES
from .geo import haversine_km, within_radius
from .metrics import search_requests_total
from .scoring import BusinessFeatures, query_terms, relevance_score
from .storage import DB
from .validators import fold_text

logger = logging.getLogger(__name__)

AI_ENHANCE_MIN_LENGTH = 4


@dataclass(slots=True)
class SearchParams:
    q: str | None = None
    city: str | None = None
    category: str | None = None
    district: str | None = None
    lat: float | None = None
    lng: float | None = None
    radius_km: float | None = None
    min_rating: float | None = None
    price_ranges: list[str] = field(default_factory=list)
    verified: bool | None = None
    premium: bool | None = None
    is_open: bool | None = None
    has_delivery: bool | None = None
    accessibility: bool | None = None
    sort_by: str = "relevance"
    limit: int = 20
    offset: int = 0
    ai_enhanced: bool = True

    @property
    def has_origin(self) -> bool:
        return self.lat is not None and self.lng is not None

    def as_filters(self) -> dict[str, Any]:
        filters = {
            "city": self.city,
            "category": self.category,
            "district": self.district,
            "minRating": self.min_rating,
            "priceRange": self.price_ranges or None,
            "verified": self.verified,
            "premium": self.premium,
            "isOpen": self.is_open,
            "hasDelivery": self.has_delivery,
            "accessibility": self.accessibility,
        }
        return {key: value for key, value in filters.items() if value is not None}


@dataclass(slots=True)
class SearchOutcome:
    items: list[dict[str, Any]]
    total: int
    enhanced_query: str | None = None
    suggestions: list[str] = field(default_factory=list)
    ai_enhanced: bool = False
    search_time_ms: int = 0


def search_blob(business: dict[str, Any]) -> str:
    parts = [
        business.get("name") or "",
        business.get("description") or "",
        business.get("category") or "",
        business.get("subcategory") or "",
        " ".join(business.get("keywords") or []),
    ]
    return fold_text(" ".join(parts))


def _sort_key(sort_by: str, has_origin: bool):
    if sort_by == "distance" and not has_origin:
        sort_by = "rating"
    if sort_by == "distance":
        return lambda b: (b.get("distance") is None, b.get("distance") or 0.0), False
    if sort_by == "relevance":
        return lambda b: b.get("relevance_score", 0.0), True
    if sort_by == "reviews":
        return lambda b: b.get("total_reviews") or 0, True
    if sort_by == "trending":
        return lambda b: b.get("trend_score") or 0.0, True
    if sort_by == "name":
        return lambda b: fold_text(b.get("name")), False
    return lambda b: b.get("avg_rating") or 0.0, True


def sort_businesses(
    items: list[dict[str, Any]], sort_by: str, *, has_origin: bool = False
) -> list[dict[str, Any]]:
    key, reverse = _sort_key(sort_by, has_origin)
    return sorted(items, key=key, reverse=reverse)


def _apply_amenity_filters(items: Iterable[dict[str, Any]], params: SearchParams):
    for item in items:
        amenities = set(item.get("amenities") or [])
        if params.has_delivery and "DELIVERY" not in amenities:
            continue
        if params.accessibility and "WHEELCHAIR_ACCESSIBLE" not in amenities:
            continue
        if params.is_open and not is_open_now(item.get("working_hours")):
            continue
        yield item


async def candidate_businesses(params: SearchParams) -> list[dict[str, Any]]:
    """Stored businesses narrowed by structured filters, with distances attached."""
    candidates = await DB.list_businesses(
        city=params.city,
        category=params.category,
        district=params.district,
        verified=params.verified,
        premium=params.premium,
        min_rating=params.min_rating,
        price_ranges=params.price_ranges,
    )
    if params.has_origin:
        located = []
        origin = (params.lat, params.lng)
        for item in candidates:
            if params.radius_km is None:
                distance = haversine_km(params.lat, params.lng, item["lat"], item["lng"])
            else:
                distance = within_radius(origin, item["lat"], item["lng"], params.radius_km)
                if distance is None:
                    continue
            item["distance"] = distance
            located.append(item)
        candidates = located
    return list(_apply_amenity_filters(candidates, params))


async def search_businesses(params: SearchParams) -> SearchOutcome:
    started = time.perf_counter()
    query = (params.q or "").strip()
    enhanced_query = query or None
    suggestions: list[str] = []
    use_ai = bool(params.ai_enhanced and len(query) >= AI_ENHANCE_MIN_LENGTH)
    if use_ai:
        enhancement = await enhance_query(query)
        enhanced_query = enhancement.get("enhancedQuery") or query
        suggestions = list(enhancement.get("suggestions") or [])

    candidates = await candidate_businesses(params)
    if query:
        terms = query_terms(enhanced_query) or query_terms(query)
        matched = []
        for item in candidates:
            blob = search_blob(item)
            if any(term in blob for term in terms):
                item["relevance_score"] = relevance_score(
                    BusinessFeatures.from_payload(item), query, enhanced_query
                )
                matched.append(item)
        candidates = matched
    else:
        for item in candidates:
            item["relevance_score"] = relevance_score(BusinessFeatures.from_payload(item), "")

    ordered = sort_businesses(candidates, params.sort_by, has_origin=params.has_origin)
    page = ordered[params.offset : params.offset + params.limit]
    search_requests_total.labels(kind="text").inc()
    return SearchOutcome(
        items=page,
        total=len(ordered),
        enhanced_query=enhanced_query,
        suggestions=suggestions,
        ai_enhanced=use_ai,
        search_time_ms=int((time.perf_counter() - started) * 1000),
    )


async def list_directory(params: SearchParams, search: str | None = None) -> tuple[list[dict[str, Any]], int]:
    """Plain listing: substring match over name, description and category."""
    candidates = await candidate_businesses(params)
    if search:
        needle = fold_text(search.strip())
        candidates = [
            item
            for item in candidates
            if needle in fold_text(f"{item.get('name')} {item.get('description')} {item.get('category')}")
        ]
    ordered = sort_businesses(candidates, params.sort_by, has_origin=params.has_origin)
    search_requests_total.labels(kind="list").inc()
    return ordered[params.offset : params.offset + params.limit], len(ordered)


async def nearby_businesses(params: SearchParams) -> tuple[list[dict[str, Any]], int]:
    candidates = await candidate_businesses(params)
    ordered = sort_businesses(candidates, params.sort_by, has_origin=True)
    search_requests_total.labels(kind="nearby").inc()
    return ordered[: params.limit], len(ordered)


# --- Autocomplete ---

INTENT_CUES = (
    (("yakın", "burada"), "Yakınımdaki {rest}", "Yakın Konum", "map-pin"),
    (("açık", "geç"), "Şu anda açık {rest}", "Açık Yerler", "clock"),
    (("ucuz", "uygun", "ekonomik"), "Uygun fiyatlı {rest}", "Ekonomik", "dollar-sign"),
    (("iyi", "kaliteli", "güzel"), "Kaliteli {rest}", "Kaliteli", "star"),
)


def highlight_match(text: str, query: str) -> str:
    """Wrap every case-insensitive occurrence of ``query`` in ``<mark>``.

    Spans are located on the folded text so dotted and dotless i match the
    same way the search does.
    """
    if not query:
        return text
    folded = fold_text(text)
    needle = fold_text(query)
    if not needle or len(folded) != len(text):
        pattern = re.compile(f"({re.escape(query)})", re.IGNORECASE)
        return pattern.sub(r"<mark>\1</mark>", text)

    parts: list[str] = []
    cursor = 0
    start = folded.find(needle)
    while start != -1:
        end = start + len(needle)
        parts.append(text[cursor:start])
        parts.append(f"<mark>{text[start:end]}</mark>")
        cursor = end
        start = folded.find(needle, end)
    parts.append(text[cursor:])
    return "".join(parts)


def intent_suggestions(query: str) -> list[dict[str, Any]]:
    lowered = query.lower()
    suggestions = []
    for cues, template, category, icon in INTENT_CUES:
        if not any(cue in lowered for cue in cues):
            continue
        rest = lowered
        for cue in cues:
            rest = rest.replace(cue, "")
        suggestions.append(
            {
                "type": "intent",
                "text": template.format(rest=" ".join(rest.split())).strip(),
                "highlight": query,
                "category": category,
                "icon": icon,
            }
        )
    return suggestions


def _suggestion(kind: str, text: str, query: str, category: str, icon: str, **extra: Any) -> dict[str, Any]:
    payload = {
        "type": kind,
        "text": text,
        "highlight": highlight_match(text, query),
        "category": category,
        "icon": icon,
    }
    payload.update(extra)
    return payload


async def autocomplete(
    q: str, *, city: str | None = None, limit: int = 10, kind: str = "all"
) -> list[dict[str, Any]]:
    term = fold_text(q)
    businesses = await DB.list_businesses(city=city)
    suggestions: list[dict[str, Any]] = []
    seen: set[tuple[str, str]] = set()

    def add(item: dict[str, Any]) -> None:
        key = (item["type"], fold_text(item["text"]))
        if key not in seen:
            seen.add(key)
            suggestions.append(item)

    if kind in {"businesses", "all"}:
        for business in businesses:
            if term in fold_text(business["name"]):
                add(
                    _suggestion(
                        "business",
                        business["name"],
                        q,
                        "İşletme",
                        "building",
                        id=business["id"],
                        slug=business["slug"],
                    )
                )

    if kind in {"categories", "all"}:
        categories = list(CATEGORIES) + [b["category"] for b in businesses]
        for category in categories:
            if term in fold_text(category):
                add(_suggestion("category", category, q, "Kategori", "tag"))

    if kind == "all":
        for business in businesses:
            for keyword in business.get("keywords") or []:
                if term in fold_text(keyword):
                    add(_suggestion("keyword", keyword, q, "Anahtar Kelime", "search"))
        if len(q) >= 3:
            for phrase in POPULAR_SEARCHES:
                if term in fold_text(phrase):
                    add(_suggestion("popular", phrase, q, "Popüler Arama", "trending-up"))

    suggestions.sort(
        key=lambda s: (not fold_text(s["text"]).startswith(term), len(s["text"]))
    )
    if not suggestions:
        suggestions = intent_suggestions(q)
    search_requests_total.labels(kind="autocomplete").inc()
    return suggestions[:limit]


# --- Intelligent search ---

CONTEXTUAL_RECOMMENDATIONS = {
    "find_restaurant": [
        "Check recent reviews for service speed",
        "Booking ahead is recommended at this hour",
    ],
    "find_service": [
        "Check the working hours before you go",
        "An appointment may be required",
    ],
    "check_hours": ["Hours may differ on public holidays"],
}
DEFAULT_RECOMMENDATIONS = ["Use filters for a more specific search"]


def contextual_recommendations(intent: str | None) -> list[str]:
    return list(CONTEXTUAL_RECOMMENDATIONS.get(intent or "", DEFAULT_RECOMMENDATIONS))


def params_from_interpretation(
    interpretation: dict[str, Any], context: dict[str, Any] | None
) -> dict[str, Any]:
    """Merge LLM search terms and filters with the caller's context."""
    filters = {k: v for k, v in (interpretation.get("filters") or {}).items() if v is not None}
    params: dict[str, Any] = {
        "q": " ".join(interpretation.get("searchTerms") or []),
        "intent": interpretation.get("intent"),
        **filters,
    }
    context = context or {}
    location = context.get("userLocation") or {}
    if location.get("city"):
        params["city"] = location["city"]
    preferences = context.get("userPreferences") or {}
    if preferences.get("pricePreference") and not params.get("priceRange"):
        params["priceRange"] = [preferences["pricePreference"]]
    return params


def search_params_from_dict(params: dict[str, Any], context: dict[str, Any] | None) -> SearchParams:
    location = (context or {}).get("userLocation") or {}
    distance_m = params.get("distance")
    has_origin = location.get("lat") is not None and location.get("lng") is not None
    return SearchParams(
        q=params.get("q") or None,
        city=params.get("city"),
        category=params.get("category") or None,
        lat=location.get("lat") if has_origin else None,
        lng=location.get("lng") if has_origin else None,
        radius_km=(distance_m / 1000) if has_origin and distance_m else None,
        min_rating=params.get("minRating"),
        price_ranges=[p for p in params.get("priceRange") or [] if p],
        is_open=params.get("isOpen") or None,
        has_delivery=params.get("hasDelivery") or None,
        sort_by="relevance",
        ai_enhanced=False,
    )


__all__ = [
    "SearchOutcome",
    "SearchParams",
    "autocomplete",
    "contextual_recommendations",
    "highlight_match",
    "intent_suggestions",
    "list_directory",
    "nearby_businesses",
    "params_from_interpretation",
    "search_businesses",
    "search_params_from_dict",
    "sort_businesses",
]
