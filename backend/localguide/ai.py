"""LLM-backed enrichment: review analysis, query understanding, insights.

Every public coroutine either raises ``AIUnavailable`` or returns a documented
fallback; callers never see transport errors from the provider.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping, Sequence
from hashlib import sha256
from typing import Any

from pydantic import ValidationError

from .cache import cache_query_enhancement, get_cached_query_enhancement
from .circuit_breaker import CircuitOpenError, get_circuit_breaker
from .metrics import ai_request_duration_seconds, ai_requests_total
from .openai_async import OpenAIUnavailable, post_json, post_multipart
from .schemas import (
    BusinessInsights,
    QueryEnhancement,
    QueryInterpretation,
    RecommendationStrategy,
    ReviewAnalysis,
    VoiceQuery,
)
from .scoring import round_half_up
from .settings import settings
from .validators import fold_text

logger = logging.getLogger(__name__)


class AIUnavailable(RuntimeError):
    """Raised when the LLM cannot produce a usable answer."""


_NEW_STYLE_MODEL_PREFIXES = ("gpt-4o", "gpt-4.1", "gpt-5", "o1", "o3", "o4", "o-")


def _token_param(model: str | None) -> str:
    name = (model or "").lower()
    for prefix in _NEW_STYLE_MODEL_PREFIXES:
        if name.startswith(prefix):
            return "max_completion_tokens"
    return "max_tokens"


def _fingerprint(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()[:10]


def _breaker():
    return get_circuit_breaker(
        "openai",
        failure_threshold=settings.AI_FAILURE_THRESHOLD,
        cooldown_seconds=settings.AI_COOLDOWN_SECONDS,
    )


async def _complete(payload: dict[str, Any]) -> dict[str, Any]:
    response = await post_json(
        "/chat/completions", payload, timeout=settings.OPENAI_TIMEOUT_SECONDS
    )
    choices = response.get("choices") or []
    content = (choices[0].get("message") or {}).get("content") if choices else None
    if not content:
        raise OpenAIUnavailable("Empty LLM response")
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise OpenAIUnavailable("LLM returned invalid JSON") from exc
    if not isinstance(parsed, dict):
        raise OpenAIUnavailable("LLM returned a non-object JSON payload")
    return parsed


async def chat_json(
    operation: str,
    *,
    system: str,
    user: str,
    model: str | None = None,
    temperature: float = 0.3,
    max_tokens: int = 800,
) -> dict[str, Any]:
    """Ask the chat model for a JSON object and return it parsed."""
    if not settings.OPENAI_API_KEY:
        ai_requests_total.labels(operation=operation, result="disabled").inc()
        raise AIUnavailable("AI enrichment is not configured")

    chosen = model or settings.AI_MODEL
    payload: dict[str, Any] = {
        "model": chosen,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
    }
    payload[_token_param(chosen)] = max_tokens

    started = time.perf_counter()
    try:
        result = await _breaker().call_async(_complete, payload)
    except CircuitOpenError as exc:
        ai_requests_total.labels(operation=operation, result="rejected").inc()
        raise AIUnavailable(str(exc)) from exc
    except OpenAIUnavailable as exc:
        ai_requests_total.labels(operation=operation, result="error").inc()
        logger.warning("AI %s failed (%s): %s", operation, _fingerprint(user), exc)
        raise AIUnavailable(f"{operation} failed") from exc
    finally:
        ai_request_duration_seconds.labels(operation=operation).observe(
            time.perf_counter() - started
        )
    ai_requests_total.labels(operation=operation, result="ok").inc()
    return result


def _validate(model_cls, payload: dict[str, Any], operation: str):
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        ai_requests_total.labels(operation=operation, result="invalid").inc()
        logger.warning("AI %s returned an invalid payload: %s", operation, payload)
        raise AIUnavailable(f"Invalid {operation} format") from exc


# --- Review analysis ---

REVIEW_SYSTEM_PROMPT = (
    "You analyse customer reviews of local businesses (mostly written in Turkish). "
    "Respond with a single JSON object and nothing else."
)

REVIEW_SCHEMA_HINT = (
    '{"sentiment": "VERY_POSITIVE|POSITIVE|NEUTRAL|NEGATIVE|VERY_NEGATIVE", '
    '"sentimentScore": 0-10, "tags": ["up to 10 keywords"], '
    '"categories": {"taste": 0-10, "service": 0-10, "cleanliness": 0-10, "price": 0-10, '
    '"atmosphere": 0-10}, "insights": ["up to 5 findings"], "summary": "one sentence", '
    '"confidence": 0-1, "language": "tr", "wordCount": number}'
)


async def analyze_review(review_text: str, business_type: str | None = None) -> ReviewAnalysis:
    user = json.dumps(
        {
            "review": review_text,
            "businessType": business_type or "",
            "schema": REVIEW_SCHEMA_HINT,
            "instructions": "Keep tags and summary in the review's language.",
        },
        ensure_ascii=False,
    )
    payload = await chat_json(
        "analyze_review", system=REVIEW_SYSTEM_PROMPT, user=user, max_tokens=1000
    )
    analysis = _validate(ReviewAnalysis, payload, "analyze_review")
    if not analysis.wordCount:
        analysis = analysis.model_copy(update={"wordCount": len(review_text.split())})
    return analysis


def _emotions_for_rating(rating: int) -> list[str]:
    if rating >= 4:
        return ["happy", "satisfied"]
    if rating >= 3:
        return ["neutral"]
    return ["disappointed"]


def review_analysis_for_storage(analysis: ReviewAnalysis, rating: int) -> dict[str, Any]:
    """Project an LLM analysis onto the 0-5 scale stored with a review."""
    categories = analysis.categories
    return {
        "sentiment": analysis.sentiment.lower(),
        "confidence": analysis.confidence,
        "keywords": list(analysis.tags),
        "categories": {
            "food": round_half_up(categories.taste / 2),
            "service": round_half_up(categories.service / 2),
            "atmosphere": round_half_up(categories.atmosphere / 2),
            "value": round_half_up(categories.price / 2),
            "cleanliness": round_half_up(categories.cleanliness / 2),
        },
        "emotions": _emotions_for_rating(rating),
        "summary": analysis.summary,
        "helpfulScore": analysis.confidence,
    }


def fallback_review_analysis(rating: int) -> dict[str, Any]:
    if rating >= 4:
        sentiment = "positive"
    elif rating >= 3:
        sentiment = "neutral"
    else:
        sentiment = "negative"
    return {
        "sentiment": sentiment,
        "confidence": 0.5,
        "keywords": [],
        "categories": {},
        "emotions": [],
        "summary": "Analysis unavailable",
        "helpfulScore": 0.5,
    }


async def analyze_review_for_storage(
    content: str, rating: int, business_type: str | None = None
) -> dict[str, Any]:
    try:
        analysis = await analyze_review(content, business_type)
    except AIUnavailable:
        return fallback_review_analysis(rating)
    return review_analysis_for_storage(analysis, rating)


# Keyword heuristics used when the LLM is not reachable.
POSITIVE_WORDS = (
    "harika", "mükemmel", "güzel", "lezzetli", "temiz", "hızlı",
    "kaliteli", "başarılı", "beğendim", "tavsiye",
)
NEGATIVE_WORDS = (
    "kötü", "berbat", "yavaş", "pahalı", "kirli", "soğuk", "tatsız", "başarısız", "beğenmedim",
)
TAG_CUES: dict[str, tuple[str, ...]] = {
    "lezzet": ("lezzet", "tat"),
    "servis": ("servis", "hizmet", "personel"),
    "temizlik": ("temiz", "hijyen"),
    "fiyat": ("fiyat", "ücret", "pahalı", "ucuz"),
    "atmosfer": ("atmosfer", "ortam", "dekor"),
    "hız": ("hızlı", "yavaş"),
    "kalite": ("kalite",),
}
CATEGORY_CUES: dict[str, tuple[str, ...]] = {
    "taste": ("lezzet", "tat", "yemek"),
    "service": ("servis", "hizmet", "personel", "garson"),
    "cleanliness": ("temiz", "hijyen", "kirli"),
    "price": ("fiyat", "ücret", "pahalı", "ucuz", "değer"),
    "atmosphere": ("atmosfer", "ortam", "dekor", "müzik"),
}
SENTIMENT_LABELS = {
    "VERY_POSITIVE": "Very positive",
    "POSITIVE": "Positive",
    "NEUTRAL": "Neutral",
    "NEGATIVE": "Negative",
    "VERY_NEGATIVE": "Very negative",
}


def _category_score(text: str, cues: Sequence[str], base: float) -> int:
    mentioned = [cue for cue in cues if cue in text]
    if not mentioned:
        return 0
    score = base
    for cue in mentioned:
        if f"{cue} güzel" in text or f"{cue} iyi" in text:
            score += 1
        elif f"{cue} kötü" in text or f"{cue} berbat" in text:
            score -= 2
    return max(0, min(10, round_half_up(score)))


def heuristic_review_analysis(review_text: str, business_type: str | None = None) -> ReviewAnalysis:
    """Keyword-count analysis producing the same shape as ``analyze_review``."""
    text = fold_text(review_text)
    positive = sum(1 for word in POSITIVE_WORDS if fold_text(word) in text)
    negative = sum(1 for word in NEGATIVE_WORDS if fold_text(word) in text)

    sentiment = "NEUTRAL"
    score = 5.0
    if positive > negative + 1:
        sentiment = "VERY_POSITIVE" if positive > 3 else "POSITIVE"
        score = min(8.5, 6 + positive * 0.5)
    elif negative > positive + 1:
        sentiment = "VERY_NEGATIVE" if negative > 3 else "NEGATIVE"
        score = max(2.0, 5 - negative * 0.7)

    tags = [tag for tag, cues in TAG_CUES.items() if any(fold_text(c) in text for c in cues)]
    categories = {
        name: _category_score(text, tuple(fold_text(c) for c in cues), score)
        for name, cues in CATEGORY_CUES.items()
    }

    insights: list[str] = []
    if sentiment == "VERY_POSITIVE":
        insights.append("Customer was very happy with the experience")
    elif sentiment == "VERY_NEGATIVE":
        insights.append("Customer reported serious problems")
    if "lezzet" in tags and score > 7:
        insights.append("Taste was praised")
    if "servis" in tags and score > 7:
        insights.append("Service quality was appreciated")

    summary = f"{SENTIMENT_LABELS[sentiment]} review."
    if tags:
        summary += f" Focus: {', '.join(tags[:5])}."
    if insights:
        summary += f" {insights[0]}."

    matched = positive + negative
    return ReviewAnalysis(
        sentiment=sentiment,
        sentimentScore=round(score, 1),
        tags=tags[:5],
        categories=categories,
        insights=insights,
        summary=summary,
        confidence=min(0.95, 0.6 + 0.05 * matched),
        language="tr",
        wordCount=len(review_text.split()),
    )


# --- Search enrichment ---

SEARCH_SYSTEM_PROMPT = (
    "You improve Turkish local-search queries (restaurants, cafes, barbers, shops). "
    "Respond with JSON only."
)


async def enhance_query(query: str) -> dict[str, Any]:
    """Expand a search query with synonyms; falls back to the query itself."""
    cached = get_cached_query_enhancement(query)
    if cached is not None:
        return cached
    user = json.dumps(
        {
            "query": query,
            "task": "Expand the query with synonyms and related terms and propose alternatives.",
            "schema": '{"enhancedQuery": "expanded query", "suggestions": ["s1", "s2", "s3"]}',
        },
        ensure_ascii=False,
    )
    try:
        payload = await chat_json(
            "enhance_query", system=SEARCH_SYSTEM_PROMPT, user=user, max_tokens=300
        )
        enhancement = _validate(QueryEnhancement, payload, "enhance_query")
    except AIUnavailable:
        return {"enhancedQuery": query, "suggestions": []}
    result = {
        "enhancedQuery": enhancement.enhancedQuery.strip() or query,
        "suggestions": enhancement.suggestions[:5],
    }
    cache_query_enhancement(query, result)
    return result


INTERPRET_SYSTEM_PROMPT = (
    "You are a natural-language understanding component for a local business directory. "
    "Extract the user's intent, entities and search filters. Respond with JSON only."
)

INTERPRET_SCHEMA_HINT = (
    '{"interpretation": "what the user wants", '
    '"intent": "find_restaurant|find_cafe|find_service|check_hours|compare_options|get_directions", '
    '"entities": {"businessType": "", "location": "", "timeRequirement": "", "priceRange": "", '
    '"specificFeatures": [], "mood": "casual|urgent|exploring|specific"}, '
    '"searchTerms": ["keywords"], '
    '"filters": {"category": "", "isOpen": true, "priceRange": ["BUDGET"], "hasDelivery": false, '
    '"minRating": 4, "distance": 5000}, '
    '"suggestions": ["alternative searches"], "confidence": 0.85}'
)


def _context_lines(context: Mapping[str, Any] | None) -> list[str]:
    if not context:
        return []
    lines: list[str] = []
    location = context.get("userLocation") or {}
    if location:
        place = location.get("city") or "unknown city"
        if location.get("district"):
            place = f"{place}, {location['district']}"
        lines.append(f"User location: {place}")
    preferences = context.get("userPreferences") or {}
    if preferences.get("favoriteCategories"):
        lines.append(f"Favourite categories: {', '.join(preferences['favoriteCategories'])}")
    if preferences.get("pricePreference"):
        lines.append(f"Price preference: {preferences['pricePreference']}")
    if preferences.get("pastSearches"):
        lines.append(f"Past searches: {', '.join(preferences['pastSearches'][:3])}")
    time_context = context.get("timeContext") or {}
    if time_context:
        lines.append(f"Current time: {time_context.get('currentTime')}")
        lines.append(f"Weekend: {'yes' if time_context.get('isWeekend') else 'no'}")
        if time_context.get("timeOfDay"):
            lines.append(f"Time of day: {time_context['timeOfDay']}")
    return lines


async def interpret_query(
    query: str, context: Mapping[str, Any] | None = None
) -> QueryInterpretation:
    user = json.dumps(
        {
            "query": query,
            "context": _context_lines(context),
            "schema": INTERPRET_SCHEMA_HINT,
        },
        ensure_ascii=False,
    )
    payload = await chat_json(
        "interpret_query",
        system=INTERPRET_SYSTEM_PROMPT,
        user=user,
        temperature=0.2,
        max_tokens=800,
    )
    return _validate(QueryInterpretation, payload, "interpret_query")


async def transcribe_audio(audio: bytes, language: str = "tr") -> str:
    """Speech-to-text through the transcription endpoint."""
    if not settings.OPENAI_API_KEY:
        raise AIUnavailable("AI enrichment is not configured")
    try:
        response = await _breaker().call_async(
            post_multipart,
            "/audio/transcriptions",
            {"model": settings.AI_TRANSCRIBE_MODEL, "language": language},
            {"file": ("audio.wav", audio, "audio/wav")},
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
    except (CircuitOpenError, OpenAIUnavailable) as exc:
        ai_requests_total.labels(operation="transcribe", result="error").inc()
        raise AIUnavailable("Transcription failed") from exc
    text = str(response.get("text") or "").strip()
    if not text:
        ai_requests_total.labels(operation="transcribe", result="empty").inc()
        raise AIUnavailable("Empty transcription")
    ai_requests_total.labels(operation="transcribe", result="ok").inc()
    return text


async def enhance_voice_query(transcription: str, city: str | None = None) -> dict[str, Any]:
    fallback = {
        "text": transcription,
        "intent": "general_search",
        "suggestions": [],
        "confidence": 0.5,
        "filters": {},
        "location": None,
    }
    user = json.dumps(
        {
            "transcription": transcription,
            "city": city,
            "task": "Detect the intent, optimise the query, propose suggestions, rate confidence.",
            "schema": (
                '{"text": "optimised query", "intent": "find_restaurant|find_nearby|check_open_now", '
                '"suggestions": [], "confidence": 0.0-1.0, '
                '"filters": {"isOpen": true, "priceRange": ["BUDGET"], "category": ""}, '
                '"location": "nearby"}'
            ),
        },
        ensure_ascii=False,
    )
    try:
        payload = await chat_json(
            "voice_query", system=SEARCH_SYSTEM_PROMPT, user=user, max_tokens=500
        )
        voice = _validate(VoiceQuery, payload, "voice_query")
    except AIUnavailable:
        return fallback
    return {
        "text": voice.text.strip() or transcription,
        "intent": voice.intent,
        "suggestions": voice.suggestions,
        "confidence": voice.confidence,
        "filters": voice.filters.model_dump(exclude_none=True),
        "location": voice.location,
    }


# --- Business insights and recommendation strategy ---

INSIGHTS_SYSTEM_PROMPT = (
    "You are a business consultant analysing customer feedback for a local business. "
    "Respond with JSON only."
)


async def generate_business_insights(
    business: Mapping[str, Any], reviews: Sequence[Mapping[str, Any]]
) -> BusinessInsights:
    recent = [str(review.get("content") or "") for review in list(reviews)[:50]]
    user = json.dumps(
        {
            "business": {
                "name": business.get("name"),
                "category": business.get("category"),
                "district": business.get("district"),
                "city": business.get("city"),
                "avgRating": business.get("avg_rating"),
                "totalReviews": business.get("total_reviews"),
            },
            "reviews": recent,
            "schema": (
                '{"strengths": [], "weaknesses": [], "recommendations": [], "overallScore": 0-10, '
                '"competitorAnalysis": "", "marketPosition": "", "trendsAnalysis": ""}'
            ),
        },
        ensure_ascii=False,
    )
    payload = await chat_json(
        "business_insights",
        system=INSIGHTS_SYSTEM_PROMPT,
        user=user,
        model=settings.AI_INSIGHTS_MODEL,
        temperature=0.4,
        max_tokens=1500,
    )
    return _validate(BusinessInsights, payload, "business_insights")


FALLBACK_STRATEGY = {
    "strategy": "General recommendations",
    "focusAreas": ["quality", "location"],
    "recommendations": [],
    "personalizedMessage": "We picked these places for you!",
}


async def recommendation_strategy(
    profile: Mapping[str, Any], candidates: Sequence[Mapping[str, Any]], rec_type: str
) -> dict[str, Any]:
    user = json.dumps(
        {
            "profile": dict(profile),
            "type": rec_type,
            "candidates": [
                {"name": c.get("name"), "category": c.get("category"), "rating": c.get("avgRating")}
                for c in list(candidates)[:10]
            ],
            "schema": (
                '{"strategy": "", "focusAreas": [], '
                '"recommendations": [{"type": "", "reason": "", "priority": "high|medium|low"}], '
                '"personalizedMessage": ""}'
            ),
        },
        ensure_ascii=False,
    )
    try:
        payload = await chat_json(
            "recommendation_strategy",
            system="You design personalised recommendation strategies. Respond with JSON only.",
            user=user,
            temperature=0.6,
            max_tokens=600,
        )
        strategy = _validate(RecommendationStrategy, payload, "recommendation_strategy")
    except AIUnavailable:
        return dict(FALLBACK_STRATEGY)
    return strategy.model_dump()


__all__ = [
    "AIUnavailable",
    "analyze_review",
    "analyze_review_for_storage",
    "chat_json",
    "enhance_query",
    "enhance_voice_query",
    "fallback_review_analysis",
    "generate_business_insights",
    "heuristic_review_analysis",
    "interpret_query",
    "recommendation_strategy",
    "review_analysis_for_storage",
    "transcribe_audio",
]
