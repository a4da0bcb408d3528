from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Literal

from fastapi import APIRouter, HTTPException, Query

from ...ai import AIUnavailable, enhance_voice_query, interpret_query, transcribe_audio
from ...contracts import IntelligentSearchRequest, VoiceSearchRequest
from ...input_validation import InputValidator
from ...metrics import search_requests_total
from ...search import (
    SearchParams,
    autocomplete,
    contextual_recommendations,
    params_from_interpretation,
    search_businesses,
    search_params_from_dict,
)
from ...serializers import business_to_list_item
from ...settings import settings
from ..types import Latitude, Limit, Longitude, MinRating, Offset, PriceRangeList, SearchSort
from ..utils import ok, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])


def _search_item(business: dict) -> dict:
    item = business_to_list_item(business)
    item["relevanceScore"] = round(float(business.get("relevance_score", 0.0)), 2)
    return item


@router.get("/search")
async def search(
    q: str = Query(..., min_length=1, max_length=100),
    city: str | None = Query(None, max_length=80),
    category: str | None = Query(None, max_length=80),
    district: str | None = Query(None, max_length=80),
    lat: Latitude = None,
    lng: Longitude = None,
    radius: float = Query(10.0, ge=0.5, le=50),
    min_rating: MinRating = None,
    price_range: PriceRangeList = None,
    sort_by: SearchSort = Query("relevance", alias="sortBy"),
    is_open: bool | None = Query(None, alias="isOpen"),
    has_delivery: bool | None = Query(None, alias="hasDelivery"),
    accessibility: bool | None = None,
    ai_enhanced: bool = Query(True, alias="aiEnhanced"),
    limit: Limit = 20,
    offset: Offset = 0,
):
    query = InputValidator.validate_search_query(q)
    has_origin = lat is not None and lng is not None
    params = SearchParams(
        q=query,
        city=city,
        category=category,
        district=district,
        lat=lat if has_origin else None,
        lng=lng if has_origin else None,
        radius_km=radius if has_origin else None,
        min_rating=min_rating,
        price_ranges=InputValidator.parse_price_ranges(price_range),
        is_open=is_open or None,
        has_delivery=has_delivery or None,
        accessibility=accessibility or None,
        sort_by=sort_by,
        limit=limit,
        offset=offset,
        ai_enhanced=ai_enhanced,
    )
    outcome = await search_businesses(params)
    return ok(
        [_search_item(b) for b in outcome.items],
        meta=page_meta(
            outcome.total,
            limit,
            offset,
            query=query,
            enhancedQuery=outcome.enhanced_query,
            searchTime=outcome.search_time_ms,
            aiEnhanced=outcome.ai_enhanced,
            suggestions=outcome.suggestions,
            filters=params.as_filters(),
            sortBy=sort_by,
        ),
    )


@router.get("/search/autocomplete")
async def search_autocomplete(
    q: str = Query(..., min_length=1, max_length=50),
    city: str | None = Query(None, max_length=80),
    limit: int = Query(10, ge=1, le=20),
    type_: Literal["businesses", "categories", "all"] = Query("all", alias="type"),
):
    suggestions = await autocomplete(q.strip(), city=city, limit=limit, kind=type_)
    return ok(suggestions, meta={"query": q, "count": len(suggestions), "type": type_})


@router.post("/search/intelligent")
async def intelligent_search(payload: IntelligentSearchRequest):
    started = time.perf_counter()
    context = payload.context.model_dump(by_alias=True, mode="json") if payload.context else None
    try:
        interpretation = await interpret_query(payload.query, context)
    except AIUnavailable as exc:
        raise HTTPException(400, "Could not understand the search query") from exc

    understood = interpretation.model_dump(mode="json")
    search_params = params_from_interpretation(understood, context)
    params: SearchParams = search_params_from_dict(search_params, context)
    outcome = await search_businesses(params)
    search_requests_total.labels(kind="intelligent").inc()
    return ok(
        {
            "originalQuery": payload.query,
            "interpretation": interpretation.interpretation,
            "intent": interpretation.intent,
            "searchParams": search_params,
            "results": [_search_item(b) for b in outcome.items],
            "suggestions": interpretation.suggestions,
            "contextualRecommendations": contextual_recommendations(interpretation.intent),
        },
        meta={
            "total": outcome.total,
            "confidence": interpretation.confidence,
            "processingTime": int((time.perf_counter() - started) * 1000),
        },
    )


@router.post("/search/voice")
async def voice_search(payload: VoiceSearchRequest):
    language = InputValidator.sanitize_language_code(
        payload.language, default=settings.DEFAULT_LANGUAGE
    )
    try:
        audio = base64.b64decode(payload.audio_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(422, "audioData must be base64 encoded") from exc
    if not audio:
        raise HTTPException(422, "audioData is empty")

    try:
        transcription = await transcribe_audio(audio, language)
    except AIUnavailable as exc:
        raise HTTPException(400, "Could not transcribe the audio") from exc

    enhanced = await enhance_voice_query(transcription, payload.city)
    search_requests_total.labels(kind="voice").inc()
    return ok(
        {
            "transcription": transcription,
            "enhancedQuery": enhanced["text"],
            "suggestions": enhanced["suggestions"],
            "intent": enhanced["intent"],
            "confidence": enhanced["confidence"],
            "filters": enhanced["filters"],
            "location": enhanced["location"],
            "language": language,
        }
    )
