from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ...ai import AIUnavailable, generate_business_insights
from ...contracts import BusinessCreate, BusinessUpdate
from ...input_validation import InputValidator
from ...maps import reverse_geocode
from ...metrics import businesses_total
from ...scoring import health_score
from ...search import SearchParams, list_directory, nearby_businesses
from ...serializers import business_to_detail, business_to_list_item
from ...storage import DB
from ..types import (
    BusinessSort,
    Latitude,
    Limit,
    Longitude,
    MinRating,
    NearbySort,
    Offset,
    PriceRangeList,
)
from ..utils import compact, current_user, ok, page_meta

router = APIRouter(tags=["businesses"])


@router.get("/businesses")
async def list_businesses(
    city: str | None = Query(None, max_length=80),
    category: str | None = Query(None, max_length=80),
    district: str | None = Query(None, max_length=80),
    search: str | None = Query(None, max_length=100),
    verified: bool | None = None,
    premium: bool | None = None,
    min_rating: MinRating = None,
    price_range: PriceRangeList = None,
    sort_by: BusinessSort = Query("rating", alias="sortBy"),
    lat: Latitude = None,
    lng: Longitude = None,
    limit: Limit = 20,
    offset: Offset = 0,
):
    params = SearchParams(
        city=city,
        category=category,
        district=district,
        lat=lat,
        lng=lng,
        verified=verified,
        premium=premium,
        min_rating=min_rating,
        price_ranges=InputValidator.parse_price_ranges(price_range),
        sort_by=sort_by,
        limit=limit,
        offset=offset,
    )
    items, total = await list_directory(params, search)
    filters = compact({**params.as_filters(), "search": search})
    return ok(
        [business_to_list_item(b) for b in items],
        meta=page_meta(total, limit, offset, filters=filters, sortBy=sort_by),
    )


@router.post("/businesses", status_code=201)
async def create_business(payload: BusinessCreate, user: dict[str, Any] = Depends(current_user)):
    record = await DB.create_business(payload, owner_id=user["id"])
    businesses_total.labels(event="created").inc()
    return ok(business_to_detail(record, []), message="Business created successfully")


@router.get("/businesses/nearby")
async def nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(5.0),
    category: str | None = Query(None, max_length=80),
    min_rating: MinRating = None,
    price_range: PriceRangeList = None,
    verified: bool | None = None,
    open_now: bool | None = Query(None, alias="openNow"),
    sort_by: NearbySort = Query("distance", alias="sortBy"),
    limit: Limit = 20,
):
    lat, lng = InputValidator.validate_coordinates(lat, lng, context="nearby search")
    radius = InputValidator.validate_radius(radius)
    params = SearchParams(
        category=category,
        lat=lat,
        lng=lng,
        radius_km=radius,
        min_rating=min_rating,
        price_ranges=InputValidator.parse_price_ranges(price_range),
        verified=verified,
        is_open=open_now or None,
        sort_by=sort_by,
        limit=limit,
    )
    items, total = await nearby_businesses(params)
    center: dict[str, Any] = {"lat": lat, "lng": lng}
    location = await reverse_geocode(lat, lng)
    if location is not None:
        center.update(location.as_payload())
    return ok(
        [business_to_list_item(b) for b in items],
        meta={
            "total": total,
            "center": center,
            "radius": radius,
            "filters": params.as_filters(),
            "sortBy": sort_by,
        },
    )


@router.get("/businesses/{business_id}")
async def get_business(business_id: str):
    record = await DB.get_business(business_id)
    if not record:
        raise HTTPException(404, "Business not found")
    recent = await DB.recent_reviews(record["id"])
    return ok(business_to_detail(record, recent))


@router.put("/businesses/{business_id}")
async def update_business(
    business_id: str, payload: BusinessUpdate, user: dict[str, Any] = Depends(current_user)
):
    record = await DB.update_business(business_id, user["id"], payload)
    businesses_total.labels(event="updated").inc()
    return ok(business_to_detail(record), message="Business updated successfully")


@router.delete("/businesses/{business_id}")
async def delete_business(business_id: str, user: dict[str, Any] = Depends(current_user)):
    await DB.delete_business(business_id, user["id"])
    businesses_total.labels(event="deleted").inc()
    return ok(None, message="Business deleted successfully")


@router.get("/businesses/{business_id}/insights")
async def business_insights(business_id: str):
    record = await DB.get_business(business_id)
    if not record:
        raise HTTPException(404, "Business not found")
    reviews = await DB.reviews_for_insights(record["id"])
    try:
        insights = await generate_business_insights(record, reviews)
    except AIUnavailable as exc:
        raise HTTPException(503, "AI insights are temporarily unavailable") from exc
    data = insights.model_dump()
    data["healthScore"] = health_score(
        record.get("hygiene_score") or 0.0,
        record.get("service_score") or 0.0,
        len(reviews),
        record.get("avg_rating") or 0.0,
    )
    return ok(data, meta={"businessId": record["id"], "reviewsAnalyzed": len(reviews)})
