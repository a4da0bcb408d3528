from __future__ import annotations

from fastapi import APIRouter, Query

from ...input_validation import InputValidator
from ...maps import geocode, reverse_geocode
from ..utils import ok

router = APIRouter(tags=["maps"])


@router.get("/maps/geocode")
async def geocode_address(
    query: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(5, ge=1, le=10),
    region: str = Query("tr", min_length=2, max_length=2),
):
    matches = await geocode(query, region=region.lower())
    return ok([m.as_payload() for m in matches[:limit]], meta={"query": query, "count": len(matches)})


@router.get("/maps/reverse")
async def reverse(lat: float = Query(...), lng: float = Query(...)):
    lat, lng = InputValidator.validate_coordinates(lat, lng, context="reverse geocode")
    location = await reverse_geocode(lat, lng)
    return ok(location.as_payload() if location else None, meta={"lat": lat, "lng": lng})
