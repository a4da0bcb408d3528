from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from ...input_validation import InputValidator
from ...recommendations import RecommendationRequest, recommend
from ..types import Latitude, Longitude
from ..utils import current_user, ok

router = APIRouter(tags=["recommendations"])


@router.get("/recommendations")
async def recommendations(
    city: str | None = Query(None, max_length=80),
    category: str | None = Query(None, max_length=80),
    type_: Literal["general", "nearby", "trending", "similar"] = Query("general", alias="type"),
    lat: Latitude = None,
    lng: Longitude = None,
    exclude_visited: bool = Query(True, alias="excludeVisited"),
    limit: int = Query(10, ge=1, le=20),
    user: dict[str, Any] = Depends(current_user),
):
    if type_ == "nearby" and (lat is None or lng is None):
        raise HTTPException(422, "lat and lng are required for nearby recommendations")
    if lat is not None and lng is not None:
        lat, lng = InputValidator.validate_coordinates(lat, lng, context="recommendations")
    else:
        lat = lng = None
    request = RecommendationRequest(
        rec_type=type_,
        city=city,
        category=category,
        lat=lat,
        lng=lng,
        limit=limit,
        exclude_visited=exclude_visited,
    )
    items, meta = await recommend(user, request)
    return ok(items, meta=meta)
