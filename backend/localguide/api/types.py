from __future__ import annotations

from typing import Annotated, Literal

from fastapi import Query

Limit = Annotated[int, Query(ge=1, le=50)]
Offset = Annotated[int, Query(ge=0)]
MinRating = Annotated[float | None, Query(alias="minRating", ge=0, le=5)]

PriceRangeList = Annotated[
    str | None,
    Query(
        alias="priceRange",
        max_length=64,
        description="Comma separated price ranges (e.g., BUDGET,MODERATE)",
    ),
]

Latitude = Annotated[float | None, Query(ge=-90, le=90)]
Longitude = Annotated[float | None, Query(ge=-180, le=180)]

BusinessSort = Literal["name", "rating", "reviews", "distance", "trending"]
NearbySort = Literal["distance", "rating", "reviews", "name"]
SearchSort = Literal["relevance", "rating", "distance", "trending", "reviews"]
ReviewSort = Literal["newest", "oldest", "rating_high", "rating_low", "helpful"]
