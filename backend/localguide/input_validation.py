"""Sanitization for query-string inputs that reach the database or external APIs."""

from __future__ import annotations

import re

from fastapi import HTTPException

from .catalog import PRICE_RANGES

class InputValidator:
    """
    Validator for search, location and filter parameters.

    Query parameters are validated by FastAPI for type and range; this class
    covers the rules a type annotation cannot express.
    """

    # Turkey approximate bounds
    TR_LAT_MIN = 35.8
    TR_LAT_MAX = 42.2
    TR_LNG_MIN = 25.6
    TR_LNG_MAX = 44.9

    SEARCH_QUERY_MAX_LENGTH = 100
    SEARCH_QUERY_MIN_LENGTH = 1

    ALLOWED_LANGUAGES = {"tr", "en"}

    SQL_PATTERNS = (
        r"'\s*(OR|AND)\s+'",
        r"--",
        r"/\*",
        r"\*/",
        r";\s*(DROP|DELETE|INSERT|UPDATE|SELECT)",
    )

    @classmethod
    def validate_coordinates(
        cls,
        lat: float,
        lng: float,
        *,
        allow_outside_turkey: bool = True,
        context: str = "coordinates",
    ) -> tuple[float, float]:
        """
        Validate geographic coordinates and round them to 5 decimals.

        Raises:
            HTTPException: 422 when a value is out of range
        """
        if not (-90 <= lat <= 90):
            raise HTTPException(
                422, f"Invalid {context}: latitude must be between -90 and 90, got {lat}"
            )
        if not (-180 <= lng <= 180):
            raise HTTPException(
                422, f"Invalid {context}: longitude must be between -180 and 180, got {lng}"
            )

        if not allow_outside_turkey:
            inside = (
                cls.TR_LAT_MIN <= lat <= cls.TR_LAT_MAX and cls.TR_LNG_MIN <= lng <= cls.TR_LNG_MAX
            )
            if not inside:
                raise HTTPException(422, f"Invalid {context}: ({lat}, {lng}) is outside Turkey")

        return round(lat, 5), round(lng, 5)

    @classmethod
    def validate_search_query(cls, query: str | None, *, context: str = "search query") -> str:
        """
        Trim, truncate and strip a free-text query.

        Raises:
            HTTPException: 422 for empty queries or SQL-like fragments
        """
        if not query or not query.strip():
            raise HTTPException(422, f"Invalid {context}: query cannot be empty")

        query = query.strip()
        if len(query) > cls.SEARCH_QUERY_MAX_LENGTH:
            query = query[: cls.SEARCH_QUERY_MAX_LENGTH]

        for pattern in cls.SQL_PATTERNS:
            if re.search(pattern, query.upper()):
                raise HTTPException(
                    422, f"Invalid {context}: query contains potentially dangerous patterns"
                )

        # \w is unicode aware, so Turkish letters survive
        sanitized = re.sub(r"[^\w\s\-.,&']", "", query, flags=re.UNICODE).strip()
        if len(sanitized) < cls.SEARCH_QUERY_MIN_LENGTH:
            raise HTTPException(422, f"Invalid {context}: query contains only invalid characters")
        return sanitized

    @classmethod
    def validate_radius(
        cls, radius_km: float, *, min_km: float = 0.1, max_km: float = 50.0
    ) -> float:
        if radius_km < min_km:
            raise HTTPException(
                422, f"Invalid radius: must be at least {min_km}km, got {radius_km}"
            )
        if radius_km > max_km:
            raise HTTPException(
                422, f"Invalid radius: exceeds maximum {max_km}km, got {radius_km}"
            )
        return round(radius_km, 2)

    @classmethod
    def parse_price_ranges(cls, raw: str | None) -> list[str]:
        """Parse a comma separated priceRange filter ("BUDGET,MODERATE")."""
        if not raw:
            return []
        values: list[str] = []
        for part in raw.split(","):
            value = part.strip().upper()
            if not value:
                continue
            if value not in PRICE_RANGES:
                allowed = ", ".join(PRICE_RANGES)
                raise HTTPException(
                    422, f"Invalid priceRange: '{part.strip()}' (expected one of {allowed})"
                )
            if value not in values:
                values.append(value)
        return values

    @classmethod
    def sanitize_language_code(cls, language: str | None, *, default: str = "tr") -> str:
        if not language:
            return default
        language = language.lower().strip()
        if not re.match(r"^[a-z]{2}$", language):
            raise HTTPException(
                422, f"Invalid language code: must be 2-letter ISO code, got '{language}'"
            )
        if language not in cls.ALLOWED_LANGUAGES:
            return default
        return language


__all__ = ["InputValidator"]
