from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from .cache import (
    cache_geocode,
    cache_reverse_geocode,
    get_cached_geocode,
    get_cached_reverse_geocode,
)
from .settings import settings

logger = logging.getLogger(__name__)


class MapsUnavailable(RuntimeError):
    pass


@dataclass(slots=True)
class LocationInfo:
    address: str | None = None
    city: str | None = None
    district: str | None = None
    neighborhood: str | None = None
    country: str | None = None
    lat: float | None = None
    lng: float | None = None
    place_id: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        if "place_id" in payload:
            payload["placeId"] = payload.pop("place_id")
        return payload


_COMPONENT_FIELDS = {
    "administrative_area_level_1": "city",
    "administrative_area_level_2": "district",
    "sublocality": "district",
    "neighborhood": "neighborhood",
    "sublocality_level_1": "neighborhood",
    "country": "country",
}


def _parse_result(result: dict[str, Any]) -> LocationInfo:
    info = LocationInfo(
        address=result.get("formatted_address"),
        place_id=result.get("place_id"),
    )
    for component in result.get("address_components") or []:
        for kind in component.get("types") or []:
            field = _COMPONENT_FIELDS.get(kind)
            if field and getattr(info, field) is None:
                setattr(info, field, component.get("long_name"))
    location = (result.get("geometry") or {}).get("location") or {}
    if "lat" in location and "lng" in location:
        info.lat = float(location["lat"])
        info.lng = float(location["lng"])
    return info


async def _fetch(params: dict[str, Any]) -> dict[str, Any]:
    if not settings.MAPS_API_KEY:
        raise MapsUnavailable("MAPS_API_KEY not configured")
    query = {**params, "key": settings.MAPS_API_KEY, "language": settings.DEFAULT_LANGUAGE}
    try:
        async with httpx.AsyncClient(timeout=settings.MAPS_TIMEOUT_SECONDS) as client:
            resp = await client.get(settings.MAPS_GEOCODE_URL, params=query)
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise MapsUnavailable(f"Geocoding request failed: {exc}") from exc
    try:
        data = resp.json()
    except ValueError as exc:
        raise MapsUnavailable("Invalid JSON from geocoding provider") from exc
    status = data.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        raise MapsUnavailable(f"Geocoding status {status}: {data.get('error_message')}")
    return data


async def reverse_geocode(lat: float, lng: float) -> LocationInfo | None:
    """Resolve coordinates to an address; None when the provider is unavailable."""
    cached = get_cached_reverse_geocode(lat, lng)
    if cached is not None:
        return LocationInfo(**cached)

    started = time.perf_counter()
    try:
        data = await _fetch({"latlng": f"{lat},{lng}"})
    except MapsUnavailable as exc:
        logger.info("Reverse geocode skipped for (%.4f,%.4f): %s", lat, lng, exc)
        return None
    results = data.get("results") or []
    if not results:
        return None
    info = _parse_result(results[0])
    cache_reverse_geocode(lat, lng, asdict(info))
    logger.info(
        "Reverse geocode (%.4f,%.4f) -> %s latency=%.1fms",
        lat,
        lng,
        info.city,
        (time.perf_counter() - started) * 1000,
    )
    return info


async def geocode(address: str, *, region: str = "tr") -> list[LocationInfo]:
    query = address.strip()
    if not query:
        return []
    cached = get_cached_geocode(query)
    if cached is not None:
        return [LocationInfo(**item) for item in cached]
    try:
        data = await _fetch({"address": query, "region": region})
    except MapsUnavailable as exc:
        logger.info("Geocode skipped for %r: %s", query, exc)
        return []
    matches = [_parse_result(result) for result in data.get("results") or []]
    cache_geocode(query, [asdict(item) for item in matches])
    return matches


__all__ = ["LocationInfo", "MapsUnavailable", "geocode", "reverse_geocode"]
