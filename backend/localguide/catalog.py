"""Fixed vocabularies shared by the data model, request models and search."""

from __future__ import annotations

from typing import Literal

PriceRange = Literal["BUDGET", "MODERATE", "EXPENSIVE", "LUXURY"]
UserLevel = Literal["BEGINNER", "CONTRIBUTOR", "REVIEWER", "EXPERT", "GURU", "LOCAL_HERO"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

PRICE_RANGES: tuple[str, ...] = ("BUDGET", "MODERATE", "EXPENSIVE", "LUXURY")
PRICE_SYMBOLS = {"BUDGET": "₺", "MODERATE": "₺₺", "EXPENSIVE": "₺₺₺", "LUXURY": "₺₺₺₺"}

USER_LEVELS: tuple[str, ...] = (
    "BEGINNER",
    "CONTRIBUTOR",
    "REVIEWER",
    "EXPERT",
    "GURU",
    "LOCAL_HERO",
)

WEEKDAYS: tuple[str, ...] = (
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
)

AMENITIES: tuple[str, ...] = (
    "WIFI",
    "PARKING",
    "WHEELCHAIR_ACCESSIBLE",
    "OUTDOOR_SEATING",
    "LIVE_MUSIC",
    "ACCEPTS_CARDS",
    "DELIVERY",
    "TAKEOUT",
    "RESERVATIONS",
    "KIDS_FRIENDLY",
    "PET_FRIENDLY",
    "VEGAN_OPTIONS",
    "HALAL",
    "ALCOHOL",
    "SMOKING_AREA",
    "AIR_CONDITIONING",
    "VALET_PARKING",
)

CATEGORIES: tuple[str, ...] = (
    "Restoran",
    "Kafe",
    "Bar",
    "Fırın",
    "Güzellik & Bakım",
    "Spor Salonu",
    "Otel",
    "Market",
    "Eczane",
    "Alışveriş",
)

POPULAR_SEARCHES: tuple[str, ...] = (
    "en iyi pizza",
    "açık kafeler",
    "ucuz berber",
    "kaliteli restoran",
    "hızlı yemek",
    "güvenilir eczane",
    "modern kuaför",
    "temiz market",
)


def price_range_symbol(value: str | None) -> str:
    return PRICE_SYMBOLS.get((value or "").upper(), "")


__all__ = [
    "AMENITIES",
    "CATEGORIES",
    "POPULAR_SEARCHES",
    "PRICE_RANGES",
    "PRICE_SYMBOLS",
    "USER_LEVELS",
    "WEEKDAYS",
    "PriceRange",
    "UserLevel",
    "Weekday",
    "price_range_symbol",
]
