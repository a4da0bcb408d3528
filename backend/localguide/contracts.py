from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .catalog import PriceRange
from .validators import (
    BIO_MAX_LENGTH,
    normalize_amenities,
    normalize_keywords,
    normalize_phone,
    normalize_photos,
    normalize_text,
    normalize_time,
)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)


class CamelModel(BaseModel):
    """Request bodies use camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _check_url(value: str | None, field: str) -> str | None:
    if value is None or not value.strip():
        return None
    cleaned = value.strip()
    if not URL_PATTERN.fullmatch(cleaned):
        raise ValueError(f"{field} must be a valid http(s) URL")
    return cleaned


# --- Businesses ---


class DayHours(CamelModel):
    open: str | None = None
    close: str | None = None
    is_closed: bool = False

    @field_validator("open", "close")
    @classmethod
    def _time(cls, value: str | None) -> str | None:
        return normalize_time(value)

    @model_validator(mode="after")
    def _open_before_close(self) -> DayHours:
        if self.is_closed:
            return self
        if not self.open or not self.close:
            raise ValueError("open and close are required unless isClosed is true")
        if self.open >= self.close:
            raise ValueError("open must be before close")
        return self


class WeeklyHours(CamelModel):
    monday: DayHours | None = None
    tuesday: DayHours | None = None
    wednesday: DayHours | None = None
    thursday: DayHours | None = None
    friday: DayHours | None = None
    saturday: DayHours | None = None
    sunday: DayHours | None = None


class _BusinessFields(CamelModel):
    @field_validator("name", check_fields=False)
    @classmethod
    def _name(cls, value: str | None) -> str | None:
        return normalize_text(value, field="name", max_length=100)

    @field_validator("phone", check_fields=False)
    @classmethod
    def _phone(cls, value: str | None) -> str | None:
        return normalize_phone(value)

    @field_validator("website", check_fields=False)
    @classmethod
    def _website(cls, value: str | None) -> str | None:
        return _check_url(value, "website")

    @field_validator("email", check_fields=False)
    @classmethod
    def _email(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        cleaned = value.strip().lower()
        if not EMAIL_PATTERN.fullmatch(cleaned):
            raise ValueError("email must be a valid address")
        return cleaned

    @field_validator("amenities", check_fields=False)
    @classmethod
    def _amenities(cls, value: list[str] | None) -> list[str] | None:
        return normalize_amenities(value)

    @field_validator("photos", check_fields=False)
    @classmethod
    def _photos(cls, value: list[str] | None) -> list[str] | None:
        return normalize_photos(value)

    @field_validator("keywords", check_fields=False)
    @classmethod
    def _keywords(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return normalize_keywords(value)


class BusinessCreate(_BusinessFields):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    category: str = Field(min_length=1, max_length=64)
    subcategory: str = Field(min_length=1, max_length=64)
    address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=64)
    district: str = Field(min_length=1, max_length=64)
    neighborhood: str | None = Field(default=None, max_length=64)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    phone: str | None = None
    website: str | None = None
    email: str | None = None
    price_range: PriceRange
    amenities: list[str] | None = None
    working_hours: WeeklyHours | None = None
    photos: list[str] | None = None
    keywords: list[str] | None = None


class BusinessUpdate(_BusinessFields):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=10, max_length=1000)
    category: str | None = Field(default=None, min_length=1, max_length=64)
    subcategory: str | None = Field(default=None, min_length=1, max_length=64)
    address: str | None = Field(default=None, min_length=1, max_length=255)
    city: str | None = Field(default=None, min_length=1, max_length=64)
    district: str | None = Field(default=None, min_length=1, max_length=64)
    neighborhood: str | None = Field(default=None, max_length=64)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    phone: str | None = None
    website: str | None = None
    email: str | None = None
    price_range: PriceRange | None = None
    amenities: list[str] | None = None
    working_hours: WeeklyHours | None = None
    photos: list[str] | None = None
    keywords: list[str] | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"amenities", "working_hours", "photos"})


# --- Reviews ---


class CategoryRatings(CamelModel):
    food: int | None = Field(default=None, ge=1, le=5)
    service: int | None = Field(default=None, ge=1, le=5)
    atmosphere: int | None = Field(default=None, ge=1, le=5)
    value: int | None = Field(default=None, ge=1, le=5)
    cleanliness: int | None = Field(default=None, ge=1, le=5)


class ReviewCreate(CamelModel):
    business_id: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    title: str = Field(min_length=1, max_length=100)
    content: str = Field(min_length=10, max_length=2000)
    photos: list[str] | None = None
    visit_date: datetime | None = None
    would_recommend: bool | None = None
    categories: CategoryRatings | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return normalize_text(value, field="title", max_length=100, required=True)

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 10:
            raise ValueError("content must be at least 10 characters")
        return cleaned

    @field_validator("photos")
    @classmethod
    def _photos(cls, value: list[str] | None) -> list[str] | None:
        return normalize_photos(value)


class ReviewUpdate(CamelModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    title: str | None = Field(default=None, min_length=1, max_length=100)
    content: str | None = Field(default=None, min_length=10, max_length=2000)
    photos: list[str] | None = None
    visit_date: datetime | None = None
    would_recommend: bool | None = None
    categories: CategoryRatings | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: str | None) -> str | None:
        return normalize_text(value, field="title", max_length=100)

    @field_validator("photos")
    @classmethod
    def _photos(cls, value: list[str] | None) -> list[str] | None:
        return normalize_photos(value)


# --- Gamification / users ---


class GamificationAction(CamelModel):
    action: Literal["review", "photo", "checkin", "helpful_vote", "follow", "share", "first_visit"]
    business_id: str | None = None
    review_id: str | None = None
    points: int | None = Field(default=None, ge=1, le=100)


class ProfileUpdate(CamelModel):
    bio: str | None = Field(default=None, max_length=BIO_MAX_LENGTH)
    location: str | None = Field(default=None, max_length=255)
    website: str | None = None
    social_links: dict[str, str] | None = None

    @field_validator("bio")
    @classmethod
    def _bio(cls, value: str | None) -> str | None:
        return normalize_text(value, field="bio", max_length=BIO_MAX_LENGTH)

    @field_validator("website")
    @classmethod
    def _website(cls, value: str | None) -> str | None:
        return _check_url(value, "website")

    @field_validator("social_links")
    @classmethod
    def _social(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        if value is None:
            return None
        cleaned: dict[str, str] = {}
        for network, url in value.items():
            checked = _check_url(url, f"socialLinks.{network}")
            if checked:
                cleaned[network.strip().lower()] = checked
        return cleaned


# --- Search / AI ---


class UserLocation(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    city: str | None = None
    district: str | None = None


class UserPreferences(CamelModel):
    favorite_categories: list[str] | None = None
    price_preference: PriceRange | None = None
    past_searches: list[str] | None = None


class TimeContext(CamelModel):
    current_time: datetime
    is_weekend: bool
    time_of_day: Literal["morning", "afternoon", "evening", "night"] | None = None


class SearchContext(CamelModel):
    user_location: UserLocation | None = None
    user_preferences: UserPreferences | None = None
    time_context: TimeContext | None = None


class IntelligentSearchRequest(CamelModel):
    query: str = Field(min_length=1, max_length=200)
    context: SearchContext | None = None


class VoiceSearchRequest(CamelModel):
    audio_data: str = Field(min_length=1)
    city: str | None = None
    language: str | None = Field(default=None, max_length=8)


class AnalyzeReviewRequest(CamelModel):
    review_text: str = Field(min_length=10, max_length=5000)
    business_type: str | None = None
    audio_url: str | None = None


__all__ = [
    "AnalyzeReviewRequest",
    "BusinessCreate",
    "BusinessUpdate",
    "CamelModel",
    "CategoryRatings",
    "DayHours",
    "GamificationAction",
    "IntelligentSearchRequest",
    "ProfileUpdate",
    "ReviewCreate",
    "ReviewUpdate",
    "SearchContext",
    "VoiceSearchRequest",
    "WeeklyHours",
]
