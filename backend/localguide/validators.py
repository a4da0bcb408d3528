"""Shared input sanitizers for API models."""

from __future__ import annotations

import re
from collections.abc import Iterable

from .catalog import AMENITIES

TITLE_MAX_LENGTH = 100
BIO_MAX_LENGTH = 500
PHOTO_MAX = 10
KEYWORD_MAX = 20
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$|^24:00$")
PHONE_PATTERN = re.compile(r"^[0-9+()\-\.\s]{6,32}$")

_TURKISH_FOLD = str.maketrans(
    {"ç": "c", "ğ": "g", "ı": "i", "İ": "i", "ö": "o", "ş": "s", "ü": "u",
     "Ç": "c", "Ğ": "g", "Ö": "o", "Ş": "s", "Ü": "u"}
)
_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_DASHES = re.compile(r"-+")


def _squash_whitespace(text: str) -> str:
    return " ".join(text.split())


def fold_text(value: str | None) -> str:
    """Case-fold text for matching, treating dotted/dotless i the same."""
    if not value:
        return ""
    return value.translate(str.maketrans({"İ": "i", "I": "ı"})).lower().replace("ı", "i")


def normalize_text(
    value: str | None, *, field: str, max_length: int, required: bool = False
) -> str | None:
    if value is None:
        if required:
            raise ValueError(f"{field} is required")
        return None
    cleaned = _squash_whitespace(value.strip())
    if not cleaned:
        if required:
            raise ValueError(f"{field} cannot be blank")
        return None
    if len(cleaned) > max_length:
        raise ValueError(f"{field} must be <= {max_length} characters")
    return cleaned


def normalize_phone(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if not PHONE_PATTERN.fullmatch(cleaned):
        raise ValueError(
            "phone must contain digits, spaces, '.', '-', '()' or '+' and be 6-32 characters"
        )
    return cleaned


def normalize_time(value: str | None, *, field: str = "time") -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) == 4 and cleaned[1] == ":":
        cleaned = f"0{cleaned}"
    if not TIME_PATTERN.fullmatch(cleaned):
        raise ValueError(f"{field} must be HH:MM")
    return cleaned


def normalize_amenities(items: Iterable[str] | None) -> list[str] | None:
    if items is None:
        return None
    cleaned: list[str] = []
    for raw in items:
        key = str(raw).strip().upper().replace(" ", "_").replace("-", "_")
        if not key:
            continue
        if key not in AMENITIES:
            raise ValueError(f"unknown amenity '{raw}'")
        if key not in cleaned:
            cleaned.append(key)
    return cleaned


def normalize_photos(items: Iterable[str] | None, *, max_items: int = PHOTO_MAX) -> list[str] | None:
    if items is None:
        return None
    cleaned: list[str] = []
    for raw in items:
        if not isinstance(raw, str):
            continue
        url = raw.strip()
        if not url:
            continue
        if not url.startswith(("http://", "https://")):
            raise ValueError("photos must be http(s) URLs")
        cleaned.append(url)
    if len(cleaned) > max_items:
        raise ValueError(f"photos accepts at most {max_items} entries")
    return cleaned


def normalize_keywords(items: Iterable[str] | None, *, max_items: int = KEYWORD_MAX) -> list[str]:
    seen: list[str] = []
    for raw in items or []:
        if not isinstance(raw, str):
            continue
        entry = fold_text(_squash_whitespace(raw.strip()))
        if entry and entry not in seen:
            seen.append(entry)
        if len(seen) >= max_items:
            break
    return seen


def _slug_part(text: str) -> str:
    lowered = text.translate(_TURKISH_FOLD).lower()
    stripped = _SLUG_STRIP.sub("", lowered)
    dashed = re.sub(r"\s+", "-", stripped.strip())
    return _DASHES.sub("-", dashed).strip("-")


def make_slug(name: str, suffix: str | None = None) -> str:
    parts = [_slug_part(name)]
    if suffix:
        parts.append(_slug_part(suffix))
    slug = "-".join(part for part in parts if part)
    return _DASHES.sub("-", slug) or "business"


__all__ = [
    "BIO_MAX_LENGTH",
    "PHOTO_MAX",
    "TITLE_MAX_LENGTH",
    "fold_text",
    "make_slug",
    "normalize_amenities",
    "normalize_keywords",
    "normalize_phone",
    "normalize_photos",
    "normalize_text",
    "normalize_time",
]
