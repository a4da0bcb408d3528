"""Tests for query-string sanitization."""

from __future__ import annotations

import pytest
from backend.localguide.input_validation import InputValidator
from fastapi import HTTPException


class TestCoordinates:
    def test_valid_coordinates_are_rounded(self):
        assert InputValidator.validate_coordinates(41.0782345, 29.0103456) == (41.07823, 29.01035)

    @pytest.mark.parametrize("lat,lng", [(91, 29), (-91, 29), (41, 181), (41, -181)])
    def test_out_of_range_is_rejected(self, lat, lng):
        with pytest.raises(HTTPException) as exc:
            InputValidator.validate_coordinates(lat, lng)
        assert exc.value.status_code == 422

    def test_turkey_bounds_are_optional(self):
        assert InputValidator.validate_coordinates(48.85, 2.35) == (48.85, 2.35)
        with pytest.raises(HTTPException) as exc:
            InputValidator.validate_coordinates(48.85, 2.35, allow_outside_turkey=False)
        assert "outside Turkey" in exc.value.detail
        inside = InputValidator.validate_coordinates(39.92, 32.85, allow_outside_turkey=False)
        assert inside == (39.92, 32.85)


class TestSearchQuery:
    def test_query_is_trimmed_and_sanitized(self):
        assert InputValidator.validate_search_query("  köfte <script>  ") == "köfte script"

    def test_turkish_letters_survive(self):
        assert InputValidator.validate_search_query("Güzellik & Bakım") == "Güzellik & Bakım"

    def test_long_query_is_truncated(self):
        truncated = InputValidator.validate_search_query("a" * 250)
        assert len(truncated) == InputValidator.SEARCH_QUERY_MAX_LENGTH

    @pytest.mark.parametrize(
        "query",
        ["", "   ", "' OR '1'='1", "pizza -- yorum", "kafe /* x */", "x; DELETE FROM users", "<>{}"],
    )
    def test_rejected_queries(self, query):
        with pytest.raises(HTTPException) as exc:
            InputValidator.validate_search_query(query)
        assert exc.value.status_code == 422


class TestRadiusAndFilters:
    def test_radius_bounds(self):
        assert InputValidator.validate_radius(2.346) == 2.35
        with pytest.raises(HTTPException):
            InputValidator.validate_radius(0.05)
        with pytest.raises(HTTPException):
            InputValidator.validate_radius(51)

    def test_price_ranges_are_parsed_and_deduplicated(self):
        assert InputValidator.parse_price_ranges("budget, MODERATE,budget,") == ["BUDGET", "MODERATE"]
        assert InputValidator.parse_price_ranges(None) == []

    def test_unknown_price_range_is_rejected(self):
        with pytest.raises(HTTPException) as exc:
            InputValidator.parse_price_ranges("BUDGET,CHEAP")
        assert "CHEAP" in exc.value.detail

    def test_language_codes(self):
        assert InputValidator.sanitize_language_code(None) == "tr"
        assert InputValidator.sanitize_language_code("EN") == "en"
        assert InputValidator.sanitize_language_code("fr") == "tr"
        with pytest.raises(HTTPException):
            InputValidator.sanitize_language_code("eng")
