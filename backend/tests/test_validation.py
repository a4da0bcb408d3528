from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from backend.localguide.availability import is_open_now, normalize_working_hours
from backend.localguide.contracts import BusinessCreate, ReviewCreate
from backend.localguide.geo import format_distance, haversine_km, within_radius
from backend.localguide.scoring import (
    BusinessFeatures,
    UserTasteProfile,
    health_score,
    match_reason,
    personalized_score,
    relevance_score,
    round_half_up,
)
from backend.localguide.validators import (
    fold_text,
    make_slug,
    normalize_amenities,
    normalize_keywords,
    normalize_time,
)
from pydantic import ValidationError

ISTANBUL = ZoneInfo("Europe/Istanbul")


def _business(**overrides):
    payload = {
        "name": "Çay Bahçesi",
        "description": "Boğaz manzaralı geleneksel çay bahçesi.",
        "category": "Kafe",
        "subcategory": "Çay Evi",
        "address": "Sahil Yolu 1",
        "city": "İstanbul",
        "district": "Üsküdar",
        "lat": 41.02,
        "lng": 29.01,
        "priceRange": "BUDGET",
    }
    payload.update(overrides)
    return payload


class TestText:
    def test_fold_text_treats_dotted_and_dotless_i_alike(self):
        assert fold_text("İSTANBUL") == fold_text("istanbul") == "istanbul"
        assert fold_text("IŞIK") == "işik"
        assert fold_text(None) == ""

    @pytest.mark.parametrize(
        "name,suffix,expected",
        [
            ("Köşe Pizza", "Beşiktaş", "kose-pizza-besiktas"),
            ("Güzellik & Bakım  Salonu", None, "guzellik-bakim-salonu"),
            ("Çiğ Köfte!!", "İzmir", "cig-kofte-izmir"),
            ("???", None, "business"),
        ],
    )
    def test_make_slug(self, name, suffix, expected):
        assert make_slug(name, suffix) == expected

    def test_normalize_time(self):
        assert normalize_time("9:30") == "09:30"
        assert normalize_time("24:00") == "24:00"
        assert normalize_time("  ") is None
        with pytest.raises(ValueError):
            normalize_time("25:00")

    def test_normalize_amenities(self):
        assert normalize_amenities(["wifi", "outdoor seating", "WIFI"]) == ["WIFI", "OUTDOOR_SEATING"]
        with pytest.raises(ValueError):
            normalize_amenities(["jacuzzi"])

    def test_normalize_keywords(self):
        assert normalize_keywords([" Kuru  Fasulye ", "kuru fasulye", "PİLAV", 3]) == [
            "kuru fasulye",
            "pilav",
        ]


class TestContracts:
    def test_business_create_normalizes_nested_fields(self):
        business = BusinessCreate.model_validate(
            _business(
                amenities=["wifi"],
                workingHours={"monday": {"open": "8:00", "close": "22:00"}},
            )
        )
        assert business.amenities == ["WIFI"]
        assert business.working_hours.monday.open == "08:00"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"priceRange": "CHEAP"},
            {"description": "kısa"},
            {"lat": 120},
            {"website": "javascript:alert(1)"},
            {"amenities": ["hot tub"]},
        ],
    )
    def test_business_create_rejects_bad_input(self, overrides):
        with pytest.raises(ValidationError):
            BusinessCreate.model_validate(_business(**overrides))

    def test_review_create_trims_title_and_content(self):
        review = ReviewCreate.model_validate(
            {
                "businessId": "b1",
                "rating": 4,
                "title": "  Güzel   mekan ",
                "content": "   Çay taze, manzara harika.   ",
            }
        )
        assert review.title == "Güzel mekan"
        assert review.content == "Çay taze, manzara harika."

    def test_review_create_rejects_non_http_photos(self):
        with pytest.raises(ValidationError):
            ReviewCreate.model_validate(
                {
                    "businessId": "b1",
                    "rating": 4,
                    "title": "Başlık",
                    "content": "Yeterince uzun bir yorum metni.",
                    "photos": ["file:///etc/passwd"],
                }
            )


class TestGeo:
    def test_haversine_between_cities(self):
        istanbul_to_ankara = haversine_km(41.0082, 28.9784, 39.9334, 32.8597)
        assert 345 < istanbul_to_ankara < 355
        assert haversine_km(41.0, 29.0, 41.0, 29.0) == 0

    def test_within_radius(self):
        origin = (41.07, 29.01)
        assert within_radius(origin, 41.0782, 29.0103, 2) == pytest.approx(0.91, abs=0.01)
        assert within_radius(origin, 39.92, 32.85, 50) is None
        assert within_radius(origin, None, 29.0, 50) is None

    @pytest.mark.parametrize("km,expected", [(0.35, "350m"), (1.0, "1.0km"), (12.345, "12.3km")])
    def test_format_distance(self, km, expected):
        assert format_distance(km) == expected


class TestAvailability:
    HOURS = {
        "monday": {"open": "09:00", "close": "18:00"},
        "sunday": {"isClosed": True},
    }

    def test_normalize_working_hours(self):
        rows = normalize_working_hours(self.HOURS)
        assert rows == [
            {"day": "MONDAY", "open_time": "09:00", "close_time": "18:00", "is_closed": False},
            {"day": "SUNDAY", "open_time": None, "close_time": None, "is_closed": True},
        ]

    def test_open_during_hours(self):
        monday_noon = datetime(2024, 6, 3, 12, 0, tzinfo=ISTANBUL)
        assert is_open_now(self.HOURS, now=monday_noon)

    def test_closed_outside_hours_and_on_closed_days(self):
        assert not is_open_now(self.HOURS, now=datetime(2024, 6, 3, 19, 0, tzinfo=ISTANBUL))
        assert not is_open_now(self.HOURS, now=datetime(2024, 6, 9, 12, 0, tzinfo=ISTANBUL))
        assert not is_open_now(self.HOURS, now=datetime(2024, 6, 4, 12, 0, tzinfo=ISTANBUL))

    def test_aware_times_are_converted_to_istanbul(self):
        # 07:00 UTC is 10:00 in Istanbul
        utc_morning = datetime(2024, 6, 3, 7, 0, tzinfo=ZoneInfo("UTC"))
        assert is_open_now(self.HOURS, now=utc_morning)

    def test_storage_rows_are_accepted(self):
        rows = [{"day": "MONDAY", "open_time": "09:00", "close_time": "18:00", "is_closed": False}]
        assert is_open_now(rows, now=datetime(2024, 6, 3, 9, 0))
        assert not is_open_now([], now=datetime(2024, 6, 3, 9, 0))


class TestScoring:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2

    def test_health_score_weights(self):
        assert health_score(9.0, 8.0, 50, 4.0) == 7.4
        assert health_score(9.0, 8.0, 500, 4.0) == 8.4

    def test_name_matches_outrank_description_matches(self):
        by_name = BusinessFeatures("1", "Pizza Evi", "Restoran", description="Aile restoranı")
        by_text = BusinessFeatures("2", "Lezzet Durağı", "Restoran", description="Pizza ve makarna")
        assert relevance_score(by_name, "pizza") > relevance_score(by_text, "pizza")

    def test_enhanced_terms_add_to_score(self):
        features = BusinessFeatures("1", "Berber Ali", "Güzellik & Bakım", keywords=["tıraş"])
        plain = relevance_score(features, "erkek kuaförü")
        enhanced = relevance_score(features, "erkek kuaförü", "berber tıraş")
        assert enhanced > plain

    def test_review_keywords_match_inside_business_keywords(self):
        features = BusinessFeatures("1", "Köşe Pizza", "Restoran", keywords=["taze malzeme", "pizza"])
        profile = UserTasteProfile(review_keywords=["Taze"])
        assert personalized_score(features, profile) == 2
        assert match_reason(features, profile) == "it matches your interest in taze malzeme"

    def test_unrelated_review_keywords_add_nothing(self):
        features = BusinessFeatures("1", "Köşe Pizza", "Restoran", keywords=["taze malzeme"])
        assert personalized_score(features, UserTasteProfile(review_keywords=["kahve"])) == 0
        assert personalized_score(features, UserTasteProfile()) == 0
