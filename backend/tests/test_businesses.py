from __future__ import annotations

from backend.localguide.auth import BYPASS_CLAIMS


def test_list_businesses_returns_envelope_sorted_by_rating(client):
    resp = client.get("/v1/businesses")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    ratings = [item["avgRating"] for item in body["data"]]
    assert ratings == sorted(ratings, reverse=True)
    assert body["meta"]["total"] == 5
    assert body["meta"]["hasMore"] is False


def test_list_filters_city_case_insensitively(client):
    resp = client.get("/v1/businesses", params={"city": "istanbul"})
    names = {item["name"] for item in resp.json()["data"]}
    assert names == {"Köşe Pizza", "Starbucks Zorlu Center", "Berber Ali"}
    assert resp.json()["meta"]["filters"]["city"] == "istanbul"


def test_list_search_and_price_filters(client):
    resp = client.get("/v1/businesses", params={"search": "kafe", "priceRange": "moderate"})
    data = resp.json()["data"]
    assert [item["name"] for item in data] == ["Cafe Nero Ankara"]
    assert data[0]["priceSymbol"] == "₺₺"


def test_list_rejects_unknown_price_range(client):
    resp = client.get("/v1/businesses", params={"priceRange": "CHEAP"})
    assert resp.status_code == 422


def test_list_pagination_meta(client):
    resp = client.get("/v1/businesses", params={"limit": 2, "offset": 1, "sortBy": "name"})
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["meta"]["limit"] == 2
    assert body["meta"]["offset"] == 1
    assert body["meta"]["hasMore"] is True


def test_distance_sort_without_coordinates_falls_back_to_rating(client):
    by_distance = client.get("/v1/businesses", params={"sortBy": "distance"}).json()["data"]
    by_rating = client.get("/v1/businesses", params={"sortBy": "rating"}).json()["data"]
    assert [b["id"] for b in by_distance] == [b["id"] for b in by_rating]


def test_create_business_generates_slug_and_defaults(client, business):
    assert business["slug"] == "test-lokantasi-istanbul"
    assert business["verified"] is False
    assert business["isPremium"] is False
    assert business["avgRating"] == 0.0
    assert sorted(business["amenities"]) == ["DELIVERY", "WIFI"]
    assert business["ownerId"]


def test_create_business_slug_collision_gets_suffix(client, business):
    payload = {
        "name": "Test Lokantası",
        "description": "Aynı isimli ikinci bir lokanta şubesi.",
        "category": "Restoran",
        "subcategory": "Ev Yemekleri",
        "address": "Bahariye Cad. 5",
        "city": "İstanbul",
        "district": "Kadıköy",
        "lat": 40.99,
        "lng": 29.03,
        "priceRange": "BUDGET",
    }
    resp = client.post("/v1/businesses", json=payload)
    assert resp.status_code == 201
    assert resp.json()["data"]["slug"] == "test-lokantasi-istanbul-2"

    third = client.post("/v1/businesses", json={**payload, "address": "Bahariye Cad. 9"})
    assert third.json()["data"]["slug"] == "test-lokantasi-istanbul-3"


def test_create_business_validates_payload(client):
    resp = client.post(
        "/v1/businesses",
        json={"name": "X", "description": "short", "priceRange": "BUDGET"},
    )
    assert resp.status_code == 422


def test_get_business_by_slug_and_id(client):
    by_slug = client.get("/v1/businesses/kose-pizza-besiktas")
    assert by_slug.status_code == 200
    detail = by_slug.json()["data"]
    assert detail["name"] == "Köşe Pizza"
    assert len(detail["workingHours"]) == 7
    assert detail["reviews"] == []
    by_id = client.get(f"/v1/businesses/{detail['id']}")
    assert by_id.json()["data"]["slug"] == "kose-pizza-besiktas"


def test_get_missing_business_returns_404(client):
    resp = client.get("/v1/businesses/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_owner_can_update_business(client, business):
    resp = client.put(
        f"/v1/businesses/{business['id']}",
        json={
            "description": "Yenilenen menüsüyle ev yemekleri sunan lokanta.",
            "amenities": ["PARKING"],
            "workingHours": {"monday": {"open": "09:00", "close": "18:00"}},
        },
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["description"].startswith("Yenilenen")
    assert data["amenities"] == ["PARKING"]
    assert data["workingHours"] == [
        {"day": "MONDAY", "openTime": "09:00", "closeTime": "18:00", "isClosed": False}
    ]


def test_non_owner_cannot_update_or_delete(client, business, login):
    login("someone_else")
    resp = client.put(f"/v1/businesses/{business['id']}", json={"name": "Başka"})
    assert resp.status_code == 403
    resp = client.delete(f"/v1/businesses/{business['id']}")
    assert resp.status_code == 403


def test_delete_business_cascades_reviews(client, business, login, review_payload):
    login("reviewer")
    assert client.post("/v1/reviews", json=review_payload(business["id"])).status_code == 201
    profile = client.get("/v1/user/profile").json()["data"]
    assert profile["totalReviews"] == 1

    login(BYPASS_CLAIMS["sub"], email=BYPASS_CLAIMS["email"])
    resp = client.delete(f"/v1/businesses/{business['id']}")
    assert resp.status_code == 200
    assert client.get(f"/v1/businesses/{business['id']}").status_code == 404

    login("reviewer")
    profile = client.get("/v1/user/profile").json()["data"]
    assert profile["totalReviews"] == 0
    assert client.get("/v1/reviews", params={"businessId": business["id"]}).json()["meta"]["total"] == 0


def test_nearby_returns_sorted_distances(client):
    resp = client.get("/v1/businesses/nearby", params={"lat": 41.07, "lng": 29.01, "radius": 10})
    assert resp.status_code == 200
    body = resp.json()
    distances = [item["distance"] for item in body["data"]]
    assert distances == sorted(distances)
    assert len(distances) == 3
    assert body["meta"]["center"] == {"lat": 41.07, "lng": 29.01}
    assert body["meta"]["radius"] == 10


def test_nearby_validates_radius(client):
    resp = client.get("/v1/businesses/nearby", params={"lat": 41.0, "lng": 29.0, "radius": 80})
    assert resp.status_code == 422


def test_insights_unavailable_without_ai(client):
    resp = client.get("/v1/businesses/kose-pizza-besiktas/insights")
    assert resp.status_code == 503


def test_insights_include_health_score(client, monkeypatch):
    from backend.localguide import ai
    from backend.localguide.settings import settings

    settings.OPENAI_API_KEY = "sk-test"

    async def fake_chat_json(operation, **kwargs):
        return {
            "strengths": ["Lezzet"],
            "weaknesses": [],
            "recommendations": ["Menüyü genişletin"],
            "overallScore": 8,
            "competitorAnalysis": "",
            "marketPosition": "Orta segment",
            "trendsAnalysis": "",
        }

    monkeypatch.setattr(ai, "chat_json", fake_chat_json)
    resp = client.get("/v1/businesses/kose-pizza-besiktas/insights")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["strengths"] == ["Lezzet"]
    # 9.0 * 0.4 + 8.2 * 0.3 + 0 * 0.2 + 4.2 * 0.1
    assert data["healthScore"] == 6.5
