from __future__ import annotations

from backend.localguide.recommendations import build_profile


def _business_id(client, slug: str) -> str:
    return client.get(f"/v1/businesses/{slug}").json()["data"]["id"]


def test_general_recommendations_are_ranked(client):
    resp = client.get("/v1/recommendations")
    assert resp.status_code == 200
    body = resp.json()
    scores = [item["personalizedScore"] for item in body["data"]]
    assert len(scores) == 5
    assert scores == sorted(scores, reverse=True)
    assert all(item["matchReason"] for item in body["data"])
    meta = body["meta"]
    assert meta["type"] == "general"
    assert meta["total"] == 5
    assert meta["recommendations"]["strategy"] == "General recommendations"
    assert meta["nextUpdate"]


def test_similar_recommendations_follow_liked_categories(client, login, review_payload):
    login("foodie")
    pizza_id = _business_id(client, "kose-pizza-besiktas")
    resp = client.post("/v1/reviews", json=review_payload(pizza_id, rating=5))
    assert resp.status_code == 201

    body = client.get("/v1/recommendations", params={"type": "similar"}).json()
    names = [item["name"] for item in body["data"]]
    assert names == ["Deniz Restaurant"]
    assert body["data"][0]["matchReason"] == "you enjoy Restoran places and it is highly rated"


def test_visited_businesses_can_be_included(client, login, review_payload):
    login("foodie")
    pizza_id = _business_id(client, "kose-pizza-besiktas")
    client.post("/v1/reviews", json=review_payload(pizza_id))

    excluded = client.get("/v1/recommendations").json()["data"]
    assert pizza_id not in {item["id"] for item in excluded}
    included = client.get("/v1/recommendations", params={"excludeVisited": "false"}).json()["data"]
    assert pizza_id in {item["id"] for item in included}


def test_nearby_recommendations_require_location(client):
    assert client.get("/v1/recommendations", params={"type": "nearby"}).status_code == 422


def test_nearby_recommendations_stay_within_ten_km(client):
    body = client.get(
        "/v1/recommendations", params={"type": "nearby", "lat": 41.07, "lng": 29.01}
    ).json()
    assert {item["name"] for item in body["data"]} == {
        "Köşe Pizza",
        "Starbucks Zorlu Center",
        "Berber Ali",
    }
    assert all(item["distanceKm"] <= 10 for item in body["data"])


def test_recommendations_respect_limit_and_city(client):
    body = client.get("/v1/recommendations", params={"city": "Ankara", "limit": 1}).json()
    assert [item["name"] for item in body["data"]] == ["Cafe Nero Ankara"]


def test_build_profile_prefers_liked_categories():
    reviews = [
        {
            "business_id": "b1",
            "rating": 5,
            "business": {"category": "Kafe", "price_range": "MODERATE"},
            "ai_analysis": {"keywords": ["kahve", "sessiz"]},
        },
        {
            "business_id": "b2",
            "rating": 2,
            "business": {"category": "Restoran", "price_range": "EXPENSIVE"},
            "ai_analysis": {"keywords": ["kahve"]},
        },
    ]
    profile = build_profile({"level": "EXPLORER"}, reviews, (41.0, 29.0))
    assert profile.favorite_categories == ["Kafe"]
    assert set(profile.preferred_price_ranges) == {"MODERATE", "EXPENSIVE"}
    assert profile.visited_business_ids == {"b1", "b2"}
    assert profile.review_keywords == ["kahve", "sessiz"]
    assert profile.level == "EXPLORER"
    assert profile.as_prompt_payload()["hasLocation"] is True


def test_build_profile_falls_back_to_reviewed_categories():
    reviews = [{"business_id": "b1", "rating": 1, "business": {"category": "Bar"}}]
    profile = build_profile({}, reviews)
    assert profile.favorite_categories == ["Bar"]
    assert profile.level == "BEGINNER"
    assert profile.location is None
