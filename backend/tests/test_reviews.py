from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from backend.localguide.db.core import get_session
from backend.localguide.db.models import ReviewRecord

run = asyncio.run


def _post_review(client, payload):
    resp = client.post("/v1/reviews", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_review_updates_counters_and_business_stats(client, business, login, review_payload):
    login("reviewer")
    body = _post_review(client, review_payload(business["id"], photos=["https://img.example/1.jpg"]))
    review = body["data"]
    assert review["rating"] == 5
    assert review["aiAnalysis"]["sentiment"] == "positive"
    assert review["aiAnalysis"]["confidence"] == 0.5
    assert review["user"]["totalReviews"] == 1
    assert review["business"]["id"] == business["id"]
    assert body["meta"]["pointsEarned"] == 10
    assert [a["id"] for a in body["meta"]["newAchievements"]] == ["FIRST_REVIEW"]

    profile = client.get("/v1/user/profile").json()["data"]
    assert profile["totalReviews"] == 1
    assert profile["totalPhotos"] == 1
    assert profile["visitedBusinesses"] == 1
    assert profile["experiencePoints"] == 10

    detail = client.get(f"/v1/businesses/{business['id']}").json()["data"]
    assert detail["avgRating"] == 5.0
    assert detail["totalReviews"] == 1
    assert len(detail["reviews"]) == 1


def test_average_rating_is_recomputed(client, business, login, review_payload):
    login("first")
    _post_review(client, review_payload(business["id"], rating=5))
    login("second")
    _post_review(client, review_payload(business["id"], rating=2))
    login("third")
    _post_review(client, review_payload(business["id"], rating=2))
    detail = client.get(f"/v1/businesses/{business['id']}").json()["data"]
    assert detail["avgRating"] == 3.0
    assert detail["totalReviews"] == 3


def test_duplicate_review_is_rejected(client, business, login, review_payload):
    login("reviewer")
    _post_review(client, review_payload(business["id"]))
    resp = client.post("/v1/reviews", json=review_payload(business["id"]))
    assert resp.status_code == 409


def test_review_for_missing_business_is_404(client, review_payload):
    resp = client.post("/v1/reviews", json=review_payload("missing-business"))
    assert resp.status_code == 404


def test_review_validation(client, business, review_payload):
    resp = client.post("/v1/reviews", json=review_payload(business["id"], rating=6))
    assert resp.status_code == 422
    resp = client.post("/v1/reviews", json=review_payload(business["id"], content="kısa"))
    assert resp.status_code == 422


def test_list_reviews_sorting_and_filters(client, business, login, review_payload):
    for sub, rating in (("a", 3), ("b", 5), ("c", 1)):
        login(sub)
        _post_review(client, review_payload(business["id"], rating=rating))

    newest = client.get("/v1/reviews", params={"businessId": business["id"]}).json()
    assert [r["rating"] for r in newest["data"]] == [1, 5, 3]
    assert newest["meta"]["total"] == 3

    high = client.get(
        "/v1/reviews", params={"businessId": business["id"], "sortBy": "rating_high"}
    ).json()
    assert [r["rating"] for r in high["data"]] == [5, 3, 1]

    filtered = client.get(
        "/v1/reviews", params={"businessId": business["id"], "minRating": 3}
    ).json()
    assert filtered["meta"]["total"] == 2
    assert filtered["meta"]["filters"]["minRating"] == 3


def test_with_ai_analysis_backfills_missing_analysis(client, business, login, review_payload):
    login("reviewer")
    review = _post_review(client, review_payload(business["id"], rating=2))["data"]

    async def _clear():
        async with get_session() as session:
            record = await session.get(ReviewRecord, review["id"])
            record.ai_analysis = None
            await session.commit()

    run(_clear())
    plain = client.get("/v1/reviews", params={"businessId": business["id"]}).json()["data"]
    assert plain[0]["aiAnalysis"] is None

    enriched = client.get(
        "/v1/reviews", params={"businessId": business["id"], "withAiAnalysis": "true"}
    ).json()["data"]
    assert enriched[0]["aiAnalysis"]["sentiment"] == "negative"
    stored = client.get(f"/v1/reviews/{review['id']}").json()["data"]
    assert stored["aiAnalysis"]["sentiment"] == "negative"


def test_get_missing_review_is_404(client):
    assert client.get("/v1/reviews/nope").status_code == 404


def test_author_can_update_review(client, business, login, review_payload):
    login("reviewer")
    review = _post_review(client, review_payload(business["id"], rating=5))["data"]
    resp = client.put(
        f"/v1/reviews/{review['id']}",
        json={"rating": 3, "content": "Yemekler idare ederdi, servis biraz yavaştı ama fena değil."},
    )
    assert resp.status_code == 200
    updated = resp.json()["data"]
    assert updated["rating"] == 3
    assert updated["aiAnalysis"]["sentiment"] == "neutral"
    detail = client.get(f"/v1/businesses/{business['id']}").json()["data"]
    assert detail["avgRating"] == 3.0


def test_only_author_can_edit_or_delete(client, business, login, review_payload):
    login("reviewer")
    review = _post_review(client, review_payload(business["id"]))["data"]
    login("intruder")
    assert client.put(f"/v1/reviews/{review['id']}", json={"rating": 1}).status_code == 403
    assert client.delete(f"/v1/reviews/{review['id']}").status_code == 403


def test_edit_window_expires(client, business, login, review_payload):
    login("reviewer")
    review = _post_review(client, review_payload(business["id"]))["data"]

    async def _age():
        async with get_session() as session:
            record = await session.get(ReviewRecord, review["id"])
            record.created_at = datetime.now(UTC) - timedelta(days=8)
            await session.commit()

    run(_age())
    resp = client.put(f"/v1/reviews/{review['id']}", json={"rating": 4})
    assert resp.status_code == 400
    assert "7 days" in resp.json()["detail"]


def test_delete_review_retracts_counters(client, business, login, review_payload):
    login("reviewer")
    review = _post_review(client, review_payload(business["id"]))["data"]
    resp = client.delete(f"/v1/reviews/{review['id']}")
    assert resp.status_code == 200

    profile = client.get("/v1/user/profile").json()["data"]
    assert profile["totalReviews"] == 0
    assert profile["experiencePoints"] == 0
    detail = client.get(f"/v1/businesses/{business['id']}").json()["data"]
    assert detail["totalReviews"] == 0
    assert detail["avgRating"] == 0.0


def test_helpful_vote_rewards_author(client, business, login, review_payload):
    login("author")
    review = _post_review(client, review_payload(business["id"]))["data"]
    assert client.post(f"/v1/reviews/{review['id']}/helpful").status_code == 403

    login("voter")
    resp = client.post(f"/v1/reviews/{review['id']}/helpful")
    assert resp.status_code == 200
    assert resp.json()["data"]["helpfulVotes"] == 1

    login("author")
    profile = client.get("/v1/user/profile").json()["data"]
    assert profile["helpfulVotes"] == 1
    assert profile["experiencePoints"] == 12
