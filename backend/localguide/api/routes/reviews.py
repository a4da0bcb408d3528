from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ...ai import analyze_review_for_storage
from ...contracts import ReviewCreate, ReviewUpdate
from ...gamification import award_message
from ...metrics import reviews_total
from ...serializers import review_to_payload
from ...storage import DB
from ..types import Limit, Offset, ReviewSort
from ..utils import compact, current_user, ok, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reviews"])


async def _backfill_analysis(rows: list[dict[str, Any]]) -> None:
    for row in rows:
        if row.get("ai_analysis"):
            continue
        business_type = (row.get("business") or {}).get("category")
        analysis = await analyze_review_for_storage(row["content"], row["rating"], business_type)
        await DB.set_review_analysis(row["id"], analysis)
        row["ai_analysis"] = analysis
        row["ai_analysis_date"] = datetime.now(UTC).isoformat()


@router.get("/reviews")
async def list_reviews(
    business_id: str | None = Query(None, alias="businessId"),
    user_id: str | None = Query(None, alias="userId"),
    min_rating: int | None = Query(None, alias="minRating", ge=1, le=5),
    sort_by: ReviewSort = Query("newest", alias="sortBy"),
    with_ai_analysis: bool = Query(False, alias="withAiAnalysis"),
    limit: Limit = 20,
    offset: Offset = 0,
):
    rows, total = await DB.list_reviews(
        business_id=business_id,
        user_id=user_id,
        min_rating=min_rating,
        sort_by=sort_by,
        limit=limit,
        offset=offset,
    )
    if with_ai_analysis:
        await _backfill_analysis(rows)
    filters = compact(
        {
            "businessId": business_id,
            "userId": user_id,
            "minRating": min_rating,
            "sortBy": sort_by,
            "withAiAnalysis": with_ai_analysis or None,
        }
    )
    return ok(
        [review_to_payload(r) for r in rows],
        meta=page_meta(total, limit, offset, filters=filters),
    )


@router.post("/reviews", status_code=201)
async def create_review(payload: ReviewCreate, user: dict[str, Any] = Depends(current_user)):
    business = await DB.get_business(payload.business_id)
    if not business:
        raise HTTPException(404, "Business not found")
    if await DB.has_review(user["id"], business["id"]):
        raise HTTPException(409, "You have already reviewed this business")

    analysis = await analyze_review_for_storage(payload.content, payload.rating, business["category"])
    review, award = await DB.create_review(user["id"], payload, analysis)
    reviews_total.labels(event="created").inc()
    logger.info(
        "Review created",
        extra={"review_id": review["id"], "business_id": business["id"], "user_id": user["id"]},
    )
    new_achievements = [a.as_payload() for a in award["new_achievements"]]
    return ok(
        review_to_payload(review),
        meta={
            "pointsEarned": award["points_earned"],
            "newAchievements": new_achievements,
        },
        message=award_message(award["points_earned"], len(new_achievements)),
    )


@router.get("/reviews/{review_id}")
async def get_review(review_id: str):
    review = await DB.get_review(review_id)
    if not review:
        raise HTTPException(404, "Review not found")
    return ok(review_to_payload(review))


@router.put("/reviews/{review_id}")
async def update_review(
    review_id: str, payload: ReviewUpdate, user: dict[str, Any] = Depends(current_user)
):
    current = await DB.authorize_review_edit(review_id, user["id"])
    changes = payload.model_dump(exclude_unset=True)
    if "categories" in changes and payload.categories is not None:
        changes["categories"] = payload.categories.model_dump(exclude_none=True)

    analysis = None
    content_changed = changes.get("content") not in (None, current["content"])
    rating_changed = changes.get("rating") not in (None, current["rating"])
    if content_changed or rating_changed:
        business = await DB.get_business(current["business_id"])
        analysis = await analyze_review_for_storage(
            changes.get("content") or current["content"],
            changes.get("rating") or current["rating"],
            business["category"] if business else None,
        )
    review = await DB.update_review(review_id, changes, analysis)
    reviews_total.labels(event="updated").inc()
    return ok(review_to_payload(review), message="Review updated successfully")


@router.delete("/reviews/{review_id}")
async def delete_review(review_id: str, user: dict[str, Any] = Depends(current_user)):
    await DB.delete_review(review_id, user["id"])
    reviews_total.labels(event="deleted").inc()
    return ok(None, message="Review deleted successfully")


@router.post("/reviews/{review_id}/helpful")
async def mark_helpful(review_id: str, user: dict[str, Any] = Depends(current_user)):
    result = await DB.mark_helpful(review_id, user["id"])
    return ok({"id": result["id"], "helpfulVotes": result["helpful_votes"]})
