from __future__ import annotations

from fastapi import APIRouter

from ...ai import AIUnavailable, analyze_review, heuristic_review_analysis
from ...contracts import AnalyzeReviewRequest
from ..utils import ok

router = APIRouter(tags=["ai"])


@router.post("/ai/analyze-review")
async def analyze(payload: AnalyzeReviewRequest):
    source = "ai"
    try:
        analysis = await analyze_review(payload.review_text, payload.business_type)
    except AIUnavailable:
        source = "heuristic"
        analysis = heuristic_review_analysis(payload.review_text, payload.business_type)
    return ok(analysis.model_dump(mode="json"), meta={"source": source})
