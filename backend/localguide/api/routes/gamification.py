from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query

from ...contracts import GamificationAction
from ...gamification import (
    ACHIEVEMENTS,
    UserStats,
    available_with_progress,
    award_message,
    completion_rate,
    level_progress,
)
from ...storage import DB
from ..utils import current_user, ok

router = APIRouter(tags=["gamification"])


@router.post("/gamification")
async def award(payload: GamificationAction, user: dict[str, Any] = Depends(current_user)):
    result = await DB.award_points(user["id"], payload.action, payload.points)
    updated = result["user"]
    progress = level_progress(updated["level"], updated["experience_points"])
    new_achievements = [a.as_payload() for a in result["new_achievements"]]
    return ok(
        {
            "pointsEarned": result["points_earned"],
            "totalPoints": updated["experience_points"],
            "level": updated["level"],
            "levelProgress": progress,
            "newAchievements": new_achievements,
            "nextLevelRequirement": progress["nextLevelPoints"],
        },
        message=award_message(result["points_earned"], len(new_achievements)),
    )


@router.get("/gamification")
async def achievements(
    type_: Literal["earned", "available", "all"] = Query("all", alias="type"),
    user: dict[str, Any] = Depends(current_user),
):
    earned_rows = await DB.earned_achievements(user["id"])
    earned = []
    for row in earned_rows:
        achievement = ACHIEVEMENTS.get(row["achievement_id"])
        if achievement is None:
            continue
        payload = achievement.as_payload()
        payload["earnedAt"] = row["earned_at"]
        earned.append(payload)

    stats = UserStats.from_payload(user, {a["id"] for a in earned})
    available = available_with_progress(stats)
    if type_ == "earned":
        data: Any = earned
    elif type_ == "available":
        data = available
    else:
        data = {"earned": earned, "available": available}
    return ok(
        data,
        meta={
            "totalEarned": len(earned),
            "totalAvailable": len(available),
            "completionRate": completion_rate(len(earned)),
        },
    )
