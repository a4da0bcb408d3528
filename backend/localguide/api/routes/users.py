from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ...contracts import ProfileUpdate
from ...serializers import user_to_payload
from ...storage import DB
from ..utils import current_user, ok

router = APIRouter(tags=["users"])


@router.get("/user/profile")
async def get_profile(user: dict[str, Any] = Depends(current_user)):
    return ok(user_to_payload(user, include_progress=True))


@router.put("/user/profile")
async def update_profile(payload: ProfileUpdate, user: dict[str, Any] = Depends(current_user)):
    updated = await DB.update_profile(user["id"], payload.model_dump(exclude_unset=True))
    return ok(user_to_payload(updated, include_progress=True), message="Profile updated successfully")
