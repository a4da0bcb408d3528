from __future__ import annotations

from typing import Any

from fastapi import Depends

from ..auth import require_auth
from ..storage import DB


def ok(data: Any, *, meta: dict[str, Any] | None = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta
    if message:
        body["message"] = message
    return body


def page_meta(total: int, limit: int, offset: int, **extra: Any) -> dict[str, Any]:
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + limit < total,
        **extra,
    }


def compact(filters: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in filters.items() if value is not None and value != []}


async def current_user(claims: dict[str, Any] = Depends(require_auth)) -> dict[str, Any]:
    """Local user row for the token subject, created on first sight."""
    return await DB.ensure_user(claims)
