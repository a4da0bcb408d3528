from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from svix.webhooks import Webhook, WebhookVerificationError

from ...metrics import webhook_events_total
from ...settings import settings
from ...storage import DB
from ..utils import ok

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


def _primary_email(data: dict[str, Any]) -> str | None:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for entry in addresses:
        if primary_id and entry.get("id") == primary_id:
            return entry.get("email_address")
    if addresses:
        return addresses[0].get("email_address")
    return None


def _verify(body: bytes, request: Request) -> dict[str, Any]:
    """Check the svix signature headers and return the decoded event."""
    secret = settings.AUTH_WEBHOOK_SECRET
    if not secret:
        raise HTTPException(500, "AUTH_WEBHOOK_SECRET is not configured")
    headers = {name: request.headers.get(name, "") for name in SIGNATURE_HEADERS}
    if not all(headers.values()):
        webhook_events_total.labels(event_type="unknown", result="rejected").inc()
        raise HTTPException(400, "Missing webhook signature headers")
    try:
        # raises on a bad signature; the decoded payload is not returned
        Webhook(secret).verify(body, headers)
    except WebhookVerificationError as exc:
        webhook_events_total.labels(event_type="unknown", result="rejected").inc()
        raise HTTPException(400, "Invalid webhook signature") from exc
    try:
        event = json.loads(body)
    except json.JSONDecodeError as exc:
        webhook_events_total.labels(event_type="unknown", result="rejected").inc()
        raise HTTPException(400, "Webhook body is not valid JSON") from exc
    if not isinstance(event, dict):
        webhook_events_total.labels(event_type="unknown", result="rejected").inc()
        raise HTTPException(400, "Webhook body must be a JSON object")
    return event


async def _dispatch(event_type: str, data: dict[str, Any]) -> str:
    external_id = str(data.get("id") or "")
    if event_type in {"user.created", "user.updated"}:
        if not external_id:
            raise ValueError("user event without an id")
        user, created = await DB.upsert_identity_user(
            external_id,
            email=_primary_email(data),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            avatar=data.get("image_url"),
        )
        logger.info("Synced user %s from %s (created=%s)", user["id"], event_type, created)
        return "created" if created else "updated"
    if event_type == "user.deleted":
        removed = await DB.delete_user_by_external_id(external_id) if external_id else False
        return "deleted" if removed else "missing"
    return "ignored"


@router.post("/webhook/auth")
@router.post("/webhook/clerk", include_in_schema=False)
async def identity_webhook(request: Request):
    body = await request.body()
    event = _verify(body, request)
    event_type = str(event.get("type") or "unknown")
    data = event.get("data") or {}
    try:
        outcome = await _dispatch(event_type, data)
    except Exception as exc:
        webhook_events_total.labels(event_type=event_type, result="error").inc()
        logger.exception("Webhook %s failed", event_type)
        raise HTTPException(500, "Webhook processing failed") from exc
    webhook_events_total.labels(event_type=event_type, result=outcome).inc()
    return ok({"type": event_type, "result": outcome}, message="Webhook processed")
