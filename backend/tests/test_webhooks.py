from __future__ import annotations

import asyncio
import base64
import json
from datetime import UTC, datetime

import pytest
from backend.localguide.settings import settings
from backend.localguide.storage import DB
from svix.webhooks import Webhook

SECRET = "whsec_" + base64.b64encode(b"local-guide-webhook-test-secret").decode()


@pytest.fixture
def webhook_secret():
    settings.AUTH_WEBHOOK_SECRET = SECRET
    return SECRET


def _signed(event: dict, *, msg_id: str = "msg_1") -> tuple[bytes, dict[str, str]]:
    body = json.dumps(event)
    now = datetime.now(UTC)
    signature = Webhook(SECRET).sign(msg_id, now, body)
    headers = {
        "svix-id": msg_id,
        "svix-timestamp": str(int(now.timestamp())),
        "svix-signature": signature,
        "content-type": "application/json",
    }
    return body.encode(), headers


def _user_event(event_type: str, user_id: str = "user_hook", **data) -> dict:
    payload = {
        "id": user_id,
        "first_name": "Mehmet",
        "last_name": "Kaya",
        "image_url": "https://img.example/mehmet.png",
        "primary_email_address_id": "email_2",
        "email_addresses": [
            {"id": "email_1", "email_address": "old@example.com"},
            {"id": "email_2", "email_address": "mehmet@example.com"},
        ],
    }
    payload.update(data)
    return {"type": event_type, "data": payload}


def _post(client, event: dict, path: str = "/v1/webhook/auth"):
    body, headers = _signed(event)
    return client.post(path, content=body, headers=headers)


def test_webhook_requires_configured_secret(client):
    body, headers = _signed(_user_event("user.created"))
    resp = client.post("/v1/webhook/auth", content=body, headers=headers)
    assert resp.status_code == 500


def test_webhook_requires_signature_headers(client, webhook_secret):
    resp = client.post("/v1/webhook/auth", json=_user_event("user.created"))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing webhook signature headers"


def test_webhook_rejects_tampered_body(client, webhook_secret):
    body, headers = _signed(_user_event("user.created"))
    tampered = body.replace(b"Mehmet", b"Mallory")
    resp = client.post("/v1/webhook/auth", content=tampered, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid webhook signature"


def test_user_created_event_creates_user(client, webhook_secret, login):
    resp = _post(client, _user_event("user.created"))
    assert resp.status_code == 200
    assert resp.json()["data"] == {"type": "user.created", "result": "created"}

    login("user_hook")
    profile = client.get("/v1/user/profile").json()["data"]
    assert profile["email"] == "mehmet@example.com"
    assert profile["firstName"] == "Mehmet"
    assert profile["avatar"] == "https://img.example/mehmet.png"


def test_user_updated_event_refreshes_user(client, webhook_secret, login):
    _post(client, _user_event("user.created"))
    resp = _post(client, _user_event("user.updated", first_name="Mehmet Ali"))
    assert resp.json()["data"]["result"] == "updated"

    login("user_hook")
    assert client.get("/v1/user/profile").json()["data"]["firstName"] == "Mehmet Ali"


def test_user_updated_event_for_unknown_user_creates_it(client, webhook_secret):
    resp = _post(client, _user_event("user.updated", user_id="user_late"))
    assert resp.json()["data"]["result"] == "created"


def test_user_deleted_event_removes_user(client, webhook_secret, login):
    _post(client, _user_event("user.created"))
    resp = _post(client, {"type": "user.deleted", "data": {"id": "user_hook", "deleted": True}})
    assert resp.json()["data"]["result"] == "deleted"

    again = _post(client, {"type": "user.deleted", "data": {"id": "user_hook", "deleted": True}})
    assert again.json()["data"]["result"] == "missing"


def test_unhandled_event_types_are_ignored(client, webhook_secret):
    resp = _post(client, {"type": "session.created", "data": {"id": "sess_1"}})
    assert resp.status_code == 200
    assert resp.json()["data"]["result"] == "ignored"


def test_user_event_without_id_fails(client, webhook_secret):
    resp = _post(client, {"type": "user.created", "data": {"first_name": "Anon"}})
    assert resp.status_code == 500


def test_legacy_webhook_path_is_accepted(client, webhook_secret):
    resp = _post(client, _user_event("user.created"), path="/v1/webhook/clerk")
    assert resp.status_code == 200


def test_signed_user_created_event_is_stored(client, webhook_secret):
    resp = _post(client, _user_event("user.created", user_id="user_signed"))
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    stored = asyncio.run(DB.get_user_by_external_id("user_signed"))
    assert stored is not None
    assert stored["email"] == "mehmet@example.com"
    assert stored["first_name"] == "Mehmet"
    assert stored["last_name"] == "Kaya"
    assert stored["level"] == "BEGINNER"
    assert stored["experience_points"] == 0


def test_signed_body_that_is_not_json_is_rejected(client, webhook_secret):
    body = "not-json"
    now = datetime.now(UTC)
    headers = {
        "svix-id": "msg_raw",
        "svix-timestamp": str(int(now.timestamp())),
        "svix-signature": Webhook(SECRET).sign("msg_raw", now, body),
    }
    resp = client.post("/v1/webhook/auth", content=body.encode(), headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Webhook body is not valid JSON"
