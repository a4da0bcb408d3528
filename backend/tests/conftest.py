import asyncio
import os
import sys
from pathlib import Path

import pytest
import sentry_sdk
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Disable outbound Sentry calls during tests
sentry_sdk.init = lambda *args, **kwargs: None  # type: ignore[assignment]
os.environ["SENTRY_DSN"] = ""
os.environ["AUTH_BYPASS"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["MAPS_API_KEY"] = ""
os.environ.pop("DATABASE_URL", None)
test_data_dir = ROOT / "artifacts" / "test-data"
test_data_dir.mkdir(parents=True, exist_ok=True)
os.environ["DATA_DIR"] = str(test_data_dir)

from backend.localguide.auth import require_auth  # noqa: E402
from backend.localguide.cache import clear_all_caches  # noqa: E402
from backend.localguide.circuit_breaker import reset_all_breakers  # noqa: E402
from backend.localguide.health import health_checker  # noqa: E402
from backend.localguide.main import app  # noqa: E402
from backend.localguide.settings import settings  # noqa: E402
from backend.localguide.storage import DB  # noqa: E402


def run(coro):
    return asyncio.run(coro)


@pytest.fixture(scope="session")
def client() -> TestClient:
    return TestClient(app, base_url="http://api.testserver")


@pytest.fixture(autouse=True)
def clean_state():
    settings.AUTH_BYPASS = True
    settings.RATE_LIMIT_ENABLED = False
    settings.OPENAI_API_KEY = None
    settings.MAPS_API_KEY = None
    settings.SENTRY_DSN = None
    settings.AUTH_WEBHOOK_SECRET = None
    limiter = getattr(app.state, "rate_limiter", None)
    if limiter:
        limiter.reset()
    reset_all_breakers()
    clear_all_caches()
    health_checker.clear_cache()
    run(DB.reset())
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """Switch the authenticated caller: ``login("user_2")`` until the test ends."""

    def _login(sub: str, **claims):
        payload = {"sub": sub, "email": f"{sub}@example.com", "given_name": sub.title()}
        payload.update(claims)

        async def _claims():
            return payload

        app.dependency_overrides[require_auth] = _claims
        return payload

    yield _login
    app.dependency_overrides.pop(require_auth, None)


@pytest.fixture
def business(client):
    """A freshly created business owned by the default dev user."""
    resp = client.post(
        "/v1/businesses",
        json={
            "name": "Test Lokantası",
            "description": "Ev yemekleri sunan samimi bir esnaf lokantası.",
            "category": "Restoran",
            "subcategory": "Ev Yemekleri",
            "address": "Moda Cad. 10",
            "city": "İstanbul",
            "district": "Kadıköy",
            "lat": 40.9870,
            "lng": 29.0250,
            "priceRange": "BUDGET",
            "amenities": ["WIFI", "DELIVERY"],
            "keywords": ["kuru fasulye", "pilav"],
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.fixture
def review_payload():
    def _payload(business_id: str, **overrides):
        payload = {
            "businessId": business_id,
            "rating": 5,
            "title": "Harika bir deneyim",
            "content": "Yemekler çok lezzetli ve servis hızlıydı, kesinlikle tavsiye ederim.",
        }
        payload.update(overrides)
        return payload

    return _payload
