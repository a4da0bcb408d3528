"""Tests for observability features: metrics, health checks, and request tracing."""

from __future__ import annotations

from backend.localguide.health import health_checker
from backend.localguide.main import _scrub_health_details
from backend.localguide.metrics import normalize_endpoint
from backend.localguide.settings import settings
from prometheus_client.parser import text_string_to_metric_families


def _sample_labels(text: str, sample_name: str) -> list[dict[str, str]]:
    return [
        sample.labels
        for family in text_string_to_metric_families(text)
        for sample in family.samples
        if sample.name == sample_name
    ]


class TestPrometheusMetrics:
    def test_metrics_endpoint_exposes_prometheus_text(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "# HELP" in response.text
        assert "local_guide_info" in response.text

    def test_metrics_are_served_under_version_prefix(self, client):
        assert client.get("/v1/metrics").status_code == 200

    def test_http_and_domain_metrics_tracked(self, client):
        client.get("/v1/businesses")
        client.get("/v1/search", params={"q": "pizza"})
        content = client.get("/metrics").text
        assert {"method": "GET", "endpoint": "/v1/businesses", "status": "200"} in _sample_labels(
            content, "http_requests_total"
        )
        assert "http_request_duration_seconds" in content
        assert {"kind": "text"} in _sample_labels(content, "search_requests_total")
        assert {"operation": "enhance_query", "result": "disabled"} in _sample_labels(
            content, "ai_requests_total"
        )

    def test_endpoint_normalization(self):
        assert (
            normalize_endpoint("/v1/businesses/123e4567-e89b-12d3-a456-426614174000")
            == "/v1/businesses/{id}"
        )
        assert normalize_endpoint("/v1/reviews/12345/helpful") == "/v1/reviews/{id}/helpful"
        assert normalize_endpoint("/v1/businesses/starbucks-zorlu-besiktas") == "/v1/businesses/{id}"
        assert normalize_endpoint("/v1/businesses/nearby") == "/v1/businesses/nearby"
        assert normalize_endpoint("/health") == "/health"


class TestHealthChecks:
    def test_health_reports_dependencies(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "local-guide"
        assert body["version"] == settings.APP_VERSION
        checks = body["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["database"]["business_count"] == 5
        assert checks["identity"]["status"] == "bypassed"
        assert checks["sentry"]["status"] == "disabled"
        assert checks["ai"]["status"] == "disabled"
        assert checks["maps"]["status"] == "disabled"

    def test_invalid_sentry_dsn_degrades_health(self, client):
        settings.SENTRY_DSN = "not-a-dsn"
        response = client.get("/v1/health")
        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["sentry"] == {"status": "error"}

    def test_configured_ai_reports_circuit_state(self, client):
        settings.OPENAI_API_KEY = "sk-test"
        checks = client.get("/health").json()["checks"]
        assert checks["ai"]["status"] == "ok"
        assert checks["ai"]["circuit"] == "closed"

    def test_identity_check_is_cached(self):
        health_checker._cache_check("identity", {"status": "ok", "keys_count": 2})
        assert health_checker._get_cached_check("identity") == {"status": "ok", "keys_count": 2}
        health_checker.clear_cache()
        assert health_checker._get_cached_check("identity") is None

    def test_scrub_removes_error_internals(self):
        scrubbed = _scrub_health_details(
            {"database": {"status": "error", "error": "boom", "error_type": "OperationalError"}}
        )
        assert scrubbed == {"database": {"status": "error"}}


class TestRequestTracing:
    def test_request_id_is_generated(self, client):
        response = client.get("/health")
        assert response.headers["X-Request-ID"]

    def test_request_id_is_propagated(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"

    def test_security_headers_present(self, client):
        response = client.get("/v1/businesses")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestRouting:
    def test_legacy_api_prefix_is_rewritten(self, client):
        response = client.get("/api/businesses", params={"city": "Ankara"})
        assert response.status_code == 200
        assert [b["name"] for b in response.json()["data"]] == ["Cafe Nero Ankara"]
        assert response.headers["X-API-Version"] == "v1"
        assert "Legacy /api path" in response.headers["X-API-Warning"]

    def test_root_redirects_to_docs(self, client):
        response = client.get("/", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/docs"

    def test_errors_use_envelope(self, client):
        response = client.get("/v1/reviews/missing")
        assert response.status_code == 404
        assert response.json() == {"success": False, "detail": "Review not found"}


class TestRateLimiting:
    def test_requests_over_limit_are_rejected(self, client, monkeypatch):
        settings.RATE_LIMIT_ENABLED = True
        monkeypatch.setattr(settings, "RATE_LIMIT_REQUESTS", 2)
        monkeypatch.setattr(settings, "RATE_LIMIT_WINDOW_SECONDS", 60)

        first = client.get("/v1/businesses")
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        client.get("/v1/businesses")
        blocked = client.get("/v1/businesses")
        assert blocked.status_code == 429
        assert blocked.json() == {"success": False, "detail": "Too many requests"}
        assert int(blocked.headers["Retry-After"]) >= 1
