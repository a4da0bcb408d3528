"""Health check module with dependency verification."""

from __future__ import annotations

import time
from typing import Any

import httpx

from .cache import get_all_cache_stats
from .circuit_breaker import get_circuit_breaker
from .settings import settings

OK_STATES = {"ok", "disabled", "bypassed"}


def _is_configured(value: str | None) -> bool:
    if value is None:
        return False
    return bool(str(value).strip())


class HealthChecker:
    """Dependency checks for /health; remote checks are cached for a short TTL."""

    def __init__(self) -> None:
        self._check_cache: dict[str, tuple[dict[str, Any], float]] = {}
        self._cache_ttl = 30.0

    async def check_all(self) -> dict[str, Any]:
        identity_enabled = _is_configured(settings.jwks_url) and not settings.AUTH_BYPASS
        checks = {
            "database": await self._check_database(),
            "identity": await self._check_identity() if identity_enabled else {"status": "bypassed"},
            "sentry": self._check_sentry(),
            "ai": self._check_ai(),
            "maps": self._check_maps(),
        }
        all_ok = all(check.get("status") in OK_STATES for check in checks.values())
        return {
            "status": "healthy" if all_ok else "degraded",
            "timestamp": time.time(),
            "version": settings.APP_VERSION,
            "checks": checks,
        }

    async def _check_database(self) -> dict[str, Any]:
        from .storage import DB

        try:
            counts = await DB.counts()
        except Exception as exc:
            return {"status": "error", "error": str(exc), "error_type": type(exc).__name__}
        return {
            "status": "ok",
            "business_count": counts["businesses"],
            "review_count": counts["reviews"],
            "user_count": counts["users"],
        }

    async def _check_identity(self) -> dict[str, Any]:
        """Check that the identity provider's JWKS endpoint answers with keys."""
        cached = self._get_cached_check("identity")
        if cached is not None:
            return cached

        url = settings.jwks_url
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(url)
                response.raise_for_status()
                jwks = response.json()
        except httpx.TimeoutException:
            result = {"status": "error", "error": "Connection timeout", "error_type": "TimeoutException"}
        except httpx.HTTPStatusError as exc:
            result = {
                "status": "error",
                "error": f"HTTP {exc.response.status_code}",
                "error_type": "HTTPStatusError",
            }
        except (httpx.HTTPError, ValueError) as exc:
            result = {"status": "error", "error": str(exc), "error_type": type(exc).__name__}
        else:
            if isinstance(jwks, dict) and "keys" in jwks:
                result = {"status": "ok", "endpoint": url, "keys_count": len(jwks["keys"])}
            else:
                result = {"status": "error", "error": "Invalid JWKS response format"}
        self._cache_check("identity", result)
        return result

    @staticmethod
    def _check_sentry() -> dict[str, Any]:
        """Sanity-check the DSN shape; connectivity is not tested."""
        dsn = settings.SENTRY_DSN
        if not _is_configured(dsn):
            return {"status": "disabled", "reason": "SENTRY_DSN not configured"}
        if "@" in dsn and "//" in dsn:
            return {
                "status": "ok",
                "environment": settings.SENTRY_ENVIRONMENT,
                "release": settings.SENTRY_RELEASE or "unset",
            }
        return {"status": "error", "error": "Invalid SENTRY_DSN format"}

    @staticmethod
    def _check_ai() -> dict[str, Any]:
        # AI features fall back to heuristics, so a missing key only disables them
        if not _is_configured(settings.OPENAI_API_KEY):
            return {"status": "disabled", "reason": "OPENAI_API_KEY not configured"}
        breaker = get_circuit_breaker(
            "openai",
            failure_threshold=settings.AI_FAILURE_THRESHOLD,
            cooldown_seconds=settings.AI_COOLDOWN_SECONDS,
        )
        return {
            "status": "ok",
            "model": settings.AI_MODEL,
            "circuit": breaker.state.value,
            "caches": get_all_cache_stats(),
        }

    @staticmethod
    def _check_maps() -> dict[str, Any]:
        if not _is_configured(settings.MAPS_API_KEY):
            return {"status": "disabled", "reason": "MAPS_API_KEY not configured"}
        return {"status": "ok", "endpoint": settings.MAPS_GEOCODE_URL}

    def _get_cached_check(self, key: str) -> dict[str, Any] | None:
        if key not in self._check_cache:
            return None
        result, timestamp = self._check_cache[key]
        if time.time() - timestamp > self._cache_ttl:
            return None
        return result

    def _cache_check(self, key: str, result: dict[str, Any]) -> None:
        self._check_cache[key] = (result, time.time())

    def clear_cache(self) -> None:
        self._check_cache.clear()


health_checker = HealthChecker()


__all__ = ["HealthChecker", "health_checker"]
