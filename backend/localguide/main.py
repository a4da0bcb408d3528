from typing import Any

import sentry_sdk
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .api.routes import ai as ai_routes
from .api.routes import businesses as business_routes
from .api.routes import gamification as gamification_routes
from .api.routes import maps as maps_routes
from .api.routes import recommendations as recommendation_routes
from .api.routes import reviews as review_routes
from .api.routes import search as search_routes
from .api.routes import users as user_routes
from .api.routes import webhooks as webhook_routes
from .api.utils import current_user
from .auth import require_auth
from .cache import clear_all_caches, get_all_cache_stats
from .health import health_checker
from .logging_config import configure_structlog, get_logger
from .metrics import PrometheusMiddleware, get_metrics
from .openai_async import close_async_client
from .serializers import user_to_payload
from .settings import settings
from .utils import RateLimiter, add_cors, add_request_id_tracing, add_security_headers

# Configure structured logging (must be done before any logging calls)
configure_structlog(json_logs=not settings.DEBUG)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE or f"local-guide@{settings.APP_VERSION}",
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

app = FastAPI(
    title="Local Guide API",
    version=settings.APP_VERSION,
    description="Business directory, reviews and local search for Turkish cities",
)
add_cors(app)
add_security_headers(app)
add_request_id_tracing(app)

rate_limiter = RateLimiter()
app.state.rate_limiter = rate_limiter


@app.middleware("http")
async def rate_limit(request: Request, call_next):  # type: ignore[override]
    return await rate_limiter.dispatch(request, call_next)


app.add_middleware(PrometheusMiddleware)

API_PREFIX = "/v1"
LEGACY_PREFIX = "/api/"

logger = get_logger(__name__)


@app.middleware("http")
async def legacy_prefix_upgrade(request: Request, call_next):  # type: ignore[override]
    path = request.scope.get("path", "")
    if not path.startswith(LEGACY_PREFIX):
        return await call_next(request)

    new_path = f"{API_PREFIX}/{path[len(LEGACY_PREFIX):]}"
    request.scope["path"] = new_path
    query = request.scope.get("query_string", b"")
    raw_path = new_path.encode()
    if query:
        raw_path = raw_path + b"?" + query
    request.scope["raw_path"] = raw_path
    request.state.legacy_prefix_applied = True
    response = await call_next(request)
    response.headers.setdefault(
        "X-API-Warning",
        "Legacy /api path automatically routed to /v1. Please update client requests.",
    )
    response.headers.setdefault("X-API-Version", "v1")
    return response


v1_router = APIRouter(prefix=API_PREFIX)


def register_on_both(method: str, path: str, **kwargs):
    """Register endpoint on the root app and the versioned router."""

    def decorator(func):
        getattr(app, method)(path, **kwargs)(func)
        getattr(v1_router, method)(path, **kwargs)(func)
        return func

    return decorator


@register_on_both("get", "/health")
async def health():
    """Return service health including dependency checks."""
    health_status = await health_checker.check_all()
    status_code = 200 if health_status["status"] == "healthy" else 503
    body = {
        "status": health_status["status"],
        "timestamp": health_status.get("timestamp"),
        "checks": health_status.get("checks", {}),
        "service": "local-guide",
        "version": settings.APP_VERSION,
    }
    if not settings.DEBUG:
        body["checks"] = _scrub_health_details(body["checks"])
    return JSONResponse(content=body, status_code=status_code)


@register_on_both("get", "/metrics")
def metrics():
    """Expose Prometheus metrics."""
    return get_metrics()


@register_on_both("get", "/auth/session")
async def session_info(
    claims: dict[str, Any] = Depends(require_auth), user: dict[str, Any] = Depends(current_user)
):
    return {
        "claims": {
            "sub": claims.get("sub"),
            "email": claims.get("email"),
        },
        "user": user_to_payload(user),
    }


for module in (
    business_routes,
    review_routes,
    search_routes,
    ai_routes,
    recommendation_routes,
    gamification_routes,
    user_routes,
    webhook_routes,
    maps_routes,
):
    v1_router.include_router(module.router)

app.include_router(v1_router)


if settings.DEBUG and settings.DEV_ROUTES_ENABLED:

    @app.post("/dev/sentry-test")
    def dev_sentry_test(
        claims: dict[str, Any] = Depends(require_auth),
        message: str = Body("manual ping", embed=True),
    ):
        sentry_sdk.capture_message(f"[dev-sentry-test] {message}")
        return {"ok": True, "message": message}

    @app.post("/dev/cache/clear")
    def dev_clear_caches(claims: dict[str, Any] = Depends(require_auth)):
        clear_all_caches()
        return {"ok": True, "cleared": True}

    @app.get("/dev/cache/stats")
    def dev_cache_stats(claims: dict[str, Any] = Depends(require_auth)):
        return get_all_cache_stats()


@app.get("/", include_in_schema=False)
def root_redirect():
    return RedirectResponse(url="/docs", status_code=307)


@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_async_client()
    logger.info("shutdown_complete")


def _scrub_health_details(payload: dict[str, Any]) -> dict[str, Any]:
    """Remove error internals from health checks outside DEBUG."""

    def _scrub(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: _scrub(inner)
                for key, inner in value.items()
                if key not in {"error", "error_type", "traceback"}
            }
        if isinstance(value, list):
            return [_scrub(item) for item in value]
        return value

    return _scrub(payload)
