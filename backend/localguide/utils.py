from __future__ import annotations

import asyncio
import ipaddress
import logging
import math
import time
from contextvars import ContextVar
from uuid import uuid4

from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .metrics import rate_limit_hits_total
from .settings import settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def add_cors(app):
    origins = settings.allow_origins
    if not origins:
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            # the web client asks for the browser location for nearby search
            "Permissions-Policy": "camera=(), microphone=(self), geolocation=(self)",
        }
        if request.url.scheme in {"https", "wss"}:
            headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        for key, value in headers.items():
            response.headers.setdefault(key, value)
        return response


def add_security_headers(app):
    app.add_middleware(SecurityHeadersMiddleware)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate X-Request-ID (generated when absent) into logs and responses."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request_id_ctx.set(request_id)
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestIDLogFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_ctx.get("")
        record.request_id = request_id if request_id else "-"  # type: ignore[attr-defined]
        return True


def add_request_id_tracing(app):
    app.add_middleware(RequestIDMiddleware)
    logging.getLogger().addFilter(RequestIDLogFilter())


def get_request_id() -> str:
    return request_id_ctx.get("")


class RateLimiter:
    """Per-client token bucket; buckets are sharded across a few asyncio locks."""

    def __init__(self, shards: int = 32) -> None:
        self._buckets: dict[str, dict[str, float]] = {}
        self._locks = [asyncio.Lock() for _ in range(max(1, shards))]
        self._last_cleanup = 0.0

    async def dispatch(self, request: Request, call_next):
        limit = settings.RATE_LIMIT_REQUESTS
        window = settings.RATE_LIMIT_WINDOW_SECONDS
        if not settings.RATE_LIMIT_ENABLED or limit <= 0 or window <= 0:
            return await call_next(request)

        identifier = self._identifier_for(request)
        allowed, remaining, reset_in = await self._consume(
            identifier, limit, window, time.monotonic()
        )
        if not allowed:
            rate_limit_hits_total.inc()
            retry_after = max(1, math.ceil(reset_in))
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"success": False, "detail": "Too many requests"},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(retry_after),
                },
            )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit", str(limit))
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
        response.headers["X-RateLimit-Reset"] = str(max(0, math.ceil(reset_in)))
        return response

    async def _consume(self, identifier: str, limit: int, window: int, now: float):
        refill_rate = limit / window
        lock = self._locks[hash(identifier) % len(self._locks)]
        async with lock:
            bucket = self._buckets.get(identifier)
            if not bucket:
                self._buckets[identifier] = {"tokens": float(limit - 1), "last": now}
                self._maybe_cleanup(now, window)
                return True, limit - 1, 0

            elapsed = max(0.0, now - bucket["last"])
            tokens = min(float(limit), bucket["tokens"] + elapsed * refill_rate)
            bucket["last"] = now
            self._maybe_cleanup(now, window)

            if tokens >= 1:
                tokens -= 1
                bucket["tokens"] = tokens
                reset_in = (limit - tokens) / refill_rate if tokens < limit else 0
                return True, int(tokens), reset_in

            bucket["tokens"] = tokens
            reset_in = (1 - tokens) / refill_rate if refill_rate else window
            return False, 0, reset_in

    def reset(self) -> None:
        self._buckets.clear()
        self._last_cleanup = 0.0

    def _maybe_cleanup(self, now: float, window: int) -> None:
        if now - self._last_cleanup < window:
            return
        stale_cutoff = now - (window * 3)
        for key in [k for k, meta in self._buckets.items() if meta.get("last", 0.0) < stale_cutoff]:
            self._buckets.pop(key, None)
        self._last_cleanup = now

    def _identifier_for(self, request: Request) -> str:
        """
        Client identity for throttling.

        X-Forwarded-For is only honoured when the direct peer is a trusted proxy;
        the leftmost valid address in the chain is the original client.
        """
        direct_client_ip = request.client.host if request.client else None
        if not direct_client_ip or not self._is_trusted_proxy(direct_client_ip):
            return direct_client_ip or "anonymous"

        forwarded = request.headers.get("x-forwarded-for")
        if not forwarded:
            return direct_client_ip
        for ip in (part.strip() for part in forwarded.split(",")):
            if self._is_valid_ip(ip):
                return ip
        return direct_client_ip

    @staticmethod
    def _is_trusted_proxy(ip: str) -> bool:
        trusted = settings.TRUSTED_PROXIES.strip()
        if not trusted:
            return False
        if trusted == "*":
            return True
        try:
            ip_obj = ipaddress.ip_address(ip)
        except ValueError:
            return False
        for entry in trusted.split(","):
            entry = entry.strip()
            if not entry:
                continue
            try:
                if "/" in entry:
                    if ip_obj in ipaddress.ip_network(entry, strict=False):
                        return True
                elif ip_obj == ipaddress.ip_address(entry):
                    return True
            except ValueError:
                continue
        return False

    @staticmethod
    def _is_valid_ip(ip: str) -> bool:
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            return False
        return True


__all__ = [
    "RateLimiter",
    "add_cors",
    "add_request_id_tracing",
    "add_security_headers",
    "get_request_id",
    "request_id_ctx",
]
