from __future__ import annotations

import json
import time
from typing import Annotated, Any

import httpx
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    MissingRequiredClaimError,
)
from jwt.algorithms import RSAAlgorithm

from .metrics import auth_token_validations_total
from .settings import settings

security = HTTPBearer(auto_error=False)
AuthCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]

EXPIRY_BUFFER_SECONDS = 30
CLOCK_SKEW_SECONDS = 300
JWKS_CACHE_SECONDS = 60 * 15

BYPASS_CLAIMS = {
    "sub": "local-dev-user",
    "email": "dev@localguide.local",
    "given_name": "Local",
    "family_name": "Dev",
}


def _unauthorized(detail: str) -> HTTPException:
    auth_token_validations_total.labels(result="rejected").inc()
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class JWKSVerifier:
    """Verifies identity-provider session tokens (RS256) against its published JWKS."""

    def __init__(self) -> None:
        self._jwks: dict[str, Any] | None = None
        self._jwks_expiry: float = 0.0

    def _fetch_jwks(self) -> dict[str, Any]:
        url = settings.jwks_url
        if not url:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="AUTH_ISSUER or AUTH_JWKS_URL is not configured",
            )
        try:
            resp = httpx.get(url, timeout=5)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to fetch identity provider JWKS",
            ) from exc

    def _get_jwks(self) -> dict[str, Any]:
        now = time.time()
        if self._jwks and now < self._jwks_expiry:
            return self._jwks
        self._jwks = self._fetch_jwks()
        self._jwks_expiry = now + JWKS_CACHE_SECONDS
        return self._jwks

    def clear(self) -> None:
        self._jwks = None
        self._jwks_expiry = 0.0

    def verify(self, token: str) -> dict[str, Any]:
        """
        Verify signature, issuer, audience (when configured) and timing claims.

        Raises:
            HTTPException: 401 for any invalid token, 500/502 for provider misconfiguration
        """
        issuer = settings.auth_issuer
        if not issuer:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="AUTH_ISSUER is not configured",
            )

        try:
            header = jwt.get_unverified_header(token)
        except InvalidTokenError as exc:
            raise _unauthorized("Malformed token header") from exc

        alg = header.get("alg")
        if alg != "RS256":
            raise _unauthorized(f"Unsupported algorithm: {alg}. Only RS256 allowed.")
        kid = header.get("kid")
        if not kid:
            raise _unauthorized("Missing key ID in token")

        jwks = self._get_jwks()
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            # keys rotate; refetch once before giving up
            self.clear()
            jwks = self._get_jwks()
            key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise _unauthorized("Unknown token signature key")

        public_key = RSAAlgorithm.from_jwk(json.dumps(key))
        audience = settings.AUTH_AUDIENCE
        try:
            payload = jwt.decode(
                token,
                key=public_key,
                algorithms=["RS256"],
                audience=audience,
                issuer=issuer,
                options={"require": ["exp", "iat", "sub"], "verify_aud": bool(audience)},
            )
        except ExpiredSignatureError as exc:
            raise _unauthorized("Token has expired") from exc
        except (InvalidAudienceError, InvalidIssuerError, MissingRequiredClaimError) as exc:
            raise _unauthorized("Invalid token claims") from exc
        except InvalidTokenError as exc:
            raise _unauthorized("Invalid token") from exc

        self._validate_timing(payload)
        auth_token_validations_total.labels(result="accepted").inc()
        return payload

    @staticmethod
    def _validate_timing(payload: dict[str, Any]) -> None:
        now = time.time()
        exp = payload.get("exp")
        if exp and exp < now + EXPIRY_BUFFER_SECONDS:
            raise _unauthorized("Token expired or expiring soon. Please refresh.")
        iat = payload.get("iat")
        if iat and iat > now + CLOCK_SKEW_SECONDS:
            raise _unauthorized("Token issued in the future")
        if not payload.get("sub"):
            raise _unauthorized("Token missing subject claim")


jwks_verifier = JWKSVerifier()


async def require_auth(credentials: AuthCredentials) -> dict[str, Any]:
    """FastAPI dependency enforcing a valid bearer token."""
    if settings.AUTH_BYPASS:
        return dict(BYPASS_CLAIMS)
    if not credentials:
        raise _unauthorized("Missing Authorization header")
    return jwks_verifier.verify(credentials.credentials)


__all__ = ["BYPASS_CLAIMS", "JWKSVerifier", "jwks_verifier", "require_auth"]
