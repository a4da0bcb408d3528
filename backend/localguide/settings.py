from __future__ import annotations

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore"
    )

    # whether to expose the debug config endpoint
    DEBUG: bool = False
    DEV_ROUTES_ENABLED: bool = False
    APP_VERSION: str = "0.1.0"

    # persistence directory (defaults to ~/.local-guide-data)
    DATA_DIR: Path | None = None
    DATABASE_URL: str | None = None
    SEED_DEMO_DATA: bool = True

    # CORS allow origins (comma-separated). Default empty (no cross-origin).
    CORS_ALLOW_ORIGINS: str = ""

    # Identity provider (JWT issuer + JWKS)
    AUTH_ISSUER: str | None = None
    AUTH_AUDIENCE: str | None = None
    AUTH_JWKS_URL: str | None = None
    AUTH_BYPASS: bool = False  # require explicit opt-in for bypass
    AUTH_WEBHOOK_SECRET: str | None = None

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 300  # per window per client
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Only trust X-Forwarded-For from these proxies (comma-separated IPs/CIDRs, "*" for all)
    TRUSTED_PROXIES: str = ""

    # AI enrichment
    OPENAI_API_KEY: str | None = None
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: float = 15.0
    OPENAI_CONNECT_TIMEOUT_SECONDS: float = 5.0
    AI_MODEL: str = "gpt-4o-mini"
    AI_INSIGHTS_MODEL: str = "gpt-4o"
    AI_TRANSCRIBE_MODEL: str = "whisper-1"
    AI_FAILURE_THRESHOLD: int = 5
    AI_COOLDOWN_SECONDS: float = 30.0

    # Maps / geocoding
    MAPS_API_KEY: str | None = None
    MAPS_GEOCODE_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"
    MAPS_CACHE_TTL_SECONDS: int = 3600
    MAPS_TIMEOUT_SECONDS: float = 3.0

    # Locale and review policy
    DEFAULT_TIMEZONE: str = "Europe/Istanbul"
    DEFAULT_LANGUAGE: str = "tr"
    REVIEW_EDIT_WINDOW_DAYS: int = 7

    # Observability
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_RELEASE: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2

    @property
    def allow_origins(self) -> list[str]:
        s = (self.CORS_ALLOW_ORIGINS or "").strip()
        if s == "*":
            return ["*"]
        if s == "":
            return []
        return [part.strip() for part in s.split(",") if part.strip()]

    @property
    def data_dir(self) -> Path:
        # Blank DATA_DIR values count as unset; Path("") would point at the repo root.
        def _materialize(path: Path) -> Path:
            path.mkdir(parents=True, exist_ok=True)
            return path

        raw_env = os.getenv("DATA_DIR")
        if raw_env is not None:
            trimmed = raw_env.strip()
            if trimmed:
                return _materialize(Path(trimmed).expanduser().resolve())
            return _materialize(Path.home() / ".local-guide-data")

        if self.DATA_DIR is not None:
            candidate = Path(self.DATA_DIR).expanduser()
            candidate_str = str(candidate).strip()
            if candidate_str and candidate_str not in {".", "./", ".\\"}:
                return _materialize(candidate.resolve())
        return _materialize(Path.home() / ".local-guide-data")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        default_path = self.data_dir / "local_guide.db"
        return f"sqlite:///{default_path}"

    @property
    def async_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def auth_issuer(self) -> str | None:
        if not self.AUTH_ISSUER:
            return None
        issuer = self.AUTH_ISSUER.strip()
        if not issuer.startswith("http"):
            issuer = f"https://{issuer}"
        return issuer.rstrip("/")

    @property
    def jwks_url(self) -> str | None:
        if self.AUTH_JWKS_URL:
            return self.AUTH_JWKS_URL
        issuer = self.auth_issuer
        if not issuer:
            return None
        return f"{issuer}/.well-known/jwks.json"


settings = Settings()
# make sure directory exists when imported
settings.data_dir.mkdir(parents=True, exist_ok=True)
