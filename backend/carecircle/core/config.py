"""
Runtime settings, read from the environment (and a local `.env`) each time
`get_settings()` is called.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()

VALID_ROLES = frozenset({"MAIN_USER", "FAMILY"})
INSECURE_JWT_SECRET = "dev-secret"
PRODUCTION_ENVS = frozenset({"prod", "production"})

# Keys whose values never reach a log line. Personal details of family
# members (name, phone, email) are masked by the logging layer instead.
DEFAULT_SECRET_FIELDS = ("password", "token", "secret", "authorization", "jwt_secret")
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout_seconds: int = 30
    pool_recycle_seconds: int = 1800
    connect_timeout_seconds: int = 10
    statement_timeout_ms: int = 15000
    lock_timeout_ms: int = 5000

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgresql")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    format: str = "text"
    secret_fields: tuple[str, ...] = DEFAULT_SECRET_FIELDS


@dataclass(frozen=True)
class Settings:
    database: DatabaseSettings
    logging: LoggingSettings
    app_env: str = "dev"
    cors_allow_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    sse_max_stream_seconds: int = 300
    jwt_secret: str = INSECURE_JWT_SECRET
    jwt_exp_hours: int = 24
    # role for an account with no role claim and no member link
    default_role: str = "MAIN_USER"

    @property
    def is_production(self) -> bool:
        return self.app_env in PRODUCTION_ENVS


def _env(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _env_csv(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    values = tuple(v.strip() for v in (os.getenv(name) or "").split(",") if v.strip())
    return values or default


def _database_settings() -> DatabaseSettings:
    url = _env("DATABASE_URL", "")
    if not url:
        raise RuntimeError("DATABASE_URL is required (PostgreSQL, or SQLite for local-only mode)")
    # hosted Postgres providers hand out postgres://, SQLAlchemy only accepts postgresql://
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]

    return DatabaseSettings(
        url=url,
        pool_size=_env_int("DB_POOL_SIZE", 10),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 20),
        pool_timeout_seconds=_env_int("DB_POOL_TIMEOUT_SECONDS", 30),
        pool_recycle_seconds=_env_int("DB_POOL_RECYCLE_SECONDS", 1800),
        connect_timeout_seconds=_env_int("DB_CONNECT_TIMEOUT_SECONDS", 10),
        statement_timeout_ms=_env_int("DB_STATEMENT_TIMEOUT_MS", 15000),
        lock_timeout_ms=_env_int("DB_LOCK_TIMEOUT_MS", 5000),
    )


def get_settings() -> Settings:
    settings = Settings(
        database=_database_settings(),
        logging=LoggingSettings(
            level=_env("LOG_LEVEL", "INFO").upper(),
            format=_env("LOG_FORMAT", "text").lower(),
            secret_fields=tuple(f.lower() for f in _env_csv("LOG_SECRET_FIELDS", DEFAULT_SECRET_FIELDS)),
        ),
        app_env=_env("APP_ENV", "dev").lower(),
        cors_allow_origins=_env_csv("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ORIGINS),
        sse_max_stream_seconds=_env_int("SSE_MAX_STREAM_SECONDS", 300),
        jwt_secret=_env("JWT_SECRET", INSECURE_JWT_SECRET),
        jwt_exp_hours=_env_int("JWT_EXP_HOURS", 24),
        default_role=_env("DEFAULT_ROLE", "MAIN_USER").upper(),
    )

    if settings.is_production and settings.jwt_secret == INSECURE_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set to a non-default value in production")
    if settings.default_role not in VALID_ROLES:
        raise RuntimeError(f"DEFAULT_ROLE must be one of {sorted(VALID_ROLES)}")
    return settings
