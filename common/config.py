from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv


NATO_ALPHABET: Tuple[str, ...] = (
    "Alpha",
    "Bravo",
    "Charlie",
    "Delta",
    "Echo",
    "Foxtrot",
    "Golf",
    "Hotel",
    "India",
    "Juliet",
    "Kilo",
    "Lima",
    "Mike",
    "November",
    "Oscar",
    "Papa",
    "Quebec",
    "Romeo",
    "Sierra",
    "Tango",
    "Uniform",
    "Victor",
    "Whiskey",
    "X-Ray",
    "Yankee",
    "Zulu",
)


class ConfigurationError(Exception):
    """Configuración inválida o incompleta."""


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


@dataclass(frozen=True)
class Settings:
    # Secretos compartidos con el cliente
    primary_key: str
    secondary_key: str
    salt: str
    pepper: str

    base_url: str

    environment: str = "development"
    pbkdf2_iterations: int = 310_000
    request_max_age_ms: int = 300_000
    token_max_age_ms: int = 300_000

    database_url: str = "sqlite:///./gateway.db"
    admin_api_key: str | None = None

    alias_pool: Tuple[str, ...] = NATO_ALPHABET
    group_bucket: str = "rgaio"

    upstream_timeout_seconds: float = 15.0
    upstream_movie_path: str = "/xxxlol/movie/{tmdb_id}"
    upstream_tv_path: str = "/xxxlol/tv/{tmdb_id}/{season_id}/{episode_id}"

    sse_heartbeat_seconds: float = 30.0
    stats_history_limit: int = 50
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    def __post_init__(self) -> None:
        if not self.alias_pool:
            raise ConfigurationError("ALIAS_POOL must contain at least one label")
        if len(set(self.alias_pool)) != len(self.alias_pool):
            raise ConfigurationError("ALIAS_POOL contains duplicate labels")

    @property
    def encryption_key(self) -> str:
        """Secreto base: PRIMARY_KEY + SECONDARY_KEY."""
        return self.primary_key + self.secondary_key

    @property
    def group_prefix(self) -> str:
        return f"{self.group_bucket}_"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _required(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("GATEWAY_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    alias_pool_raw = os.getenv("ALIAS_POOL", "")
    alias_pool = _csv(alias_pool_raw) if alias_pool_raw.strip() else NATO_ALPHABET

    return Settings(
        primary_key=_required("PRIMARY_KEY"),
        secondary_key=_required("SECONDARY_KEY"),
        salt=_required("SALT"),
        pepper=_required("PEPPER"),
        base_url=_required("BASE_URL").rstrip("/"),
        environment=os.getenv("ENVIRONMENT", "development").strip().lower(),
        pbkdf2_iterations=int(os.getenv("PBKDF2_ITERATIONS", "310000")),
        request_max_age_ms=int(os.getenv("REQUEST_MAX_AGE_MS", "300000")),
        token_max_age_ms=int(os.getenv("TOKEN_MAX_AGE_MS", "300000")),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./gateway.db"),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        alias_pool=alias_pool,
        group_bucket=os.getenv("GROUP_BUCKET", "rgaio").strip() or "rgaio",
        upstream_timeout_seconds=float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "15")),
        upstream_movie_path=os.getenv("UPSTREAM_MOVIE_PATH", "/xxxlol/movie/{tmdb_id}"),
        upstream_tv_path=os.getenv(
            "UPSTREAM_TV_PATH", "/xxxlol/tv/{tmdb_id}/{season_id}/{episode_id}"
        ),
        sse_heartbeat_seconds=float(os.getenv("SSE_HEARTBEAT_SECONDS", "30")),
        stats_history_limit=int(os.getenv("STATS_HISTORY_LIMIT", "50")),
        cors_origins=_csv(os.getenv("CORS_ORIGINS", "*")) or ("*",),
    )
