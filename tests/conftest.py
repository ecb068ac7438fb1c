"""Fixtures compartidas de los tests del gateway."""

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from common.config import NATO_ALPHABET, Settings
from gateway_api.crypto.envelope import EnvelopeCipher
from gateway_api.crypto.token import TokenCodec, TokenFields
from gateway_api.infrastructure.persistence import SourceRepository, StatsRepository, ensure_schema
from gateway_api.sources.registry import AliasRegistry
from gateway_api.stats.aggregator import StatsAggregator


NOW_MS = 1_700_000_000_000


class FixedClock:
    """Reloj en epoch-ms controlado por el test."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_settings(**overrides) -> Settings:
    values = dict(
        primary_key="primary-key",
        secondary_key="secondary-key",
        salt="static-salt",
        pepper="static-pepper",
        base_url="http://upstream.test",
        # Iteraciones bajas: la derivación por llamada es lenta a propósito
        pbkdf2_iterations=1000,
        database_url="sqlite://",
        admin_api_key="admin-secret",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine():
    """SQLite en memoria compartida entre hilos (asyncio.to_thread)."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def source_repository(engine) -> SourceRepository:
    return SourceRepository(engine)


@pytest.fixture
def stats_repository(engine) -> StatsRepository:
    return StatsRepository(engine, history_limit=5)


@pytest.fixture
def cipher(settings, clock) -> EnvelopeCipher:
    return EnvelopeCipher(
        settings.primary_key,
        settings.secondary_key,
        settings.salt,
        settings.pepper,
        iterations=settings.pbkdf2_iterations,
        clock=clock,
    )


@pytest.fixture
def tokens(settings, clock) -> TokenCodec:
    return TokenCodec(settings.pepper, max_age_ms=settings.token_max_age_ms, clock=clock)


@pytest_asyncio.fixture
async def registry(source_repository, clock) -> AliasRegistry:
    reg = AliasRegistry(source_repository, NATO_ALPHABET, clock=clock)
    await reg.initialize()
    return reg


@pytest_asyncio.fixture
async def aggregator(stats_repository, clock) -> StatsAggregator:
    agg = StatsAggregator(stats_repository, clock=clock)
    await agg.initialize([])
    return agg


@pytest_asyncio.fixture
async def wired(source_repository, stats_repository, clock):
    """Registry y aggregator conectados como en producción."""
    reg = AliasRegistry(source_repository, NATO_ALPHABET, clock=clock)
    await reg.initialize()
    agg = StatsAggregator(stats_repository, clock=clock)
    await agg.initialize(reg.list_sources())
    reg.add_observer(agg)
    return reg, agg


def seal_request(
    cipher: EnvelopeCipher,
    tokens: TokenCodec,
    secret: str,
    *,
    media_type: str = "movie",
    tmdb_id="550",
    season_id=None,
    episode_id=None,
    timestamp=NOW_MS,
    token: str | None = None,
    **extra,
):
    """Sobre cifrado tal como lo construye el cliente."""
    fields = TokenFields(media_type, tmdb_id, timestamp, season_id, episode_id)
    payload = {"mediaType": media_type, "tmdbId": tmdb_id, "timestamp": timestamp}
    if season_id is not None:
        payload["seasonId"] = season_id
    if episode_id is not None:
        payload["episodeId"] = episode_id
    payload["token"] = token if token is not None else tokens.generate(fields, secret)
    payload.update(extra)
    return cipher.encrypt(payload)
