"""Construcción explícita de los componentes del gateway.

Una instancia por proceso, creada en el lifespan de la app y guardada en
`app.state.container`. Nada se inicializa de forma perezosa.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from sqlalchemy.engine import Engine

from common.config import Settings
from common.db import get_engine

from .auth.request_auth import RequestAuthenticator
from .crypto.envelope import EnvelopeCipher
from .crypto.token import TokenCodec
from .infrastructure.persistence import SourceRepository, StatsRepository, ensure_schema
from .service import GatewayService
from .sources.registry import AliasRegistry
from .stats.aggregator import StatsAggregator
from .upstream.client import UpstreamClient


logger = logging.getLogger(__name__)


class GatewayContainer:
    def __init__(
        self,
        settings: Settings,
        engine: Optional[Engine] = None,
        upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.engine = engine if engine is not None else get_engine(settings)

        self.source_repository = SourceRepository(self.engine)
        self.stats_repository = StatsRepository(self.engine, settings.stats_history_limit)

        self.cipher = EnvelopeCipher(
            settings.primary_key,
            settings.secondary_key,
            settings.salt,
            settings.pepper,
            iterations=settings.pbkdf2_iterations,
        )
        self.tokens = TokenCodec(settings.pepper, max_age_ms=settings.token_max_age_ms)
        self.authenticator = RequestAuthenticator(
            self.cipher,
            self.tokens,
            secret=settings.encryption_key,
            max_age_ms=settings.request_max_age_ms,
        )

        self.registry = AliasRegistry(
            self.source_repository,
            settings.alias_pool,
            group_bucket=settings.group_bucket,
        )
        self.stats = StatsAggregator(self.stats_repository, group_bucket=settings.group_bucket)
        self.registry.add_observer(self.stats)

        self.upstream = UpstreamClient(
            settings.base_url,
            movie_path=settings.upstream_movie_path,
            tv_path=settings.upstream_tv_path,
            timeout_seconds=settings.upstream_timeout_seconds,
            transport=upstream_transport,
        )
        self.gateway = GatewayService(
            self.authenticator,
            self.upstream,
            self.registry,
            self.stats,
            self.cipher,
        )

    @property
    def is_ready(self) -> bool:
        return self.registry.is_ready and self.stats.is_ready

    async def startup(self) -> None:
        logger.info("[Gateway] Startup environment=%s", self.settings.environment)
        await asyncio.to_thread(ensure_schema, self.engine)
        await self.registry.initialize()
        await self.stats.initialize(self.registry.list_sources())
        logger.info("[Gateway] Ready sources=%d", len(self.registry.list_sources()))

    async def shutdown(self) -> None:
        await self.upstream.aclose()
        logger.info("[Gateway] Shutdown complete")
