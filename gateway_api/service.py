"""Flujo de una petición cifrada.

sobre -> autenticación -> upstream -> reescritura de alias -> stats -> sobre
"""

from __future__ import annotations

import asyncio
import logging
import time

from .auth.request_auth import RequestAuthenticator
from .crypto.envelope import EncryptedEnvelope, EnvelopeCipher
from .errors import UpstreamError
from .sources.registry import AliasRegistry
from .stats.aggregator import StatsAggregator
from .upstream.client import UpstreamClient


logger = logging.getLogger(__name__)


def _optional_str(value) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class GatewayService:
    def __init__(
        self,
        authenticator: RequestAuthenticator,
        upstream: UpstreamClient,
        registry: AliasRegistry,
        stats: StatsAggregator,
        cipher: EnvelopeCipher,
    ):
        self._authenticator = authenticator
        self._upstream = upstream
        self._registry = registry
        self._stats = stats
        self._cipher = cipher

    async def process(self, ciphertext: str, iv: str, auth_tag: str) -> EncryptedEnvelope:
        started = time.monotonic()
        payload = await self._authenticator.open(ciphertext, iv, auth_tag)

        data = await self._upstream.fetch_sources(
            payload.mediaType,
            str(payload.tmdbId),
            _optional_str(payload.seasonId),
            _optional_str(payload.episodeId),
        )
        if not isinstance(data, dict):
            raise UpstreamError("API returned an unexpected body")

        response_ms = (time.monotonic() - started) * 1000

        rewritten = self._registry.rewrite(data)

        if data.get("sources"):
            await self._record_stats(data["sources"], response_ms)

        logger.info(
            "[Gateway] Request served media_type=%s tmdb_id=%s response_ms=%.0f",
            payload.mediaType,
            payload.tmdbId,
            response_ms,
        )
        return await asyncio.to_thread(self._cipher.encrypt, rewritten)

    async def _record_stats(self, sources, response_ms: float) -> None:
        # Telemetría best-effort: nunca interrumpe la respuesta
        try:
            await self._stats.record(sources, response_ms)
        except Exception:
            logger.exception("[Gateway] Error updating stats")
