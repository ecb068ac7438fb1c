"""Cliente de la API de agregación upstream."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from ..errors import DomainBlockedError, InvalidRequestError, UpstreamError
from ..metrics import UPSTREAM_LATENCY


logger = logging.getLogger(__name__)


class UpstreamClient:
    """Obtiene las fuentes de una película o episodio.

    El AsyncClient se crea una vez y se cierra en el shutdown de la app.
    `transport` permite inyectar httpx.MockTransport en tests.
    """

    def __init__(
        self,
        base_url: str,
        movie_path: str = "/xxxlol/movie/{tmdb_id}",
        tv_path: str = "/xxxlol/tv/{tmdb_id}/{season_id}/{episode_id}",
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._movie_path = movie_path
        self._tv_path = tv_path
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout_seconds,
            transport=transport,
        )

    def build_path(
        self,
        media_type: str,
        tmdb_id: str,
        season_id: Optional[str] = None,
        episode_id: Optional[str] = None,
    ) -> str:
        if media_type == "movie":
            return self._movie_path.format(tmdb_id=tmdb_id)
        if media_type == "tv":
            return self._tv_path.format(tmdb_id=tmdb_id, season_id=season_id, episode_id=episode_id)
        raise InvalidRequestError(f"Invalid media type: {media_type}")

    async def fetch_sources(
        self,
        media_type: str,
        tmdb_id: str,
        season_id: Optional[str] = None,
        episode_id: Optional[str] = None,
    ) -> Any:
        path = self.build_path(media_type, tmdb_id, season_id, episode_id)
        url = f"{self._base_url}{path}"

        started = time.perf_counter()
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as e:
            logger.error("[Upstream] Error de red url=%s error=%s", url, type(e).__name__)
            raise UpstreamError(f"API request failed: {type(e).__name__}") from e
        finally:
            UPSTREAM_LATENCY.labels(media_type=media_type).observe(time.perf_counter() - started)

        if response.status_code == 403:
            logger.error("[Upstream] 403 Forbidden url=%s", url)
            raise DomainBlockedError(url)

        if not response.is_success:
            logger.error("[Upstream] status=%s url=%s", response.status_code, url)
            raise UpstreamError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("API returned an invalid JSON body", status_code=response.status_code) from e

    async def aclose(self) -> None:
        await self._client.aclose()
