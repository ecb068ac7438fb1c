"""Deterministic request token.

The client computes the same value from the request fields and the shared
secret; the gateway recomputes it and compares. The scheme is fixed by the
deployed clients:

    entropy = hex(utf8("mediaType:tmdbId:seasonId:episodeId:timestamp:secret"))
    json    = {"mediaType", "tmdbId", "seasonId", "episodeId",
               "timestamp", "secret", "entropy"}   (this key order, compact)
    token   = hex(sha512(sha256(json + pepper))[:32])
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

import orjson

from common.clock import now_ms


logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


@dataclass(frozen=True)
class TokenFields:
    media_type: str
    tmdb_id: str
    timestamp: Union[int, float]
    season_id: Optional[str] = None
    episode_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TokenFields":
        return cls(
            media_type=payload.get("mediaType"),
            tmdb_id=payload.get("tmdbId"),
            timestamp=payload.get("timestamp"),
            season_id=payload.get("seasonId"),
            episode_id=payload.get("episodeId"),
        )


def _js_string(value: Any) -> str:
    # Interpolación de template string: un float entero se imprime sin ".0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if value is None:
        return "undefined"
    return str(value)


def _json_number(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class TokenCodec:
    def __init__(
        self,
        pepper: str,
        max_age_ms: int = 300_000,
        clock: Callable[[], int] = now_ms,
    ):
        self._pepper = pepper
        self._max_age_ms = max_age_ms
        self._clock = clock

    @property
    def max_age_ms(self) -> int:
        return self._max_age_ms

    def canonical_json(self, fields: TokenFields, secret: str) -> bytes:
        season = fields.season_id or ""
        episode = fields.episode_id or ""

        entropy_base = ":".join(
            (
                _js_string(fields.media_type),
                _js_string(fields.tmdb_id),
                _js_string(season),
                _js_string(episode),
                _js_string(fields.timestamp),
                secret,
            )
        )

        # dict conserva el orden de inserción; orjson serializa compacto
        document = {
            "mediaType": fields.media_type,
            "tmdbId": fields.tmdb_id,
            "seasonId": season,
            "episodeId": episode,
            "timestamp": _json_number(fields.timestamp),
            "secret": secret,
            "entropy": entropy_base.encode("utf-8").hex(),
        }
        return orjson.dumps(document)

    def generate(self, fields: TokenFields, secret: str) -> str:
        first = hashlib.sha256(self.canonical_json(fields, secret) + self._pepper.encode("utf-8")).digest()
        second = hashlib.sha512(first).digest()
        return second[:TOKEN_BYTES].hex()

    def age_ms(self, fields: TokenFields) -> Optional[float]:
        if isinstance(fields.timestamp, bool) or not isinstance(fields.timestamp, (int, float)):
            return None
        return self._clock() - fields.timestamp

    def is_fresh(self, fields: TokenFields) -> bool:
        age = self.age_ms(fields)
        return age is not None and age <= self._max_age_ms

    def verify(self, fields: TokenFields, token: str, secret: str) -> bool:
        """True si el token coincide y su timestamp no supera la ventana de frescura."""
        if not self.is_fresh(fields):
            logger.info("[Auth] Token expirado media_type=%s tmdb_id=%s", fields.media_type, fields.tmdb_id)
            return False

        if not isinstance(token, str):
            return False

        try:
            expected = self.generate(fields, secret)
        except TypeError as e:
            # orjson rechaza enteros fuera de 64 bits (JSONEncodeError es TypeError)
            logger.info("[Auth] Campos de token no serializables media_type=%s error=%s", fields.media_type, e)
            return False
        matches = hmac.compare_digest(expected.encode("ascii"), token.encode("utf-8"))
        if not matches:
            logger.warning("[Auth] Token mismatch media_type=%s tmdb_id=%s", fields.media_type, fields.tmdb_id)
        return matches
