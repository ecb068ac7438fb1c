"""Reconciliación de nombres de servidor con las fuentes registradas.

Precedencia (la primera regla con candidatos gana):

0. nombre canónico exacto, sin distinguir mayúsculas
1. nombre normalizado exacto
2. alias exacto, sin distinguir mayúsculas
3. contención de subcadena entre nombres normalizados no vacíos

Si una regla produce varios candidatos se registra como ambiguo y se elige
primero el que coincide en agrupación (prefijo de grupo), luego el nombre
más largo y luego el alfabéticamente menor.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .models import ServerStat


logger = logging.getLogger(__name__)

_VERSION_SUFFIX_RE = re.compile(r"(\d+|[_-]v\d+)$")


def normalize_server_name(name: str, group_prefix: str = "rgaio_") -> str:
    """Minúsculas, sin prefijo de grupo y sin sufijo numérico/de versión final.

    >>> normalize_server_name("RGAIO_Vidsrc2")
    'vidsrc'
    >>> normalize_server_name("embed-v2")
    'embed'
    """
    if not name:
        return ""
    normalized = name.lower().strip()
    prefix = group_prefix.lower()
    if prefix and normalized.startswith(prefix):
        normalized = normalized[len(prefix):]
    return _VERSION_SUFFIX_RE.sub("", normalized)


class NameIndex:
    """Índice de lectura sobre los ServerStat; se reconstruye al cambiar las fuentes."""

    def __init__(self, stats: Iterable[ServerStat] = (), group_prefix: str = "rgaio_"):
        self._group_prefix = group_prefix
        self._stats: list[ServerStat] = []
        self._by_lower: dict[str, list[ServerStat]] = {}
        self._by_normalized: dict[str, list[ServerStat]] = {}
        self._by_alias: dict[str, list[ServerStat]] = {}
        self._normalized: list[tuple[str, ServerStat]] = []
        for stat in stats:
            self.add(stat)

    def __len__(self) -> int:
        return len(self._stats)

    def normalize(self, name: str) -> str:
        return normalize_server_name(name, self._group_prefix)

    def add(self, stat: ServerStat) -> None:
        normalized = self.normalize(stat.original_name)
        self._stats.append(stat)
        self._by_lower.setdefault(stat.original_name.lower().strip(), []).append(stat)
        self._by_normalized.setdefault(normalized, []).append(stat)
        self._by_alias.setdefault(stat.alias_name.lower(), []).append(stat)
        self._normalized.append((normalized, stat))

    def resolve(self, identifier: str) -> Optional[ServerStat]:
        if not identifier:
            return None

        lowered = identifier.lower().strip()
        wants_grouped = bool(self._group_prefix) and lowered.startswith(self._group_prefix.lower())
        normalized = self.normalize(identifier)

        levels = (
            ("canonical", self._by_lower.get(lowered, [])),
            ("normalized", self._by_normalized.get(normalized, []) if normalized else []),
            ("alias", self._by_alias.get(lowered, [])),
        )
        for level, candidates in levels:
            if candidates:
                return self._choose(identifier, level, candidates, wants_grouped)

        if not normalized:
            return None

        contained = [
            stat
            for stat_name, stat in self._normalized
            if stat_name and (stat_name in normalized or normalized in stat_name)
        ]
        if contained:
            return self._choose(identifier, "substring", contained, wants_grouped)
        return None

    @staticmethod
    def _choose(
        identifier: str,
        level: str,
        candidates: list[ServerStat],
        wants_grouped: bool,
    ) -> ServerStat:
        if len(candidates) == 1:
            return candidates[0]

        ranked = sorted(
            candidates,
            key=lambda s: (s.grouped != wants_grouped, -len(s.original_name), s.original_name),
        )
        logger.warning(
            "[Stats] Coincidencia ambigua server=%s level=%s candidates=%s chosen=%s",
            identifier,
            level,
            [s.original_name for s in candidates],
            ranked[0].original_name,
        )
        return ranked[0]
