"""Normalización de eventos de fuentes a pares (servidor, resultado)."""

from __future__ import annotations

from typing import Any, Iterator, Mapping

import orjson

# Claves de metadatos del formato plano legado
_LEGACY_META_KEYS = frozenset({"tmdb_id", "type", "total_scraping_time"})
_SELECTION_KEYS = ("server", "provider", "currentServer")

USER_SELECTED = "user-selected"


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_valid_outcome(outcome: Any) -> bool:
    """Un resultado cuenta como éxito si trae algo reproducible."""
    if not isinstance(outcome, Mapping):
        return False
    if outcome.get("file") == USER_SELECTED:
        return True
    if _non_empty_str(outcome.get("file")):
        return True
    nested = outcome.get("sources")
    if isinstance(nested, list) and any(
        isinstance(item, Mapping) and _non_empty_str(item.get("file")) for item in nested
    ):
        return True
    return _non_empty_str(outcome.get("url"))


def _bucket_entries(bucket_value: Any, bucket: str) -> Iterator[tuple[str, Any]]:
    if isinstance(bucket_value, Mapping):
        for nested_name, outcome in bucket_value.items():
            if nested_name:
                yield f"{bucket}_{nested_name}", outcome


def iter_event_outcomes(raw: Mapping[str, Any], bucket: str = "rgaio") -> Iterator[tuple[str, Any]]:
    """Produce los pares (servidor, resultado) de cualquiera de los tres formatos.

    1. {"sources": {...}} mapa estructurado, con bucket agrupado opcional
    2. {"server"|"provider"|"currentServer": nombre, "data"?: resultado}
    3. mapa plano legado servidor -> resultado
    """
    structured = raw.get("sources")
    if isinstance(structured, Mapping):
        for name, outcome in structured.items():
            if name and name != bucket:
                yield name, outcome
        yield from _bucket_entries(structured.get(bucket), bucket)
        return

    selected = next((raw[k] for k in _SELECTION_KEYS if raw.get(k)), None)
    if selected is not None:
        data = raw.get("data")
        yield str(selected), data if data else raw
        return

    for name, outcome in raw.items():
        if name and name != bucket and name not in _LEGACY_META_KEYS:
            yield name, outcome
    yield from _bucket_entries(raw.get(bucket), bucket)


def describe_error(outcome: Any, max_length: int = 500) -> str | None:
    """Texto del campo `error` de un resultado fallido, truncado."""
    if not isinstance(outcome, Mapping):
        return None
    error = outcome.get("error")
    if not error:
        return None
    if isinstance(error, str):
        text = error
    else:
        text = orjson.dumps(error, default=str).decode("utf-8")
    return text[:max_length]
