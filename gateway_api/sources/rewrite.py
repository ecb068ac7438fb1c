"""Reescritura de la respuesta upstream: nombres canónicos -> alias públicos."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from .models import Source


logger = logging.getLogger(__name__)


def grouped_lookup_key(original_name: str, bucket: str) -> str:
    """Clave dentro del bucket agrupado: el nombre canónico sin el prefijo '<bucket>_'."""
    prefix = f"{bucket}_"
    if original_name.startswith(prefix):
        return original_name[len(prefix):]
    return original_name


def rewrite_response(response: Any, sources: Iterable[Source], bucket: str = "rgaio") -> Any:
    """Devuelve una copia de la respuesta con `sources` indexado por alias.

    - Toda fuente habilitada aparece bajo su alias, con {} si el upstream no la devolvió.
    - Las agrupadas viven bajo `bucket`; si el upstream trae alguna, el bucket
      contiene solo las encontradas.
    - Nombres que no están en el registro se descartan en silencio.
    """
    if not isinstance(response, dict):
        return response

    enabled = sorted((s for s in sources if s.enabled), key=lambda s: s.alias_name)
    regular = [s for s in enabled if not s.is_grouped]
    grouped = [s for s in enabled if s.is_grouped]

    def skeleton() -> dict:
        out: dict = {s.alias_name: {} for s in regular}
        if grouped:
            out[bucket] = {s.alias_name: {} for s in grouped}
        return out

    def transform(value: Any) -> Any:
        if isinstance(value, list):
            return [transform(item) for item in value]
        if not isinstance(value, dict):
            return value

        out = skeleton()
        for source in regular:
            entry = value.get(source.original_name)
            if isinstance(entry, dict):
                out[source.alias_name] = entry

        nested = value.get(bucket)
        if isinstance(nested, dict):
            found = {}
            for source in grouped:
                entry = nested.get(grouped_lookup_key(source.original_name, bucket))
                if isinstance(entry, dict):
                    found[source.alias_name] = entry
            if found:
                out[bucket] = found

        return out

    rewritten = dict(response)
    if rewritten.get("sources"):
        rewritten["sources"] = transform(rewritten["sources"])
        logger.debug(
            "[Registry] Respuesta reescrita aliases=%s",
            sorted(k for k in rewritten["sources"]) if isinstance(rewritten["sources"], dict) else "list",
        )
    return rewritten
