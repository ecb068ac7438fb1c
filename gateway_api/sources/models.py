"""Modelo de fuente y helpers de alias temporales."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional


PLACEHOLDER_PREFIX = "TEMP_"

# TEMP_<alias anterior>_<epoch-ms>[_<índice>]
_PLACEHOLDER_RE = re.compile(r"^TEMP_(?P<old>.+)_(?P<ts>\d{10,})(?:_(?P<idx>\d{1,9}))?$")


@dataclass(frozen=True)
class Source:
    """Fuente registrada: nombre canónico interno y alias público."""

    id: int
    original_name: str
    alias_name: str
    is_grouped: bool = False
    enabled: bool = True
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Source":
        return cls(
            id=int(row["id"]),
            original_name=str(row["original_name"]),
            alias_name=str(row["alias_name"]),
            is_grouped=bool(row["is_grouped"]),
            enabled=bool(row["enabled"]),
            created_at=int(row["created_at"] or 0),
            updated_at=int(row["updated_at"] or 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "originalName": self.original_name,
            "natoName": self.alias_name,
            "isGrouped": self.is_grouped,
            "enabled": self.enabled,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def make_placeholder(alias: str, epoch_ms: int, index: Optional[int] = None) -> str:
    if index is None:
        return f"{PLACEHOLDER_PREFIX}{alias}_{epoch_ms}"
    return f"{PLACEHOLDER_PREFIX}{alias}_{epoch_ms}_{index}"


def is_placeholder(alias: str) -> bool:
    return _PLACEHOLDER_RE.match(alias or "") is not None


def placeholder_origin(alias: str) -> Optional[str]:
    """Alias original detrás de un placeholder, resolviendo anidamientos.

    Un crash repetido puede dejar TEMP_TEMP_Alpha_..._... ; se devuelve Alpha.
    """
    match = _PLACEHOLDER_RE.match(alias or "")
    if match is None:
        return None
    old = match.group("old")
    while True:
        inner = _PLACEHOLDER_RE.match(old)
        if inner is None:
            return old
        old = inner.group("old")
