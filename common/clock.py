"""Reloj compartido en epoch-ms."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Epoch actual en milisegundos (entero)."""
    return int(time.time() * 1000)
