"""Funciones canónicas de precisión numérica para estadísticas.

Política:
- Conteos: int.
- Porcentajes y medias: float redondeado a 2 decimales con HALF_UP sobre
  el valor binario exacto (mismo resultado que Number(x.toFixed(2))).
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal


def safe_float(value, default: float = 0.0) -> float:
    """Convierte un valor a float con validación de NaN/Infinity.

    Args:
        value: Valor a convertir (puede ser None, str, Decimal, etc.)
        default: Valor por defecto si es inválido

    Returns:
        Float válido o default si el valor es None, NaN o Infinity
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        f = float(value)
        if not math.isfinite(f):
            return default
        return f
    except (TypeError, ValueError):
        return default


def safe_int(value, default: int = 0) -> int:
    f = safe_float(value, float(default))
    return int(f)


def round2(value: float) -> float:
    """Redondeo a 2 decimales, mitad hacia arriba (en magnitud)."""
    if not math.isfinite(value):
        return 0.0
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percentage(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return round2(part / whole * 100)


def running_mean(previous: float, sample: float, n: int) -> float:
    """Media acumulada: (prev*(n-1) + sample) / n, con n ya incrementado."""
    if n <= 1:
        return round2(sample)
    return round2((previous * (n - 1) + sample) / n)
