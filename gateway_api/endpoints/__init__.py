"""Módulo de endpoints HTTP.

Contiene todos los endpoints del gateway organizados por función.
"""

from .admin_sources import router as admin_sources_router
from .gateway import router as gateway_router
from .health import router as health_router
from .stats import router as stats_router

__all__ = [
    "admin_sources_router",
    "gateway_router",
    "health_router",
    "stats_router",
]
