"""Persistencia: esquema y repositorios sobre SQLAlchemy."""

from .source_repository import SourceRepository
from .stats_repository import StatsRepository
from .tables import ensure_schema, metadata, sources, stats_snapshots

__all__ = [
    "SourceRepository",
    "StatsRepository",
    "ensure_schema",
    "metadata",
    "sources",
    "stats_snapshots",
]
