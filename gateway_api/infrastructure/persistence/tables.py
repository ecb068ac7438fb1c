"""Esquema del store de documentos.

Tablas portables (SQLite en desarrollo, PostgreSQL en producción). Los
tiempos se guardan como epoch-ms enteros y el snapshot de stats como texto
JSON serializado con orjson.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine


logger = logging.getLogger(__name__)

metadata = MetaData()

sources = Table(
    "sources",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("original_name", String(255), nullable=False, unique=True),
    Column("alias_name", String(255), nullable=False, unique=True),
    Column("is_grouped", Boolean, nullable=False, default=False),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

stats_snapshots = Table(
    "stats_snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("payload", Text, nullable=False),
    Column("created_at", BigInteger, nullable=False, index=True),
)


def ensure_schema(engine: Engine) -> None:
    """Crea las tablas si no existen. Se puede llamar varias veces."""
    logger.info("[DB] Ensuring schema exists")
    try:
        metadata.create_all(engine, checkfirst=True)
    except Exception as e:
        logger.exception("[DB] Schema creation failed: %s", e)
        raise
    logger.info("[DB] Schema ready tables=%s", ",".join(sorted(metadata.tables)))
