from __future__ import annotations

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def get_engine(settings: Settings | None = None) -> Engine:
    settings = settings or get_settings()
    url = make_url(settings.database_url)

    # Log básico de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Crear engine driver=%s host=%s db=%s",
        url.drivername,
        url.host,
        url.database,
    )

    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # Las llamadas al store se ejecutan en hilos de asyncio.to_thread
        connect_args["check_same_thread"] = False

    engine = create_engine(
        url,
        pool_pre_ping=True,
        future=True,
        connect_args=connect_args,
    )

    # Test de conexión: ayuda a ver en logs si el servicio realmente llega a la BD
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Test de conexión OK")
    except Exception:
        logger.exception("[DB] Test de conexión FALLÓ")

    return engine
