"""Historial de snapshots de estadísticas."""

from __future__ import annotations

import logging
from typing import Optional

import orjson
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from common.clock import now_ms

from ...errors import PersistenceError


logger = logging.getLogger(__name__)


class StatsRepository:
    def __init__(self, engine: Engine, history_limit: int = 50):
        self._engine = engine
        self._history_limit = max(1, history_limit)

    def save(self, snapshot: dict) -> None:
        """Inserta un snapshot y recorta el historial a los N más recientes."""
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text("INSERT INTO stats_snapshots (payload, created_at) VALUES (:payload, :created_at)"),
                    {
                        "payload": orjson.dumps(snapshot).decode("utf-8"),
                        "created_at": now_ms(),
                    },
                )
                conn.execute(
                    text(
                        """
                        DELETE FROM stats_snapshots
                        WHERE id NOT IN (
                            SELECT id FROM (
                                SELECT id FROM stats_snapshots ORDER BY id DESC LIMIT :limit
                            ) AS keep
                        )
                        """
                    ),
                    {"limit": self._history_limit},
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save stats snapshot: {e}") from e

    def latest(self) -> Optional[dict]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT payload FROM stats_snapshots ORDER BY id DESC LIMIT 1")
                ).fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load stats snapshot: {e}") from e

        if not row:
            return None
        try:
            data = orjson.loads(row[0])
        except orjson.JSONDecodeError:
            logger.warning("[Stats] Snapshot persistido ilegible, se ignora")
            return None
        return data if isinstance(data, dict) else None
