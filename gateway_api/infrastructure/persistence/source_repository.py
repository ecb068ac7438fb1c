"""Repositorio de fuentes - acceso a BD.

Cada operación abre su propia transacción corta; no hay transacciones
entre documentos. Llamadas bloqueantes: el registry las ejecuta en
asyncio.to_thread.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.clock import now_ms

from ...errors import AliasUniquenessError, PersistenceError
from ...sources.models import Source
from .tables import sources


_ORDER_COLUMNS = {
    "id": "id",
    "original_name": "original_name",
    "alias_name": "alias_name",
}

_SELECT = """
    SELECT id, original_name, alias_name, is_grouped, enabled, created_at, updated_at
    FROM sources
"""


def _uniqueness_field(error: IntegrityError) -> Optional[str]:
    message = str(error.orig).lower() if error.orig is not None else str(error).lower()
    if "alias_name" in message:
        return "alias_name"
    if "original_name" in message:
        return "original_name"
    return None


class SourceRepository:
    """CRUD de fuentes sobre SQLAlchemy."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def list_all(self, order_by: str = "alias_name") -> list[Source]:
        column = _ORDER_COLUMNS.get(order_by)
        if column is None:
            raise ValueError(f"Unsupported order_by: {order_by}")
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(text(f"{_SELECT} ORDER BY {column} ASC")).mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list sources: {e}") from e
        return [Source.from_row(r) for r in rows]

    def get(self, source_id: int) -> Optional[Source]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(f"{_SELECT} WHERE id = :id"),
                    {"id": source_id},
                ).mappings().fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load source {source_id}: {e}") from e
        return Source.from_row(row) if row else None

    def create(
        self,
        original_name: str,
        alias_name: str,
        is_grouped: bool = False,
        enabled: bool = True,
    ) -> Source:
        now = now_ms()
        values = {
            "original_name": original_name,
            "alias_name": alias_name,
            "is_grouped": is_grouped,
            "enabled": enabled,
            "created_at": now,
            "updated_at": now,
        }
        try:
            with self._engine.begin() as conn:
                result = conn.execute(sources.insert().values(**values))
                new_id = int(result.inserted_primary_key[0])
        except IntegrityError as e:
            field = _uniqueness_field(e)
            raise AliasUniquenessError(
                f"Duplicate {field or 'value'} for source '{original_name}'",
                field=field,
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create source: {e}") from e
        return Source(id=new_id, **values)

    def update(self, source_id: int, **changes) -> Optional[Source]:
        """Actualiza las columnas dadas. Devuelve None si la fuente no existe."""
        allowed = {"original_name", "alias_name", "is_grouped", "enabled"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unsupported source fields: {sorted(unknown)}")

        params = {k: v for k, v in changes.items() if v is not None}
        params["updated_at"] = now_ms()
        assignments = ", ".join(f"{k} = :{k}" for k in params)
        params["id"] = source_id

        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    text(f"UPDATE sources SET {assignments} WHERE id = :id"),
                    params,
                )
                if result.rowcount == 0:
                    return None
        except IntegrityError as e:
            field = _uniqueness_field(e)
            raise AliasUniquenessError(
                f"Duplicate {field or 'value'} for source {source_id}",
                field=field,
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update source {source_id}: {e}") from e
        return self.get(source_id)

    def update_alias(self, source_id: int, alias_name: str) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text("UPDATE sources SET alias_name = :alias, updated_at = :now WHERE id = :id"),
                    {"alias": alias_name, "now": now_ms(), "id": source_id},
                )
        except IntegrityError as e:
            raise AliasUniquenessError(
                f"Alias '{alias_name}' already assigned",
                field="alias_name",
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to rename source {source_id}: {e}") from e

    def delete(self, source_id: int) -> bool:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    text("DELETE FROM sources WHERE id = :id"),
                    {"id": source_id},
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete source {source_id}: {e}") from e
        return result.rowcount > 0
