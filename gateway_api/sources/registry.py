"""Registro de fuentes y asignación de alias públicos.

El pool de alias es una secuencia fija de etiquetas únicas. Los renombrados
masivos (borrado con renumeración, reordenamiento) se hacen en dos fases de
actualizaciones individuales: primero un placeholder único por fuente, luego
el alias final. No hay transacción entre documentos; si el proceso cae entre
fases quedan placeholders visibles, que `initialize()` resuelve al arrancar.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Protocol, Sequence

from common.clock import now_ms

from ..errors import (
    AliasPoolExhaustedError,
    AliasUniquenessError,
    InvalidAliasError,
    InvalidRequestError,
    PartialRenameError,
    SourceNotFoundError,
)
from ..lifecycle import LifecycleMixin, ServiceState
from .models import Source, is_placeholder, make_placeholder, placeholder_origin
from .rewrite import rewrite_response

if TYPE_CHECKING:
    from ..infrastructure.persistence.source_repository import SourceRepository


logger = logging.getLogger(__name__)


class SourceObserver(Protocol):
    async def on_source_created(self, source: Source) -> None: ...

    async def on_source_deleted(self, original_name: str) -> None: ...

    async def on_source_renamed(self, old_name: str, new_name: str) -> None: ...

    async def refresh_sources(self, sources: Sequence[Source]) -> None: ...


class AliasRegistry(LifecycleMixin):
    def __init__(
        self,
        repository: SourceRepository,
        alias_pool: Sequence[str],
        group_bucket: str = "rgaio",
        clock: Callable[[], int] = now_ms,
    ):
        self._repository = repository
        self._pool: tuple[str, ...] = tuple(alias_pool)
        self._bucket = group_bucket
        self._clock = clock
        self._observers: list[SourceObserver] = []
        self._sources: dict[int, Source] = {}
        self._lock = asyncio.Lock()
        self._state = ServiceState.UNINITIALIZED

    # =========================================================================
    # Ciclo de vida
    # =========================================================================

    def add_observer(self, observer: SourceObserver) -> None:
        self._observers.append(observer)

    @property
    def alias_pool(self) -> tuple[str, ...]:
        return self._pool

    @property
    def group_bucket(self) -> str:
        return self._bucket

    async def initialize(self) -> None:
        if self._state == ServiceState.READY:
            return
        self._state = ServiceState.INITIALIZING
        try:
            async with self._lock:
                await self._recover_placeholders()
                await self._reload()
        except Exception:
            self._state = ServiceState.FAILED
            logger.exception("[Registry] Inicialización fallida")
            raise
        self._state = ServiceState.READY
        logger.info(
            "[Registry] Ready sources=%d mapping=%s",
            len(self._sources),
            ", ".join(f"{s.original_name}->{s.alias_name}" for s in self.list_sources()),
        )

    async def _reload(self) -> None:
        rows = await asyncio.to_thread(self._repository.list_all, "id")
        self._sources = {s.id: s for s in rows}

    async def _recover_placeholders(self) -> None:
        """Revierte placeholders de un renombrado interrumpido.

        Orden determinista por nombre canónico. Cada fuente vuelve a su alias
        previo si pertenece al pool y está libre; si no, a la primera etiqueta
        libre del pool.
        """
        rows = await asyncio.to_thread(self._repository.list_all, "original_name")
        stuck = sorted((s for s in rows if is_placeholder(s.alias_name)), key=lambda s: s.original_name)
        if not stuck:
            return

        used = {s.alias_name for s in rows if not is_placeholder(s.alias_name)}
        logger.warning(
            "[Registry] Placeholders pendientes detectados count=%d aliases=%s",
            len(stuck),
            [s.alias_name for s in stuck],
        )

        unresolved: list[str] = []
        for source in stuck:
            origin = placeholder_origin(source.alias_name)
            if origin in self._pool and origin not in used:
                target = origin
            else:
                target = next((label for label in self._pool if label not in used), None)

            if target is None:
                unresolved.append(source.alias_name)
                continue

            await asyncio.to_thread(self._repository.update_alias, source.id, target)
            used.add(target)
            logger.info(
                "[Registry] Placeholder revertido source=%s placeholder=%s alias=%s",
                source.original_name,
                source.alias_name,
                target,
            )

        if unresolved:
            raise PartialRenameError(unresolved)

    # =========================================================================
    # Lecturas
    # =========================================================================

    def list_sources(self) -> list[Source]:
        self._require_ready()
        return sorted(self._sources.values(), key=lambda s: s.alias_name)

    def get(self, source_id: int) -> Source:
        self._require_ready()
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def assigned_aliases(self) -> set[str]:
        return {s.alias_name for s in self._sources.values()}

    def next_free_alias(self) -> Optional[str]:
        used = self.assigned_aliases()
        return next((label for label in self._pool if label not in used), None)

    def rewrite(self, response: Any) -> Any:
        self._require_ready()
        return rewrite_response(response, self._sources.values(), self._bucket)

    # =========================================================================
    # Operaciones administrativas
    # =========================================================================

    async def create(
        self,
        original_name: str,
        is_grouped: bool = False,
        alias_name: Optional[str] = None,
        enabled: bool = True,
    ) -> Source:
        """Registra una fuente. Sin alias explícito se usa la primera etiqueta libre."""
        self._require_ready()
        name = (original_name or "").strip()
        if not name:
            raise InvalidRequestError("originalName is required")

        async with self._lock:
            if alias_name is None:
                alias_name = self.next_free_alias()
                if alias_name is None:
                    raise AliasPoolExhaustedError(len(self._pool))
            else:
                alias_name = alias_name.strip()
                if alias_name not in self._pool:
                    raise InvalidAliasError(alias_name)

            source = await asyncio.to_thread(
                self._repository.create, name, alias_name, is_grouped, enabled
            )
            await self._reload()

        logger.info("[Registry] Source created name=%s alias=%s grouped=%s", name, alias_name, is_grouped)
        for observer in self._observers:
            await observer.on_source_created(source)
        return source

    async def update(
        self,
        source_id: int,
        original_name: Optional[str] = None,
        alias_name: Optional[str] = None,
        is_grouped: Optional[bool] = None,
        enabled: Optional[bool] = None,
    ) -> Source:
        self._require_ready()
        async with self._lock:
            current = self.get(source_id)

            if original_name is not None:
                original_name = original_name.strip()
                if not original_name:
                    raise InvalidRequestError("originalName cannot be empty")
            if alias_name is not None:
                alias_name = alias_name.strip()
                if alias_name not in self._pool:
                    raise InvalidAliasError(alias_name)

            updated = await asyncio.to_thread(
                self._repository.update,
                source_id,
                original_name=original_name,
                alias_name=alias_name,
                is_grouped=is_grouped,
                enabled=enabled,
            )
            if updated is None:
                raise SourceNotFoundError(source_id)
            await self._reload()
            snapshot = list(self._sources.values())

        logger.info("[Registry] Source updated id=%s name=%s alias=%s", source_id, updated.original_name, updated.alias_name)
        for observer in self._observers:
            if updated.original_name != current.original_name:
                await observer.on_source_renamed(current.original_name, updated.original_name)
            await observer.refresh_sources(snapshot)
        return updated

    async def delete(self, source_id: int) -> Source:
        """Elimina la fuente y renumera las restantes a las primeras K etiquetas."""
        self._require_ready()
        async with self._lock:
            source = self.get(source_id)
            deleted = await asyncio.to_thread(self._repository.delete, source_id)
            if not deleted:
                raise SourceNotFoundError(source_id)

            remaining = sorted(
                await asyncio.to_thread(self._repository.list_all, "id"),
                key=lambda s: s.original_name,
            )
            if len(remaining) > len(self._pool):
                raise AliasPoolExhaustedError(len(self._pool))

            plan = [(s, self._pool[i]) for i, s in enumerate(remaining)]
            await self._two_phase_rename(plan, indexed=False)
            snapshot = list(self._sources.values())

        logger.info("[Registry] Source deleted name=%s alias=%s remaining=%d", source.original_name, source.alias_name, len(snapshot))
        for observer in self._observers:
            await observer.on_source_deleted(source.original_name)
            await observer.refresh_sources(snapshot)
        return source

    async def reorder(self, updates: Iterable[tuple[int, str]]) -> list[Source]:
        """Asigna alias explícitos a un conjunto de fuentes.

        Se valida todo antes de escribir: ids existentes, etiquetas del pool,
        sin alias repetidos y sin chocar con fuentes fuera del conjunto.
        """
        self._require_ready()
        updates = [(int(source_id), str(alias).strip()) for source_id, alias in updates]
        if not updates:
            return self.list_sources()

        async with self._lock:
            ids = [source_id for source_id, _ in updates]
            if len(set(ids)) != len(ids):
                raise AliasUniquenessError("Duplicate source id in reorder request", field="id")

            targets = [alias for _, alias in updates]
            if len(set(targets)) != len(targets):
                raise AliasUniquenessError("Duplicate alias in reorder request", field="alias_name")

            for alias in targets:
                if alias not in self._pool:
                    raise InvalidAliasError(alias)

            plan = [(self.get(source_id), alias) for source_id, alias in updates]

            outside = {s.alias_name for s in self._sources.values() if s.id not in set(ids)}
            clash = sorted(set(targets) & outside)
            if clash:
                raise AliasUniquenessError(
                    f"Alias already assigned outside the reorder set: {', '.join(clash)}",
                    field="alias_name",
                )

            await self._two_phase_rename(plan, indexed=True)
            snapshot = list(self._sources.values())

        logger.info("[Registry] Reorder applied updates=%s", [f"{s.original_name}->{a}" for s, a in plan])
        for observer in self._observers:
            await observer.refresh_sources(snapshot)
        return self.list_sources()

    async def _two_phase_rename(self, plan: list[tuple[Source, str]], indexed: bool) -> None:
        """Renombra en dos fases; solo toca las fuentes cuyo alias cambia.

        Fase 1: placeholder TEMP_<alias>_<epoch-ms>[_<i>] por fuente.
        Fase 2: alias final. Cada escritura es independiente.
        """
        changes = [(s, alias) for s, alias in plan if s.alias_name != alias]
        if not changes:
            await self._reload()
            return

        stamp = self._clock()
        try:
            for i, (source, _) in enumerate(changes):
                placeholder = make_placeholder(source.alias_name, stamp, i if indexed else None)
                await asyncio.to_thread(self._repository.update_alias, source.id, placeholder)

            for source, alias in changes:
                await asyncio.to_thread(self._repository.update_alias, source.id, alias)
        except Exception:
            logger.exception("[Registry] Renombrado en dos fases interrumpido, revirtiendo placeholders")
            try:
                await self._recover_placeholders()
            except Exception:
                logger.exception("[Registry] Recuperación de placeholders fallida")
            await self._reload()
            raise

        await self._reload()
