"""Agregador de estadísticas por fuente y globales.

Estado en memoria, una sola autoridad por proceso. La mutación de contadores
es síncrona; la persistencia del snapshot y la difusión a suscriptores
ocurren después y son best-effort: un fallo del store se registra y no
interrumpe el flujo.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Sequence

from common.clock import now_ms

from ..errors import InvalidRequestError, PersistenceError
from ..lifecycle import LifecycleMixin, ServiceState
from ..metrics import STATS_EVENTS, STATS_PERSIST_FAILURES
from .broadcast import Sink, SubscriberHub
from .events import USER_SELECTED, describe_error, is_valid_outcome, iter_event_outcomes
from .matching import NameIndex
from .models import WINDOW_SPANS, GlobalStats, HistoricalWindow, ServerStat, ServerStatus
from .precision import percentage, round2, running_mean, safe_float

if TYPE_CHECKING:
    from ..infrastructure.persistence.stats_repository import StatsRepository
    from ..sources.models import Source


logger = logging.getLogger(__name__)

UPTIME_WEIGHT = 0.7


class StatsAggregator(LifecycleMixin):
    def __init__(
        self,
        repository: Optional["StatsRepository"] = None,
        group_bucket: str = "rgaio",
        clock: Callable[[], int] = now_ms,
        hub: Optional[SubscriberHub] = None,
    ):
        self._repository = repository
        self._bucket = group_bucket
        self._group_prefix = f"{group_bucket}_"
        self._clock = clock
        self._hub = hub or SubscriberHub()
        self._stats: list[ServerStat] = []
        self._global = GlobalStats.fresh(clock())
        self._index = NameIndex(group_prefix=self._group_prefix)
        self._state = ServiceState.UNINITIALIZED

    # =========================================================================
    # Inicialización
    # =========================================================================

    async def initialize(self, sources: Sequence["Source"]) -> None:
        """Construye un ServerStat por fuente y fusiona el último snapshot persistido."""
        if self._state == ServiceState.READY:
            return
        self._state = ServiceState.INITIALIZING
        try:
            previous = await self._load_latest()
            now = self._clock()

            persisted: dict[str, ServerStat] = {}
            if previous is not None:
                self._global = GlobalStats.from_dict(previous.get("global_stats"), now)
                for item in previous.get("server_stats") or []:
                    if isinstance(item, Mapping):
                        stat = ServerStat.from_dict(item, now)
                        persisted[stat.original_name.lower()] = stat
            else:
                self._global = GlobalStats.fresh(now)

            stats = []
            for source in sources:
                stat = ServerStat.fresh(source.original_name, source.alias_name, now, grouped=source.is_grouped)
                existing = persisted.get(source.original_name.lower())
                if existing is not None:
                    stat.merge_counters(existing)
                stats.append(stat)

            self._stats = stats
            self._reindex()
        except Exception:
            self._state = ServiceState.FAILED
            logger.exception("[Stats] Inicialización fallida")
            raise

        self._state = ServiceState.READY
        logger.info(
            "[Stats] Ready servers=%d restored=%s total_requests=%d",
            len(self._stats),
            previous is not None,
            self._global.total_requests,
        )

    async def _load_latest(self) -> Optional[dict]:
        if self._repository is None:
            return None
        try:
            return await asyncio.to_thread(self._repository.latest)
        except PersistenceError as e:
            logger.error("[Stats] No se pudo cargar el último snapshot: %s", e)
            return None

    def _reindex(self) -> None:
        self._stats.sort(key=lambda s: s.original_name)
        self._index = NameIndex(self._stats, group_prefix=self._group_prefix)

    # =========================================================================
    # Registro de eventos
    # =========================================================================

    async def record(self, raw_event: Any, response_time_ms: float) -> None:
        self._require_ready()
        if not self.apply(raw_event, response_time_ms):
            return
        STATS_EVENTS.labels(kind="request").inc()
        await self._persist_and_broadcast()

    def apply(self, raw_event: Any, response_time_ms: float) -> bool:
        """Mutación en memoria de un evento. False si el evento no es un objeto."""
        self._require_ready()
        if not isinstance(raw_event, Mapping):
            logger.warning("[Stats] Evento ignorado type=%s", type(raw_event).__name__)
            return False

        now = self._clock()
        self._rotate_windows(now)

        sample = safe_float(response_time_ms)
        g = self._global
        g.total_requests += 1

        seen_names: set[str] = set()
        seen_stats: set[int] = set()
        sources_found = 0
        for server_name, outcome in iter_event_outcomes(raw_event, self._bucket):
            if not server_name or server_name in seen_names:
                continue
            seen_names.add(server_name)

            stat = self._resolve(server_name, now)
            if id(stat) in seen_stats:
                continue
            seen_stats.add(id(stat))

            if self._apply_outcome(stat, outcome, now):
                sources_found += 1

        successful = sources_found > 0
        if successful:
            g.successful_requests += 1
        g.total_sources_found += sources_found
        g.avg_response_time = running_mean(g.avg_response_time, sample, g.total_requests)
        g.last_updated = now

        for name, window in g.windows.items():
            window.requests += 1
            if successful:
                window.successful_requests += 1
            window.sources_found += sources_found
            window.avg_response_time = running_mean(window.avg_response_time, sample, window.requests)
            if WINDOW_SPANS[name] is None:
                window.end_time = now

        logger.debug(
            "[Stats] Evento aplicado servers=%d found=%d response_ms=%.0f",
            len(seen_stats),
            sources_found,
            sample,
        )
        return True

    async def record_server_selection(
        self,
        server_name: str,
        successful: bool = True,
        data: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Servidor que el cliente terminó usando. Cuenta como un evento de tiempo 0."""
        self._require_ready()
        if not server_name or not str(server_name).strip():
            raise InvalidRequestError("serverName is required")

        if data:
            outcome = dict(data)
        elif successful:
            outcome = {"file": USER_SELECTED}
        else:
            outcome = {"error": "User selection failed"}

        self.apply({"server": str(server_name).strip(), "data": outcome}, 0)
        STATS_EVENTS.labels(kind="selection").inc()
        logger.info("[Stats] Selección de servidor server=%s successful=%s", server_name, successful)
        await self._persist_and_broadcast()

    def _rotate_windows(self, now: int) -> None:
        for name, span in WINDOW_SPANS.items():
            if span is None:
                continue
            window = self._global.windows.get(name)
            if window is None or window.is_expired(now):
                self._global.windows[name] = HistoricalWindow.fresh(now, span)
                logger.info("[Stats] Ventana rotada window=%s", name)
        if "alltime" not in self._global.windows:
            self._global.windows["alltime"] = HistoricalWindow.fresh(now, None)

    def _resolve(self, server_name: str, now: int) -> ServerStat:
        stat = self._index.resolve(server_name)
        if stat is not None:
            return stat

        logger.warning("[Stats] Servidor no registrado, entrada efímera server=%s", server_name)
        stat = ServerStat.fresh(
            server_name,
            server_name,
            now,
            registered=False,
            grouped=server_name.lower().startswith(self._group_prefix),
        )
        self._stats.append(stat)
        self._index.add(stat)
        return stat

    @staticmethod
    def _apply_outcome(stat: ServerStat, outcome: Any, now: int) -> bool:
        stat.total += 1
        valid = is_valid_outcome(outcome)
        if valid:
            stat.working += 1
        else:
            stat.errors.total += 1
            error = describe_error(outcome)
            if error:
                stat.errors.last_error = error

        stat.success_rate = percentage(stat.working, stat.total)
        stat.status = ServerStatus.from_success_rate(stat.success_rate)
        stat.errors.rate = percentage(stat.errors.total, stat.total)
        stat.uptime = round2(UPTIME_WEIGHT * stat.success_rate + (1 - UPTIME_WEIGHT) * stat.uptime)
        stat.last_checked = now
        return valid

    # =========================================================================
    # Snapshot y suscriptores
    # =========================================================================

    def snapshot(self) -> dict:
        self._require_ready()
        return {
            "server_stats": [stat.to_dict() for stat in sorted(self._stats, key=lambda s: s.original_name)],
            "global_stats": self._global.to_dict(),
        }

    def subscribe(self, sink: Sink) -> None:
        self._hub.add(sink)
        logger.info("[Stats] Suscriptor agregado subscribers=%d", len(self._hub))

    def unsubscribe(self, sink: Sink) -> None:
        self._hub.remove(sink)
        logger.info("[Stats] Suscriptor removido subscribers=%d", len(self._hub))

    @property
    def subscriber_count(self) -> int:
        return len(self._hub)

    async def _persist_and_broadcast(self) -> None:
        snapshot = self.snapshot()
        if self._repository is not None:
            try:
                await asyncio.to_thread(self._repository.save, snapshot)
            except PersistenceError as e:
                STATS_PERSIST_FAILURES.inc()
                logger.error("[Stats] Error guardando snapshot: %s", e)
        self._hub.broadcast(snapshot)

    # =========================================================================
    # Hooks del registro de fuentes
    # =========================================================================

    def _find_by_name(self, original_name: str) -> Optional[ServerStat]:
        lowered = original_name.lower()
        return next((s for s in self._stats if s.original_name.lower() == lowered), None)

    async def on_source_created(self, source: "Source") -> None:
        self._require_ready()
        stat = self._find_by_name(source.original_name)
        if stat is None:
            self._stats.append(
                ServerStat.fresh(source.original_name, source.alias_name, self._clock(), grouped=source.is_grouped)
            )
        else:
            # Una entrada efímera pasa a estar registrada
            stat.original_name = source.original_name
            stat.alias_name = source.alias_name
            stat.grouped = source.is_grouped
            stat.registered = True
        self._reindex()
        await self._persist_and_broadcast()

    async def on_source_deleted(self, original_name: str) -> None:
        self._require_ready()
        lowered = original_name.lower()
        self._stats = [s for s in self._stats if s.original_name.lower() != lowered]
        self._reindex()
        await self._persist_and_broadcast()

    async def on_source_renamed(self, old_name: str, new_name: str) -> None:
        self._require_ready()
        stat = self._find_by_name(old_name)
        if stat is not None:
            stat.original_name = new_name
        self._reindex()
        await self._persist_and_broadcast()

    async def refresh_sources(self, sources: Sequence["Source"]) -> None:
        """Sincroniza alias y agrupación con el registro; conserva las entradas efímeras."""
        self._require_ready()
        now = self._clock()
        by_name = {s.original_name.lower(): s for s in self._stats}
        registered_names = set()

        for source in sources:
            lowered = source.original_name.lower()
            registered_names.add(lowered)
            stat = by_name.get(lowered)
            if stat is None:
                self._stats.append(
                    ServerStat.fresh(source.original_name, source.alias_name, now, grouped=source.is_grouped)
                )
                continue
            stat.alias_name = source.alias_name
            stat.grouped = source.is_grouped
            stat.registered = True

        self._stats = [
            s for s in self._stats
            if not s.registered or s.original_name.lower() in registered_names
        ]
        self._reindex()
        await self._persist_and_broadcast()
