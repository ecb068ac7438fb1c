"""Modelos de estado de estadísticas.

Los `from_dict` son la única frontera de saneamiento: lo que viene del store
se convierte aquí a tipos válidos y el resto del código asume validez.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from .precision import safe_float, safe_int


DAY_MS = 24 * 60 * 60 * 1000

WINDOW_SPANS: dict[str, Optional[int]] = {
    "daily": DAY_MS,
    "weekly": 7 * DAY_MS,
    "monthly": 30 * DAY_MS,
    "yearly": 365 * DAY_MS,
    "alltime": None,
}

MAX_ERROR_LENGTH = 500


class ServerStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    DOWN = "down"

    @classmethod
    def from_success_rate(cls, rate: float) -> "ServerStatus":
        if rate >= 80:
            return cls.OPERATIONAL
        if rate >= 50:
            return cls.DEGRADED
        return cls.DOWN

    @classmethod
    def parse(cls, value: Any) -> "ServerStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.OPERATIONAL


@dataclass
class ErrorStats:
    total: int = 0
    rate: float = 0.0
    last_error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ErrorStats":
        if not isinstance(data, Mapping):
            return cls()
        last_error = data.get("lastError")
        return cls(
            total=safe_int(data.get("total")),
            rate=safe_float(data.get("rate")),
            last_error=str(last_error)[:MAX_ERROR_LENGTH] if last_error else None,
        )

    def to_dict(self) -> dict:
        out: dict = {"total": self.total, "rate": self.rate}
        if self.last_error:
            out["lastError"] = self.last_error
        return out


@dataclass
class ServerStat:
    """Contadores vivos por fuente."""

    original_name: str
    alias_name: str
    working: int = 0
    total: int = 0
    success_rate: float = 0.0
    uptime: float = 100.0
    status: ServerStatus = ServerStatus.OPERATIONAL
    last_checked: int = 0
    errors: ErrorStats = field(default_factory=ErrorStats)
    # False para entradas efímeras (fuente no registrada)
    registered: bool = True
    grouped: bool = False

    @classmethod
    def fresh(
        cls,
        original_name: str,
        alias_name: str,
        now_ms: int,
        registered: bool = True,
        grouped: bool = False,
    ) -> "ServerStat":
        return cls(
            original_name=original_name,
            alias_name=alias_name,
            last_checked=now_ms,
            registered=registered,
            grouped=grouped,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], now_ms: int) -> "ServerStat":
        name = str(data.get("name") or data.get("originalName") or "unknown")
        return cls(
            original_name=name,
            alias_name=str(data.get("natoName") or name),
            working=safe_int(data.get("working")),
            total=safe_int(data.get("total")),
            success_rate=safe_float(data.get("successRate")),
            uptime=safe_float(data.get("uptime"), 100.0),
            status=ServerStatus.parse(data.get("status")),
            last_checked=safe_int(data.get("lastChecked"), now_ms),
            errors=ErrorStats.from_dict(data.get("errors")),
        )

    def merge_counters(self, other: "ServerStat") -> None:
        """Toma los contadores de un snapshot persistido, conservando nombre y alias."""
        self.working = other.working
        self.total = other.total
        self.success_rate = other.success_rate
        self.uptime = other.uptime
        self.status = other.status
        self.last_checked = other.last_checked
        self.errors = other.errors

    def to_dict(self) -> dict:
        return {
            "name": self.original_name,
            "natoName": self.alias_name,
            "successRate": self.success_rate,
            "working": self.working,
            "total": self.total,
            "lastChecked": self.last_checked,
            "uptime": self.uptime,
            "status": self.status.value,
            "errors": self.errors.to_dict(),
        }


@dataclass
class HistoricalWindow:
    requests: int = 0
    successful_requests: int = 0
    sources_found: int = 0
    avg_response_time: float = 0.0
    start_time: int = 0
    end_time: int = 0

    @classmethod
    def fresh(cls, now_ms: int, span_ms: Optional[int]) -> "HistoricalWindow":
        """Ventana vacía que empieza ahora. La ventana sin límite termina en `now`.

        La ventana rotada cubre [now, now + span] y no [now - span, now]: con
        `end_time = now` caducaría en la siguiente petición y nunca acumularía.
        """
        end = now_ms if span_ms is None else now_ms + span_ms
        return cls(start_time=now_ms, end_time=end)

    @classmethod
    def from_dict(cls, data: Any, now_ms: int, span_ms: Optional[int]) -> "HistoricalWindow":
        if not isinstance(data, Mapping):
            return cls.fresh(now_ms, span_ms)
        return cls(
            requests=safe_int(data.get("requests")),
            successful_requests=safe_int(data.get("successful_requests")),
            sources_found=safe_int(data.get("sources_found")),
            avg_response_time=safe_float(data.get("avg_response_time")),
            start_time=safe_int(data.get("start_time"), now_ms),
            end_time=safe_int(data.get("end_time"), now_ms),
        )

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.end_time

    def to_dict(self) -> dict:
        return {
            "requests": self.requests,
            "successful_requests": self.successful_requests,
            "sources_found": self.sources_found,
            "avg_response_time": self.avg_response_time,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass
class GlobalStats:
    total_requests: int = 0
    successful_requests: int = 0
    total_sources_found: int = 0
    avg_response_time: float = 0.0
    last_updated: int = 0
    uptime_start: int = 0
    windows: dict[str, HistoricalWindow] = field(default_factory=dict)

    @classmethod
    def fresh(cls, now_ms: int) -> "GlobalStats":
        return cls(
            last_updated=now_ms,
            uptime_start=now_ms,
            windows={name: HistoricalWindow.fresh(now_ms, span) for name, span in WINDOW_SPANS.items()},
        )

    @classmethod
    def from_dict(cls, data: Any, now_ms: int) -> "GlobalStats":
        if not isinstance(data, Mapping):
            return cls.fresh(now_ms)
        return cls(
            total_requests=safe_int(data.get("total_requests")),
            successful_requests=safe_int(data.get("successful_requests")),
            total_sources_found=safe_int(data.get("total_sources_found")),
            avg_response_time=safe_float(data.get("avg_response_time")),
            last_updated=safe_int(data.get("last_updated"), now_ms),
            uptime_start=safe_int(data.get("uptime_start"), now_ms),
            windows={
                name: HistoricalWindow.from_dict(data.get(name), now_ms, span)
                for name, span in WINDOW_SPANS.items()
            },
        )

    def to_dict(self) -> dict:
        out: dict = {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "total_sources_found": self.total_sources_found,
            "avg_response_time": self.avg_response_time,
            "last_updated": self.last_updated,
            "uptime_start": self.uptime_start,
        }
        for name in WINDOW_SPANS:
            out[name] = self.windows[name].to_dict()
        return out
