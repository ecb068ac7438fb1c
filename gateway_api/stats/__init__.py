"""Estadísticas de salud de las fuentes."""

from .aggregator import StatsAggregator
from .broadcast import HEARTBEAT_FRAME, QueueSink, SubscriberHub, format_event
from .matching import NameIndex, normalize_server_name
from .models import GlobalStats, HistoricalWindow, ServerStat, ServerStatus

__all__ = [
    "GlobalStats",
    "HEARTBEAT_FRAME",
    "HistoricalWindow",
    "NameIndex",
    "QueueSink",
    "ServerStat",
    "ServerStatus",
    "StatsAggregator",
    "SubscriberHub",
    "format_event",
    "normalize_server_name",
]
