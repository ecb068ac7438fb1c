"""Difusión de snapshots a suscriptores en vivo (text/event-stream)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Optional, Protocol

import orjson

from ..metrics import STATS_SUBSCRIBERS, STATS_SUBSCRIBERS_DROPPED


logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ":heartbeat\n\n"


def format_event(payload: dict) -> str:
    return f"data: {orjson.dumps(payload).decode('utf-8')}\n\n"


class Sink(Protocol):
    def write(self, frame: str) -> None: ...


class SinkClosedError(Exception):
    """Escritura sobre un sink ya cerrado."""


class SubscriberHub:
    """Conjunto de sinks. Un sink que falla al escribir se descarta, sin reintento."""

    def __init__(self) -> None:
        self._sinks: list[Sink] = []

    def __len__(self) -> int:
        return len(self._sinks)

    def __contains__(self, sink: Sink) -> bool:
        return sink in self._sinks

    def add(self, sink: Sink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)
            STATS_SUBSCRIBERS.set(len(self._sinks))

    def remove(self, sink: Sink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)
            STATS_SUBSCRIBERS.set(len(self._sinks))

    def broadcast(self, payload: dict) -> int:
        """Escribe el frame en todos los sinks. Devuelve cuántos se descartaron."""
        if not self._sinks:
            return 0

        frame = format_event(payload)
        dropped = 0
        for sink in list(self._sinks):
            try:
                sink.write(frame)
            except Exception as e:
                dropped += 1
                self.remove(sink)
                STATS_SUBSCRIBERS_DROPPED.inc()
                logger.warning("[Stats] Suscriptor descartado error=%s", type(e).__name__)
                close = getattr(sink, "close", None)
                if callable(close):
                    close()
        return dropped


class QueueSink:
    """Sink respaldado por una cola asyncio, consumido por la respuesta SSE."""

    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: str) -> None:
        if self._closed:
            raise SinkClosedError("sink closed")
        # QueueFull se propaga: un consumidor lento se descarta
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)

    async def frames(self, heartbeat_seconds: float) -> AsyncIterator[str]:
        """Frames pendientes; emite heartbeat si no hay datos en `heartbeat_seconds`."""
        while not self._closed or not self._queue.empty():
            try:
                frame = await asyncio.wait_for(self._queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                if self._closed:
                    return
                yield HEARTBEAT_FRAME
                continue
            if frame is None:
                return
            yield frame
