"""Snapshot de estadísticas (JSON o event-stream) y selección de servidor."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from common.clock import now_ms

from ..container import GatewayContainer
from ..schemas import ServerSelectionIn, ServerSelectionOut
from ..stats.aggregator import StatsAggregator
from ..stats.broadcast import QueueSink, format_event
from .dependencies import get_container, get_stats

router = APIRouter(tags=["stats"])
logger = logging.getLogger(__name__)

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("/stats.json")
async def get_stats_snapshot(
    request: Request,
    container: GatewayContainer = Depends(get_container),
):
    stats = container.stats
    if "text/event-stream" not in request.headers.get("accept", ""):
        return JSONResponse(stats.snapshot(), headers=_NO_CACHE_HEADERS)

    initial = format_event(stats.snapshot())
    sink = QueueSink()
    stats.subscribe(sink)
    heartbeat = container.settings.sse_heartbeat_seconds

    async def event_stream():
        try:
            yield initial
            async for frame in sink.frames(heartbeat):
                if await request.is_disconnected():
                    break
                yield frame
        finally:
            stats.unsubscribe(sink)
            sink.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/stats/server-selection", response_model=ServerSelectionOut)
async def report_server_selection(
    body: ServerSelectionIn,
    stats: StatsAggregator = Depends(get_stats),
):
    # Solo un false explícito cuenta como fallo
    successful = body.successful is not False
    await stats.record_server_selection(body.serverName, successful, body.data)
    return ServerSelectionOut(
        success=True,
        message="Server stats updated",
        serverName=body.serverName,
        timestamp=now_ms(),
    )
