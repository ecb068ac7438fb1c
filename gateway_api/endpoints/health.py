"""Health, readiness y métricas."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import text

from ..container import GatewayContainer
from ..metrics import render_latest
from .dependencies import get_container

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: always returns ok if process is running."""
    return {"status": "ok"}


@router.get("/ready")
def ready(container: GatewayContainer = Depends(get_container)):
    """Readiness probe: servicios inicializados y BD accesible."""
    if not container.is_ready:
        raise HTTPException(status_code=503, detail="not ready")
    try:
        with container.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        # No exponer detalles del error al cliente
        logging.getLogger(__name__).exception("[DB] Readiness check failed")
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready"}


@router.get("/metrics")
def metrics():
    body, content_type = render_latest()
    return Response(content=body, media_type=content_type)
