"""Dependencias FastAPI: acceso a los componentes del contenedor."""

from __future__ import annotations

from fastapi import HTTPException, Request

from ..container import GatewayContainer
from ..service import GatewayService
from ..sources.registry import AliasRegistry
from ..stats.aggregator import StatsAggregator


def get_container(request: Request) -> GatewayContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return container


def get_gateway(request: Request) -> GatewayService:
    return get_container(request).gateway


def get_registry(request: Request) -> AliasRegistry:
    return get_container(request).registry


def get_stats(request: Request) -> StatsAggregator:
    return get_container(request).stats
