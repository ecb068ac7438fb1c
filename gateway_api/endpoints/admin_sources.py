"""Administración de fuentes y alias (requiere API key)."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends

from ..auth.api_key import require_admin_key
from ..metrics import ADMIN_OPERATIONS
from ..schemas import ReorderIn, SourceIn, SourceOut, SourceUpdateIn
from ..sources.registry import AliasRegistry
from ..stats.aggregator import StatsAggregator
from .dependencies import get_registry, get_stats

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])
logger = logging.getLogger(__name__)


@router.get("/stats")
def admin_stats(stats: StatsAggregator = Depends(get_stats)):
    return stats.snapshot()


@router.get("/sources", response_model=List[SourceOut])
def list_sources(registry: AliasRegistry = Depends(get_registry)):
    return [s.to_dict() for s in registry.list_sources()]


@router.post("/sources", response_model=SourceOut, status_code=201)
async def create_source(body: SourceIn, registry: AliasRegistry = Depends(get_registry)):
    source = await registry.create(
        body.originalName,
        is_grouped=body.isGrouped,
        alias_name=body.natoName,
        enabled=body.enabled,
    )
    ADMIN_OPERATIONS.labels(operation="create").inc()
    return source.to_dict()


@router.put("/sources/{source_id}", response_model=SourceOut)
async def update_source(
    source_id: int,
    body: SourceUpdateIn,
    registry: AliasRegistry = Depends(get_registry),
):
    source = await registry.update(
        source_id,
        original_name=body.originalName,
        alias_name=body.natoName,
        is_grouped=body.isGrouped,
        enabled=body.enabled,
    )
    ADMIN_OPERATIONS.labels(operation="update").inc()
    return source.to_dict()


@router.delete("/sources/{source_id}", response_model=SourceOut)
async def delete_source(source_id: int, registry: AliasRegistry = Depends(get_registry)):
    source = await registry.delete(source_id)
    ADMIN_OPERATIONS.labels(operation="delete").inc()
    return source.to_dict()


@router.post("/sources/priorities", response_model=List[SourceOut])
async def update_priorities(body: ReorderIn, registry: AliasRegistry = Depends(get_registry)):
    sources = await registry.reorder((u.id, u.natoName) for u in body.updates)
    ADMIN_OPERATIONS.labels(operation="reorder").inc()
    return [s.to_dict() for s in sources]
