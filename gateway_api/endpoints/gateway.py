"""Endpoint principal: petición cifrada -> respuesta cifrada."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from ..metrics import GATEWAY_REQUESTS
from ..schemas import EncryptedEnvelopeIn, EncryptedEnvelopeOut
from ..service import GatewayService
from .dependencies import get_gateway
from .error_mapping import classify

router = APIRouter(tags=["gateway"])
logger = logging.getLogger(__name__)


@router.post("/", response_model=EncryptedEnvelopeOut)
async def handle_request(request: Request, gateway: GatewayService = Depends(get_gateway)):
    try:
        envelope = EncryptedEnvelopeIn.model_validate(await request.json())
    except (ValueError, ValidationError):
        GATEWAY_REQUESTS.labels(outcome="bad_request").inc()
        raise HTTPException(status_code=400, detail="Invalid request format")

    try:
        result = await gateway.process(envelope.sourceStats, envelope.sourceKey, envelope.sessionId)
    except Exception as e:
        status_code, detail, outcome = classify(e)
        GATEWAY_REQUESTS.labels(outcome=outcome).inc()
        if outcome == "error":
            logger.exception("[Gateway] Error processing request")
        else:
            logger.info("[Gateway] Request rejected status=%s reason=%s", status_code, type(e).__name__)
        raise HTTPException(status_code=status_code, detail=detail) from e

    GATEWAY_REQUESTS.labels(outcome="ok").inc()
    return EncryptedEnvelopeOut(
        sourceStats=result.ciphertext,
        sourceKey=result.iv,
        sessionId=result.auth_tag,
    )
