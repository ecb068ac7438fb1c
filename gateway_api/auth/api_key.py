"""Autenticación por API Key para endpoints de administración.

SECURITY: En producción, ADMIN_API_KEY debe estar configurado.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Header, HTTPException, Request


logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_admin_key(
    request: Request,
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Valida la credencial de administración (Bearer o X-API-Key).

    En modo desarrollo, sin ADMIN_API_KEY configurado, permite acceso con warning.
    """
    settings = request.app.state.container.settings
    expected = settings.admin_api_key

    if not expected:
        if settings.is_production:
            logger.error("CRITICAL: ADMIN_API_KEY not configured in production!")
            raise HTTPException(
                status_code=500,
                detail="Server misconfiguration: API key not set",
            )
        logger.warning(
            "[SECURITY WARNING] ADMIN_API_KEY not set - "
            "allowing unauthenticated admin access (DEV ONLY)"
        )
        return

    provided = _bearer_token(authorization) or x_api_key
    if not provided:
        raise HTTPException(status_code=401, detail="API key required")

    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("[Auth] Invalid admin API key attempt path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid API key")
