from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from common.config import ConfigurationError, Settings, get_settings
from common.logging_config import configure_logging

from .container import GatewayContainer
from .endpoints import admin_sources_router, gateway_router, health_router, stats_router
from .endpoints.error_mapping import classify
from .errors import GatewayError


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Construye la app. Los componentes se inicializan en el lifespan, antes de aceptar tráfico."""
    configure_logging()
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = GatewayContainer(settings, engine=engine, upstream_transport=upstream_transport)
        app.state.container = container
        await container.startup()
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(title="Media Source Gateway", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    @app.exception_handler(ConfigurationError)
    async def domain_error_handler(request: Request, exc: Exception):
        status_code, detail, outcome = classify(exc)
        if status_code >= 500 and outcome == "error":
            logger.error("[Gateway] Unhandled domain error path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": detail})

    app.include_router(health_router)
    app.include_router(stats_router)
    app.include_router(admin_sources_router)
    app.include_router(gateway_router)
    return app


def main() -> None:
    import uvicorn

    uvicorn.run(
        "gateway_api.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )


if __name__ == "__main__":
    main()
