"""Traducción de errores de dominio a respuestas HTTP."""

from __future__ import annotations

from ..errors import (
    AliasPoolExhaustedError,
    AliasUniquenessError,
    AuthenticationError,
    DomainBlockedError,
    ExpiredRequestError,
    InvalidAliasError,
    InvalidRequestError,
    ServiceNotReadyError,
    SourceNotFoundError,
    UpstreamError,
)


# Orden relevante: las subclases van antes que sus bases
_MAPPING: tuple[tuple[type[Exception], int, str | None, str], ...] = (
    (ExpiredRequestError, 403, "Request expired", "expired"),
    (AuthenticationError, 401, "Unauthorized", "unauthorized"),
    (InvalidRequestError, 400, "Invalid request", "bad_request"),
    (DomainBlockedError, 502, "Upstream access forbidden (possible domain block)", "domain_blocked"),
    (UpstreamError, 502, "Upstream request failed", "upstream_error"),
    (SourceNotFoundError, 404, None, "not_found"),
    (AliasUniquenessError, 409, None, "conflict"),
    (InvalidAliasError, 400, None, "bad_request"),
    (AliasPoolExhaustedError, 400, None, "bad_request"),
    (ServiceNotReadyError, 503, "Service not ready", "not_ready"),
)


def classify(exc: Exception) -> tuple[int, str, str]:
    """(status_code, detail, outcome) para una excepción.

    detail None en la tabla significa que el mensaje de la excepción es seguro
    de exponer (solo errores administrativos).
    """
    for error_type, status_code, detail, outcome in _MAPPING:
        if isinstance(exc, error_type):
            return status_code, detail if detail is not None else str(exc), outcome
    return 500, "Internal server error", "error"

