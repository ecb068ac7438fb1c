"""Taxonomía de errores del gateway.

Cada capa lanza su excepción de dominio; la traducción a códigos HTTP
ocurre solo en los endpoints.
"""

from __future__ import annotations

from typing import Optional

from common.config import ConfigurationError


class GatewayError(Exception):
    """Base de todos los errores del gateway."""


class AliasPoolExhaustedError(ConfigurationError):
    """Hay más fuentes que etiquetas en el pool de alias."""

    def __init__(self, pool_size: int):
        self.pool_size = pool_size
        super().__init__(f"Alias pool exhausted ({pool_size} labels)")


class AuthenticationError(GatewayError):
    """Token inválido o tag AEAD que no verifica. No se filtra detalle al cliente."""


class DecryptionError(AuthenticationError):
    """El sobre no se pudo abrir: tag, hex o JSON inválidos."""


class ExpiredRequestError(GatewayError):
    """La petición está fuera de la ventana de frescura."""

    def __init__(self, age_ms: Optional[int] = None, max_age_ms: Optional[int] = None):
        self.age_ms = age_ms
        self.max_age_ms = max_age_ms
        super().__init__("Request expired")


class InvalidRequestError(GatewayError):
    """El payload descifrado no cumple el contrato."""


class UpstreamError(GatewayError):
    """Respuesta no-2xx o fallo de red hacia la API de agregación."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DomainBlockedError(UpstreamError):
    """403 del upstream: posible bloqueo de dominio o credenciales inválidas."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            "Access forbidden (403) to the upstream API. "
            "Domain may be blocked or credentials invalid.",
            status_code=403,
        )


class PersistenceError(GatewayError):
    """Fallo de escritura/lectura en el store de documentos."""


class AliasUniquenessError(GatewayError):
    """Violación de unicidad de nombre canónico o alias."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InvalidAliasError(GatewayError):
    """El alias pedido no pertenece al pool configurado."""

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Alias '{alias}' is not part of the alias pool")


class SourceNotFoundError(GatewayError):
    def __init__(self, source_id: int):
        self.source_id = source_id
        super().__init__(f"Source {source_id} not found")


class ServiceNotReadyError(GatewayError):
    """Llamada a un servicio que no completó su inicialización."""

    def __init__(self, service: str, state: str):
        self.service = service
        self.state = state
        super().__init__(f"{service} is not ready (state={state})")


class PartialRenameError(GatewayError):
    """Quedaron alias temporales de un renombrado en dos fases sin resolver."""

    def __init__(self, aliases: list[str]):
        self.aliases = aliases
        super().__init__(f"Unresolved placeholder aliases: {', '.join(aliases)}")


__all__ = [
    "AliasPoolExhaustedError",
    "AliasUniquenessError",
    "AuthenticationError",
    "ConfigurationError",
    "DecryptionError",
    "DomainBlockedError",
    "ExpiredRequestError",
    "GatewayError",
    "InvalidAliasError",
    "InvalidRequestError",
    "PartialRenameError",
    "PersistenceError",
    "ServiceNotReadyError",
    "SourceNotFoundError",
    "UpstreamError",
]
