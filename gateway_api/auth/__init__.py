"""Módulo de autenticación del gateway.

- API Key (endpoints de administración)
- Sobre cifrado + token (petición principal)
"""

from .api_key import require_admin_key
from .request_auth import RequestAuthenticator

__all__ = [
    "RequestAuthenticator",
    "require_admin_key",
]
