"""Apertura y autenticación de peticiones cifradas.

Orden: descifrado AEAD -> frescura del sobre (_timestamp) -> contrato del
payload -> frescura del token -> token.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from pydantic import ValidationError

from common.clock import now_ms

from ..crypto.envelope import EnvelopeCipher, strip_padding
from ..crypto.token import TokenCodec, TokenFields
from ..errors import AuthenticationError, ExpiredRequestError, InvalidRequestError
from ..schemas import RequestPayload


logger = logging.getLogger(__name__)


class RequestAuthenticator:
    def __init__(
        self,
        cipher: EnvelopeCipher,
        tokens: TokenCodec,
        secret: str,
        max_age_ms: int = 300_000,
        clock: Callable[[], int] = now_ms,
    ):
        self._cipher = cipher
        self._tokens = tokens
        self._secret = secret
        self._max_age_ms = max_age_ms
        self._clock = clock

    async def open(self, ciphertext: str, iv: str, auth_tag: str) -> RequestPayload:
        """Devuelve el payload autenticado.

        Raises:
            DecryptionError: sobre inválido (subclase de AuthenticationError)
            ExpiredRequestError: sobre o token fuera de la ventana de frescura
            InvalidRequestError: el payload no cumple el contrato
            AuthenticationError: token que no coincide
        """
        # PBKDF2 por llamada: se saca del event loop
        data = await asyncio.to_thread(self._cipher.decrypt, ciphertext, iv, auth_tag)

        self._check_envelope_age(data)

        try:
            payload = RequestPayload.model_validate(strip_padding(data))
        except ValidationError as e:
            logger.info("[Auth] Payload inválido errors=%d", e.error_count())
            raise InvalidRequestError("Invalid request payload") from e

        # Los tipos originales del cliente forman parte del token
        fields = TokenFields.from_payload(data)
        if not self._tokens.is_fresh(fields):
            raise ExpiredRequestError(self._tokens.age_ms(fields), self._tokens.max_age_ms)

        if not self._tokens.verify(fields, payload.token, self._secret):
            raise AuthenticationError("Invalid request")

        return payload

    def _check_envelope_age(self, data: dict) -> None:
        stamp = data.get("_timestamp")
        if isinstance(stamp, bool) or not isinstance(stamp, (int, float)):
            logger.info("[Auth] Sobre sin _timestamp válido")
            raise ExpiredRequestError(None, self._max_age_ms)

        age = self._clock() - stamp
        if age > self._max_age_ms:
            logger.info("[Auth] Sobre expirado age_ms=%d max_age_ms=%d", age, self._max_age_ms)
            raise ExpiredRequestError(int(age), self._max_age_ms)
