"""Envelope cipher for request/response bodies.

AES-256-GCM with a key derived per call through PBKDF2-SHA512 from the
shared secrets. The wire envelope carries ciphertext, IV and tag as three
separate hex strings.
"""

from __future__ import annotations

import binascii
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from common.clock import now_ms

from ..errors import DecryptionError


IV_SIZE = 16
TAG_SIZE = 16    # 128 bits
KEY_SIZE = 32    # 256 bits
NONCE_PAD_BYTES = 32
ENTROPY_PAD_BYTES = 16

PADDING_FIELDS = ("_nonce", "_timestamp", "_entropy")


@dataclass(frozen=True)
class EncryptedEnvelope:
    ciphertext: str
    iv: str
    auth_tag: str


class EnvelopeCipher:
    """Encrypts and decrypts logical payloads (JSON objects).

    Args:
        primary_key, secondary_key: concatenated into the base secret.
        salt, pepper: static values mixed into the derivation.
        iterations: PBKDF2 iteration count.
        clock: epoch-ms provider used for the ``_timestamp`` padding field.
    """

    def __init__(
        self,
        primary_key: str,
        secondary_key: str,
        salt: str,
        pepper: str,
        iterations: int = 310_000,
        clock: Callable[[], int] = now_ms,
    ):
        self._base_secret = primary_key + secondary_key
        self._salt = salt
        self._pepper = pepper
        self._iterations = iterations
        self._clock = clock

    def derive_key(self) -> bytes:
        """Derive the AEAD key. Runs on every call, the result is never cached."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_SIZE,
            salt=(self._salt + self._pepper).encode("utf-8"),
            iterations=self._iterations,
        )
        return kdf.derive((self._base_secret + self._salt + self._pepper).encode("utf-8"))

    def _aad(self, iv_hex: str) -> bytes:
        return (self._pepper + iv_hex).encode("utf-8")

    def encrypt(self, payload: Mapping[str, Any]) -> EncryptedEnvelope:
        """Encrypt a payload after adding the randomized padding fields."""
        iv = os.urandom(IV_SIZE)
        iv_hex = iv.hex()

        enhanced = dict(payload)
        enhanced["_nonce"] = os.urandom(NONCE_PAD_BYTES).hex()
        enhanced["_timestamp"] = self._clock()
        enhanced["_entropy"] = os.urandom(ENTROPY_PAD_BYTES).hex()

        sealed = AESGCM(self.derive_key()).encrypt(iv, orjson.dumps(enhanced), self._aad(iv_hex))

        return EncryptedEnvelope(
            ciphertext=sealed[:-TAG_SIZE].hex(),
            iv=iv_hex,
            auth_tag=sealed[-TAG_SIZE:].hex(),
        )

    def decrypt(self, ciphertext: str, iv: str, auth_tag: str) -> dict:
        """Open an envelope and parse its JSON object.

        Padding fields are returned as-is; freshness is the caller's job.

        Raises:
            DecryptionError: malformed hex, wrong tag size, tag mismatch,
                or plaintext that is not a JSON object.
        """
        try:
            iv_bytes = bytes.fromhex(iv)
            ciphertext_bytes = bytes.fromhex(ciphertext)
            tag_bytes = bytes.fromhex(auth_tag)
        except (ValueError, TypeError, binascii.Error) as e:
            raise DecryptionError("Malformed envelope encoding") from e

        if len(tag_bytes) != TAG_SIZE:
            raise DecryptionError("Invalid authentication tag size")
        if len(iv_bytes) < 8:
            raise DecryptionError("Invalid IV size")

        try:
            plaintext = AESGCM(self.derive_key()).decrypt(
                iv_bytes,
                ciphertext_bytes + tag_bytes,
                self._aad(iv),
            )
        except InvalidTag as e:
            raise DecryptionError("Authentication tag mismatch") from e

        try:
            data = orjson.loads(plaintext)
        except orjson.JSONDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid JSON") from e

        if not isinstance(data, dict):
            raise DecryptionError("Decrypted payload is not a JSON object")
        return data


def strip_padding(payload: Mapping[str, Any]) -> dict:
    """Copy of the payload without the padding fields."""
    return {k: v for k, v in payload.items() if k not in PADDING_FIELDS}
