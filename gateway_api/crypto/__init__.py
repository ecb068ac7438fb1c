from .envelope import EncryptedEnvelope, EnvelopeCipher, strip_padding
from .token import TokenCodec, TokenFields

__all__ = [
    "EncryptedEnvelope",
    "EnvelopeCipher",
    "TokenCodec",
    "TokenFields",
    "strip_padding",
]
