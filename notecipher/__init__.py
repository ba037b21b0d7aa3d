"""NoteCipher.

Client-side encryption core for zero-knowledge note storage.
"""
from .version import __version__
from .data import SessionData
from .exceptions import (
    NoteCipherError,
    KeyDerivationError,
    KeyUnavailableError,
    UnsupportedFormatError,
    DecryptionError,
    PayloadTooLargeError,
    UnsupportedMediaError,
)
from .vault import *  # noqa: F401,F403
from .vault import __all__ as _vault_all

__all__ = [
    "__version__",
    "SessionData",
    "NoteCipherError",
    "KeyDerivationError",
    "KeyUnavailableError",
    "UnsupportedFormatError",
    "DecryptionError",
    "PayloadTooLargeError",
    "UnsupportedMediaError",
    *_vault_all,
]
