"""
NoteCipher exceptions.

Every failure in the encryption core surfaces as one of these types.
Callers must never receive an empty string or ``None`` in place of a
plaintext that could not be recovered.
"""


class NoteCipherError(Exception):
    """Base class for all encryption-core errors."""


class KeyDerivationError(NoteCipherError):
    """Password or account identifier are unusable for key derivation."""


class KeyUnavailableError(NoteCipherError):
    """A cipher operation was requested while no key is loaded."""


class UnsupportedFormatError(NoteCipherError):
    """Envelope carries a version tag (or legacy marker) we cannot read."""


class DecryptionError(NoteCipherError):
    """Wrong key, corrupted or tampered envelope."""


class PayloadTooLargeError(NoteCipherError):
    """Plaintext or attachment exceeds the configured size cap."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Payload of {size} bytes exceeds the limit of {limit} bytes"
        )


class UnsupportedMediaError(NoteCipherError):
    """Attachment mime type is neither an image nor a video."""

    def __init__(self, mime_type: str, message: str = None):
        self.mime_type = mime_type
        super().__init__(
            message or f"Unsupported attachment media type: {mime_type!r}"
        )
