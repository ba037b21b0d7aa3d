"""
Vault Crypto Core — Key derivation, envelope encryption and value serialization.

Key derivation:
    salt = SHA-256(account_identifier)
    key  = PBKDF2-HMAC-SHA256(password, salt, KDF_ITERATIONS[kdf_version], 32)

Envelope, format version 1 (standard padded base64 of):
    [version 1B = 0x01][nonce 12B][AES-256-GCM ciphertext][GCM tag 16B]
The version byte is authenticated as GCM associated data.

Security Note:
    Never log passwords, key bytes, plaintext or ciphertext values.
    Only log key fingerprints, format versions and sizes.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import hmac
import base64
import asyncio
import hashlib
import logging
from typing import Any, Optional, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..conf import MAX_PLAINTEXT_SIZE
from ..exceptions import (
    DecryptionError,
    KeyDerivationError,
    KeyUnavailableError,
    PayloadTooLargeError,
    UnsupportedFormatError,
)

logger = logging.getLogger("notecipher.vault")

KEY_LENGTH = 32  # AES-256
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
VERSION_SIZE = 1

FORMAT_V1 = 0x01
CURRENT_FORMAT = FORMAT_V1
SUPPORTED_FORMATS = frozenset({FORMAT_V1})

# Iteration counts are part of the cross-client contract: changing one
# means adding a new KDF version, never editing an existing entry.
KDF_ITERATIONS: dict[int, int] = {
    1: 600_000,
}
CURRENT_KDF_VERSION = 1

# Historical clients tagged ciphertext with this text prefix.
_LEGACY_MARKER = "ENC:"
_LEGACY_MARKER_BYTES = _LEGACY_MARKER.encode("ascii")

_BYTES_WRAPPER_KEY = "__notecipher_bytes_b64__"

Plaintext = Union[str, bytes]


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------

class DerivedKey:
    """256-bit symmetric key material.

    Immutable: holders replace a key, they never modify one. ``repr``
    and logging only ever expose :attr:`fingerprint`.
    """

    __slots__ = ("_material", "_kdf_version")

    def __init__(self, material: bytes, kdf_version: int = CURRENT_KDF_VERSION):
        if not isinstance(material, (bytes, bytearray)):
            raise TypeError("Key material must be bytes")
        if len(material) != KEY_LENGTH:
            raise ValueError(
                f"Key material must be exactly {KEY_LENGTH} bytes, "
                f"got {len(material)}"
            )
        self._material = bytes(material)
        self._kdf_version = kdf_version

    @property
    def kdf_version(self) -> int:
        return self._kdf_version

    @property
    def fingerprint(self) -> str:
        """Short, non-reversible identifier safe to log."""
        return hashlib.sha256(self._material).hexdigest()[:8]

    def __repr__(self) -> str:
        return f"<DerivedKey kdf=v{self._kdf_version} fp={self.fingerprint}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DerivedKey):
            return NotImplemented
        return hmac.compare_digest(self._material, other._material)

    __hash__ = None  # type: ignore[assignment]

    def to_session(self) -> str:
        """Encode for session-scoped storage only."""
        return base64.b64encode(self._material).decode("ascii")

    @classmethod
    def from_session(cls, value: str) -> "DerivedKey":
        """Rebuild a key from its session-storage encoding.

        Raises:
            ValueError: If value is not base64 of a 32-byte key.
        """
        material = base64.b64decode(value, validate=True)
        return cls(material)


def _require_key(key: Optional[DerivedKey]) -> DerivedKey:
    if key is None:
        raise KeyUnavailableError("Encryption key not available")
    if not isinstance(key, DerivedKey):
        raise TypeError(
            f"Expected a DerivedKey, got {type(key).__name__}"
        )
    return key


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def account_salt(account_identifier: str) -> bytes:
    """Per-account PBKDF2 salt: SHA-256 over the UTF-8 identifier."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(account_identifier.encode("utf-8"))
    return digest.finalize()


def derive_key(
    password: str,
    account_identifier: str,
    kdf_version: int = CURRENT_KDF_VERSION,
) -> DerivedKey:
    """Derive the account's 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Deterministic: the same credentials always produce the same key, so
    notes stored by any client stay readable after a fresh login.

    Args:
        password: User password; never stored.
        account_identifier: Stable per-account identifier (username).
        kdf_version: KDF parameter set to use.

    Returns:
        The derived key.

    Raises:
        KeyDerivationError: If inputs are empty or kdf_version is unknown.
    """
    if not isinstance(password, str) or not password:
        raise KeyDerivationError("Password must be a non-empty string")
    if not isinstance(account_identifier, str) or not account_identifier:
        raise KeyDerivationError(
            "Account identifier must be a non-empty string"
        )
    try:
        iterations = KDF_ITERATIONS[kdf_version]
    except KeyError:
        raise KeyDerivationError(
            f"Unknown KDF version {kdf_version!r}"
        ) from None
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=account_salt(account_identifier),
        iterations=iterations,
    )
    key = DerivedKey(kdf.derive(password.encode("utf-8")), kdf_version)
    logger.debug(
        "Derived key fp=%s (kdf v%d, %d iterations)",
        key.fingerprint, kdf_version, iterations,
    )
    return key


async def derive_key_async(
    password: str,
    account_identifier: str,
    kdf_version: int = CURRENT_KDF_VERSION,
) -> DerivedKey:
    """Run :func:`derive_key` in the default executor.

    PBKDF2 takes a few hundred milliseconds; this keeps an event loop
    responsive while it runs.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, derive_key, password, account_identifier, kdf_version,
    )


# ---------------------------------------------------------------------------
# Envelope encryption
# ---------------------------------------------------------------------------

def seal(
    plaintext: Plaintext,
    key: DerivedKey,
    max_size: int = MAX_PLAINTEXT_SIZE,
) -> str:
    """Encrypt plaintext into a versioned base64 envelope.

    Format: base64([version 1B][nonce 12B][ciphertext + GCM tag 16B])

    Args:
        plaintext: UTF-8 text or raw bytes. Empty input is valid.
        key: Key to encrypt under.
        max_size: Largest accepted plaintext, in bytes.

    Returns:
        Envelope string.

    Raises:
        KeyUnavailableError: If key is None.
        PayloadTooLargeError: If the encoded plaintext exceeds max_size.
    """
    key = _require_key(key)
    if isinstance(plaintext, str):
        data = plaintext.encode("utf-8")
    elif isinstance(plaintext, (bytes, bytearray, memoryview)):
        data = bytes(plaintext)
    else:
        raise TypeError(
            f"Plaintext must be str or bytes, got {type(plaintext).__name__}"
        )
    if len(data) > max_size:
        raise PayloadTooLargeError(len(data), max_size)
    header = bytes([CURRENT_FORMAT])
    nonce = os.urandom(NONCE_SIZE)
    ct = AESGCM(key._material).encrypt(nonce, data, header)
    return base64.b64encode(header + nonce + ct).decode("ascii")


def _decode(envelope: Union[str, bytes]) -> bytes:
    if not isinstance(envelope, (str, bytes, bytearray)):
        raise TypeError(
            f"Envelope must be str or bytes, got {type(envelope).__name__}"
        )
    if envelope[:len(_LEGACY_MARKER)] in (_LEGACY_MARKER, _LEGACY_MARKER_BYTES):
        raise UnsupportedFormatError(
            "Envelope uses the legacy 'ENC:' text format, which is "
            "not supported"
        )
    try:
        raw = base64.b64decode(envelope, validate=True)
    except ValueError as err:
        raise DecryptionError(f"Envelope is not valid base64: {err}") from err
    if not raw:
        raise DecryptionError("Envelope is empty")
    return raw


def envelope_version(envelope: Union[str, bytes]) -> int:
    """Return the format version tag of an envelope without decrypting it."""
    return _decode(envelope)[0]


def open_envelope(
    envelope: Union[str, bytes],
    key: DerivedKey,
    as_text: bool = True,
) -> Plaintext:
    """Decrypt an envelope produced by :func:`seal`.

    Args:
        envelope: Base64 envelope string.
        key: Key the envelope was sealed under.
        as_text: Decode the plaintext as UTF-8 (default) or return bytes.

    Returns:
        Decrypted plaintext.

    Raises:
        KeyUnavailableError: If key is None.
        UnsupportedFormatError: If the version tag is unknown.
        DecryptionError: On wrong key, corruption or tampering.
    """
    key = _require_key(key)
    raw = _decode(envelope)
    version = raw[0]
    if version not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported envelope format version {version} "
            f"(supported: {sorted(SUPPORTED_FORMATS)})"
        )
    _min = VERSION_SIZE + NONCE_SIZE + TAG_SIZE
    if len(raw) < _min:
        raise DecryptionError(
            f"Envelope too short: {len(raw)} bytes (minimum {_min})"
        )
    header = raw[:VERSION_SIZE]
    nonce = raw[VERSION_SIZE:VERSION_SIZE + NONCE_SIZE]
    ct = raw[VERSION_SIZE + NONCE_SIZE:]
    try:
        data = AESGCM(key._material).decrypt(nonce, ct, header)
    except InvalidTag:
        logger.debug(
            "Authentication failed for envelope v%d under key fp=%s",
            version, key.fingerprint,
        )
        raise DecryptionError(
            "Decryption failed: wrong key or corrupted envelope"
        ) from None
    if not as_text:
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionError(
            "Decrypted payload is not valid UTF-8 text"
        ) from err


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a Python value to bytes for encryption.

    Supports: str, int, float, dict, list, bytes, bool, None.
    bytes values are wrapped in a marker object for safe JSON round-trip.
    """
    if isinstance(value, bytes):
        wrapped = {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
        return orjson.dumps(wrapped)
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes produced by :func:`serialize_value`."""
    parsed = orjson.loads(data)
    if isinstance(parsed, dict) and _BYTES_WRAPPER_KEY in parsed and len(parsed) == 1:
        return base64.b64decode(parsed[_BYTES_WRAPPER_KEY])
    return parsed


def seal_value(value: Any, key: DerivedKey, max_size: int = MAX_PLAINTEXT_SIZE) -> str:
    """Serialize a structured value with orjson and seal it."""
    return seal(serialize_value(value), key, max_size=max_size)


def open_value(envelope: Union[str, bytes], key: DerivedKey) -> Any:
    """Open an envelope produced by :func:`seal_value`.

    Raises:
        DecryptionError: If decryption fails or the payload is not valid JSON.
    """
    data = open_envelope(envelope, key, as_text=False)
    try:
        return deserialize_value(data)
    except orjson.JSONDecodeError as err:
        raise DecryptionError(
            "Decrypted payload is not a serialized value"
        ) from err
