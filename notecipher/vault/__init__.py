"""Vault — client-side encryption core.

Security Note (Threat Model):
    Keys and plaintext exist in process memory while a session is
    active, and the key is kept in session-scoped storage so an app
    reload does not re-prompt for the password. A memory dump of the
    client could expose both. The backend only ever receives envelopes.
"""

from .config import CipherConfig
from .crypto import (
    DerivedKey,
    derive_key,
    derive_key_async,
    seal,
    open_envelope,
    envelope_version,
    seal_value,
    open_value,
    CURRENT_FORMAT,
    CURRENT_KDF_VERSION,
)
from .keyring import KeyManager, KeyState
from .attachments import (
    EncryptedAttachment,
    encrypt_attachment,
    decrypt_attachment,
    encrypt_data_url,
    to_data_url,
    media_kind,
)
from .notes import EncryptedNote, NoteContent, seal_note, open_note
from .key_rotation import (
    RotationStats,
    rotate_envelopes,
    rotate_note,
    rotate_attachment,
)

__all__ = [
    "CipherConfig",
    "DerivedKey",
    "derive_key",
    "derive_key_async",
    "seal",
    "open_envelope",
    "envelope_version",
    "seal_value",
    "open_value",
    "CURRENT_FORMAT",
    "CURRENT_KDF_VERSION",
    "KeyManager",
    "KeyState",
    "EncryptedAttachment",
    "encrypt_attachment",
    "decrypt_attachment",
    "encrypt_data_url",
    "to_data_url",
    "media_kind",
    "EncryptedNote",
    "NoteContent",
    "seal_note",
    "open_note",
    "RotationStats",
    "rotate_envelopes",
    "rotate_note",
    "rotate_attachment",
]
