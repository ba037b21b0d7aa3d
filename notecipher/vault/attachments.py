"""
Attachment Codec — binary images/videos to and from envelopes.

The payload is base64 encoded and the resulting text is sealed like any
other plaintext, so attachments share the note envelope format.

Security Note:
    File names and mime types travel in clear next to the envelope;
    only the file contents are encrypted.
"""
import re
import base64
import logging
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..conf import MAX_ATTACHMENT_SIZE
from ..exceptions import (
    DecryptionError,
    PayloadTooLargeError,
    UnsupportedMediaError,
)
from .crypto import DerivedKey, seal, open_envelope

logger = logging.getLogger("notecipher.vault")

MediaKind = Literal["image", "video"]

_MEDIA_PREFIXES: dict[str, MediaKind] = {
    "image/": "image",
    "video/": "video",
}

_DATA_URL = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w.+-]+=[\w.+-]+)*;base64,(?P<payload>.*)$",
    re.DOTALL,
)


class EncryptedAttachment(BaseModel):
    """An encrypted attachment as exchanged with the CRUD layer."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    envelope: str
    file_name: str
    mime_type: str
    kind: MediaKind
    size: int = Field(ge=0)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "EncryptedAttachment":
        return cls.model_validate(payload)


def media_kind(mime_type: str) -> MediaKind:
    """Map a mime type to its attachment kind.

    Raises:
        UnsupportedMediaError: For anything but ``image/*`` and ``video/*``.
    """
    normalized = (mime_type or "").strip().lower()
    for prefix, kind in _MEDIA_PREFIXES.items():
        if normalized.startswith(prefix) and len(normalized) > len(prefix):
            return kind
    raise UnsupportedMediaError(mime_type)


def encrypt_attachment(
    data: bytes,
    mime_type: str,
    file_name: str,
    key: DerivedKey,
    max_size: Optional[int] = None,
) -> EncryptedAttachment:
    """Encrypt an image or video payload.

    Args:
        data: Raw file bytes.
        mime_type: Declared mime type, e.g. ``image/png``.
        file_name: Original file name, preserved as metadata.
        key: Key to seal under.
        max_size: Byte cap on the raw payload (default: 10 MiB).

    Returns:
        EncryptedAttachment carrying the envelope and metadata.

    Raises:
        PayloadTooLargeError: If data exceeds max_size.
        UnsupportedMediaError: If mime_type is not an image or video.
    """
    limit = MAX_ATTACHMENT_SIZE if max_size is None else max_size
    if len(data) > limit:
        raise PayloadTooLargeError(len(data), limit)
    kind = media_kind(mime_type)
    encoded = base64.b64encode(data).decode("ascii")
    # the encoded payload is already bounded by limit
    envelope = seal(encoded, key, max_size=len(encoded))
    logger.debug(
        "Encrypted %s attachment (%d bytes, key fp=%s)",
        kind, len(data), key.fingerprint,
    )
    return EncryptedAttachment(
        envelope=envelope,
        file_name=file_name,
        mime_type=mime_type,
        kind=kind,
        size=len(data),
    )


def decrypt_attachment(attachment: EncryptedAttachment, key: DerivedKey) -> bytes:
    """Recover the raw bytes of an attachment.

    Raises:
        UnsupportedFormatError: If the envelope version is unknown.
        DecryptionError: On wrong key, tampering, or a payload that is
            not the expected base64 text.
    """
    encoded = open_envelope(attachment.envelope, key)
    try:
        return base64.b64decode(encoded, validate=True)
    except ValueError as err:
        raise DecryptionError(
            f"Attachment {attachment.file_name!r} payload is not valid base64"
        ) from err


def encrypt_data_url(
    data_url: str,
    file_name: str,
    key: DerivedKey,
    max_size: Optional[int] = None,
) -> EncryptedAttachment:
    """Encrypt a ``data:<mime>;base64,<payload>`` URL as read by browsers.

    Raises:
        UnsupportedMediaError: If the string is not a base64 data URL.
    """
    match = _DATA_URL.match(data_url or "")
    if match is None:
        raise UnsupportedMediaError(
            "", "Attachment is not a base64 data URL"
        )
    mime_type = match.group("mime")
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except ValueError as err:
        raise UnsupportedMediaError(
            mime_type, "Data URL payload is not valid base64"
        ) from err
    return encrypt_attachment(data, mime_type, file_name, key, max_size=max_size)


def to_data_url(attachment: EncryptedAttachment, key: DerivedKey) -> str:
    """Decrypt an attachment into a data URL suitable for rendering."""
    data = decrypt_attachment(attachment, key)
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{attachment.mime_type};base64,{encoded}"
