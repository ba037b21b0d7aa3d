"""Note helpers: seal a title/body pair before create/update, open it after reads."""
from pydantic import BaseModel, ConfigDict

from .crypto import DerivedKey, seal, open_envelope


class NoteContent(BaseModel):
    """Plaintext note as shown to the user."""

    title: str
    content: str


class EncryptedNote(BaseModel):
    """Note fields as stored by the backend: two independent envelopes."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str


def seal_note(title: str, content: str, key: DerivedKey) -> EncryptedNote:
    """Seal title and content separately, each with its own nonce."""
    return EncryptedNote(
        title=seal(title, key),
        content=seal(content, key),
    )


def open_note(note: EncryptedNote, key: DerivedKey) -> NoteContent:
    """Open both fields of a stored note.

    Raises:
        DecryptionError: If either field cannot be decrypted; the note
            must not be rendered with a missing field.
        UnsupportedFormatError: If either field has an unknown version.
    """
    return NoteContent(
        title=open_envelope(note.title, key),
        content=open_envelope(note.content, key),
    )
