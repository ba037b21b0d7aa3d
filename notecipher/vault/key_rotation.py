"""
Vault Key Rotation — Re-encryption of stored envelopes after a password change.

The encryption key is derived from the password, so changing the
password changes the key. Every stored envelope has to be opened under
the old key and sealed under the new one before the old credentials are
forgotten. Records are processed in batches; records already readable
under the new key are skipped, so an interrupted rotation can be re-run.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Any
from collections.abc import Hashable, Iterable, Iterator

from pydantic import BaseModel, Field

from ..exceptions import DecryptionError, NoteCipherError
from .attachments import EncryptedAttachment
from .crypto import DerivedKey, seal, open_envelope
from .notes import EncryptedNote

logger = logging.getLogger("notecipher.vault")


class RotationStats(BaseModel):
    """Outcome of a :func:`rotate_envelopes` run."""

    total: int = 0
    rotated: int = 0
    skipped: int = 0
    errors: int = 0
    failed: list[Any] = Field(default_factory=list)


def _check_keys(old_key: DerivedKey, new_key: DerivedKey) -> None:
    if old_key == new_key:
        raise ValueError("Old and new keys are identical; nothing to rotate")


def _batches(
    records: Iterable[tuple[Hashable, str]], batch_size: int
) -> Iterator[list[tuple[Hashable, str]]]:
    batch: list[tuple[Hashable, str]] = []
    for record in records:
        batch.append(record)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def _reseal(envelope: str, old_key: DerivedKey, new_key: DerivedKey) -> str:
    return seal(open_envelope(envelope, old_key, as_text=False), new_key)


def _already_rotated(envelope: str, new_key: DerivedKey) -> bool:
    try:
        open_envelope(envelope, new_key, as_text=False)
    except DecryptionError:
        return False
    return True


def rotate_envelopes(
    records: Iterable[tuple[Hashable, str]],
    old_key: DerivedKey,
    new_key: DerivedKey,
    batch_size: int = 100,
) -> tuple[dict[Hashable, str], RotationStats]:
    """Re-seal envelopes from old_key to new_key.

    Args:
        records: Iterable of ``(record_id, envelope)`` pairs.
        old_key: Key the envelopes are currently sealed under.
        new_key: Key to re-seal them under.
        batch_size: Number of records processed per batch.

    Returns:
        Tuple of (``{record_id: new_envelope}`` for rotated records, stats).
        Records that could not be opened under either key are listed in
        ``stats.failed`` and left out of the mapping; the caller keeps
        their original envelopes.

    Raises:
        ValueError: If the keys are identical or batch_size < 1.
    """
    _check_keys(old_key, new_key)
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    rotated: dict[Hashable, str] = {}
    stats = RotationStats()

    logger.info(
        "Starting envelope rotation from key fp=%s to fp=%s (batch_size=%d)",
        old_key.fingerprint, new_key.fingerprint, batch_size,
    )

    for batch_num, batch in enumerate(_batches(records, batch_size), start=1):
        logger.info("Processing batch %d (%d records)", batch_num, len(batch))
        for record_id, envelope in batch:
            stats.total += 1
            if not isinstance(envelope, (str, bytes, bytearray)):
                logger.error(
                    "Error rotating record id=%s: envelope is %s, not str or bytes",
                    record_id, type(envelope).__name__,
                )
                stats.errors += 1
                stats.failed.append(record_id)
                continue
            try:
                rotated[record_id] = _reseal(envelope, old_key, new_key)
                stats.rotated += 1
            except DecryptionError as err:
                if _already_rotated(envelope, new_key):
                    stats.skipped += 1
                    continue
                logger.error(
                    "Error rotating record id=%s: %s", record_id, err,
                )
                stats.errors += 1
                stats.failed.append(record_id)
            except NoteCipherError as err:
                logger.error(
                    "Error rotating record id=%s: %s", record_id, err,
                )
                stats.errors += 1
                stats.failed.append(record_id)

    logger.info(
        "Envelope rotation complete: total=%d rotated=%d skipped=%d errors=%d",
        stats.total, stats.rotated, stats.skipped, stats.errors,
    )
    return rotated, stats


def rotate_note(
    note: EncryptedNote, old_key: DerivedKey, new_key: DerivedKey
) -> EncryptedNote:
    """Re-seal both fields of a note.

    Raises:
        DecryptionError: If a field cannot be opened under old_key.
    """
    _check_keys(old_key, new_key)
    return EncryptedNote(
        title=_reseal(note.title, old_key, new_key),
        content=_reseal(note.content, old_key, new_key),
    )


def rotate_attachment(
    attachment: EncryptedAttachment, old_key: DerivedKey, new_key: DerivedKey
) -> EncryptedAttachment:
    """Re-seal an attachment payload, keeping its metadata.

    Raises:
        DecryptionError: If the payload cannot be opened under old_key.
    """
    _check_keys(old_key, new_key)
    return attachment.model_copy(
        update={"envelope": _reseal(attachment.envelope, old_key, new_key)}
    )
