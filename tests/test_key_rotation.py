"""
Tests for envelope rotation after a password change.
"""
import os
import pytest

from notecipher.exceptions import DecryptionError
from notecipher.vault.attachments import decrypt_attachment, encrypt_attachment
from notecipher.vault.crypto import open_envelope, seal
from notecipher.vault.key_rotation import (
    RotationStats,
    rotate_attachment,
    rotate_envelopes,
    rotate_note,
)
from notecipher.vault.notes import open_note, seal_note


class TestRotateEnvelopes:

    def test_rotates_all(self, key, other_key):
        records = [(i, seal(f"note {i}", key)) for i in range(5)]
        rotated, stats = rotate_envelopes(records, key, other_key, batch_size=2)
        assert stats.total == 5
        assert stats.rotated == 5
        assert stats.errors == 0
        for i in range(5):
            assert open_envelope(rotated[i], other_key) == f"note {i}"
            with pytest.raises(DecryptionError):
                open_envelope(rotated[i], key)

    def test_preserves_binary_plaintext(self, key, other_key):
        rotated, _ = rotate_envelopes([("a", seal(b"\xff\x00", key))], key, other_key)
        assert open_envelope(rotated["a"], other_key, as_text=False) == b"\xff\x00"

    def test_skips_already_rotated(self, key, other_key):
        records = [("old", seal("x", key)), ("new", seal("y", other_key))]
        rotated, stats = rotate_envelopes(records, key, other_key)
        assert stats.rotated == 1
        assert stats.skipped == 1
        assert set(rotated) == {"old"}

    def test_reports_failures(self, key, other_key):
        stranger = type(key)(os.urandom(32))
        records = [
            (1, seal("ok", key)),
            (2, seal("foreign", stranger)),
            (3, "ENC:legacy"),
            (4, "garbage!"),
        ]
        rotated, stats = rotate_envelopes(records, key, other_key)
        assert stats.total == 4
        assert stats.rotated == 1
        assert stats.errors == 3
        assert stats.failed == [2, 3, 4]
        assert set(rotated) == {1}

    def test_non_string_envelope_is_reported(self, key, other_key):
        records = [(1, seal("ok", key)), (2, None), (3, seal("ok3", key))]
        rotated, stats = rotate_envelopes(records, key, other_key)
        assert stats.total == 3
        assert stats.rotated == 2
        assert stats.errors == 1
        assert stats.failed == [2]
        assert open_envelope(rotated[1], other_key) == "ok"
        assert open_envelope(rotated[3], other_key) == "ok3"

    def test_empty_input(self, key, other_key):
        rotated, stats = rotate_envelopes([], key, other_key)
        assert rotated == {}
        assert stats == RotationStats()

    def test_accepts_generator(self, key, other_key):
        records = ((i, seal("x", key)) for i in range(3))
        _, stats = rotate_envelopes(records, key, other_key, batch_size=1)
        assert stats.rotated == 3

    def test_identical_keys(self, key):
        with pytest.raises(ValueError):
            rotate_envelopes([], key, key)

    def test_invalid_batch_size(self, key, other_key):
        with pytest.raises(ValueError):
            rotate_envelopes([], key, other_key, batch_size=0)


class TestRotateObjects:

    def test_rotate_note(self, key, other_key):
        note = rotate_note(seal_note("t", "c", key), key, other_key)
        opened = open_note(note, other_key)
        assert (opened.title, opened.content) == ("t", "c")

    def test_rotate_note_wrong_old_key(self, key, other_key):
        with pytest.raises(DecryptionError):
            rotate_note(seal_note("t", "c", other_key), key, other_key)

    def test_rotate_attachment(self, key, other_key):
        data = os.urandom(512)
        attachment = encrypt_attachment(data, "image/jpeg", "a.jpg", key)
        rotated = rotate_attachment(attachment, key, other_key)
        assert rotated.file_name == "a.jpg"
        assert rotated.mime_type == "image/jpeg"
        assert rotated.size == 512
        assert rotated.envelope != attachment.envelope
        assert decrypt_attachment(rotated, other_key) == data
