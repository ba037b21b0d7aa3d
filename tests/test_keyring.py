"""
Tests for KeyManager, the session key lifecycle.

Tests cover:
- NO_KEY / KEY_READY transitions
- Session storage persistence and restore after reload
- Clearing on logout and failed derivation
- Cipher calls bound to the active key
"""
import pytest

from notecipher.data import SessionData
from notecipher.exceptions import (
    DecryptionError,
    KeyDerivationError,
    KeyUnavailableError,
    PayloadTooLargeError,
)
from notecipher.vault.attachments import decrypt_attachment
from notecipher.vault.config import CipherConfig
from notecipher.vault.crypto import DerivedKey, open_envelope, seal
from notecipher.vault.keyring import KeyManager, KeyState


@pytest.fixture
def fast_derive(monkeypatch, key):
    """Replace PBKDF2 with a fixed key so lifecycle tests stay quick."""
    calls = []

    def _derive(password, account_identifier, kdf_version=1):
        if not password or not account_identifier:
            raise KeyDerivationError("empty credentials")
        calls.append((password, account_identifier))
        return key

    monkeypatch.setattr("notecipher.vault.keyring.derive_key", _derive)
    return calls


@pytest.fixture
def storage():
    return SessionData()


@pytest.fixture
def manager(storage):
    return KeyManager(storage=storage)


class TestLifecycle:

    def test_starts_without_key(self, manager):
        assert manager.has_key() is False
        assert manager.state is KeyState.NO_KEY

    def test_initialize_then_clear(self, manager, alice_key):
        manager.initialize("Tr0ub4dor&3", "alice")
        assert manager.has_key() is True
        assert manager.state is KeyState.KEY_READY
        assert manager.key == alice_key
        manager.clear()
        assert manager.has_key() is False
        assert manager.state is KeyState.NO_KEY

    def test_no_decryption_after_clear(self, manager, fast_derive):
        manager.initialize("pw", "alice")
        envelope = manager.seal("Buy milk")
        manager.clear()
        with pytest.raises(KeyUnavailableError):
            manager.open(envelope)
        with pytest.raises(KeyUnavailableError):
            _ = manager.key

    def test_clear_is_idempotent(self, manager):
        manager.clear()
        manager.clear()
        assert manager.has_key() is False

    def test_failed_derivation_clears_previous_key(self, manager, storage, fast_derive):
        manager.initialize("pw", "alice")
        with pytest.raises(KeyDerivationError):
            manager.initialize("", "alice")
        assert manager.has_key() is False
        assert manager.config.session_key_name not in storage

    def test_reinitialize_replaces_key(self, manager, alice_key, key, monkeypatch):
        monkeypatch.setattr(
            "notecipher.vault.keyring.derive_key", lambda pw, ident: key,
        )
        manager.initialize("pw", "alice")
        assert manager.key == key
        monkeypatch.setattr(
            "notecipher.vault.keyring.derive_key", lambda pw, ident: alice_key,
        )
        manager.initialize("pw2", "alice")
        assert manager.key == alice_key

    @pytest.mark.asyncio
    async def test_initialize_async(self, manager, alice_key):
        await manager.initialize_async("Tr0ub4dor&3", "alice")
        assert manager.key == alice_key

    @pytest.mark.asyncio
    async def test_initialize_async_failure(self, manager):
        with pytest.raises(KeyDerivationError):
            await manager.initialize_async("", "alice")
        assert manager.has_key() is False

    def test_repr(self, manager):
        assert "no_key" in repr(manager)


class TestSessionStorage:

    def test_initialize_stores_key(self, manager, storage, fast_derive, key):
        manager.initialize("pw", "alice")
        assert storage["encryptionKey"] == key.to_session()

    def test_clear_removes_stored_key(self, manager, storage, fast_derive):
        manager.initialize("pw", "alice")
        manager.clear()
        assert "encryptionKey" not in storage

    def test_restore_without_stored_key(self, manager):
        assert manager.restore_from_session() is False
        assert manager.state is KeyState.NO_KEY

    def test_restore_after_reload(self, manager, storage, fast_derive, key):
        manager.initialize("pw", "alice")
        envelope = manager.seal("Buy milk")

        reloaded_storage = SessionData.loads(storage.dumps())
        reloaded = KeyManager(storage=reloaded_storage)
        assert reloaded.restore_from_session() is True
        assert reloaded.state is KeyState.KEY_READY
        assert reloaded.open(envelope) == "Buy milk"
        # no password prompt: derivation ran only once
        assert len(fast_derive) == 1

    def test_restore_with_matching_key(self, manager, fast_derive, key):
        manager.initialize("pw", "alice")
        assert manager.restore_from_session() is True
        assert manager.key == key

    def test_restore_prefers_stored_key(self, manager, storage, key, other_key):
        storage["encryptionKey"] = other_key.to_session()
        manager.restore_from_session()
        assert manager.key == other_key

    def test_restore_discards_malformed_key(self, manager, storage):
        storage["encryptionKey"] = "not-a-key"
        assert manager.restore_from_session() is False
        assert "encryptionKey" not in storage
        assert manager.has_key() is False

    def test_custom_session_key_name(self, storage, fast_derive):
        manager = KeyManager(
            storage=storage, config=CipherConfig(session_key_name="k"),
        )
        manager.initialize("pw", "alice")
        assert "k" in storage
        assert "encryptionKey" not in storage

    def test_plain_dict_storage(self, fast_derive):
        storage = {}
        manager = KeyManager(storage=storage)
        manager.initialize("pw", "alice")
        assert KeyManager(storage=storage).restore_from_session() is True

    def test_default_storage(self, fast_derive):
        manager = KeyManager()
        manager.initialize("pw", "alice")
        assert isinstance(manager.storage, SessionData)
        assert "encryptionKey" in manager.storage


class TestBoundCipher:

    def test_seal_open(self, manager, fast_derive, key):
        manager.initialize("pw", "alice")
        envelope = manager.seal("Buy milk")
        assert manager.open(envelope) == "Buy milk"
        assert open_envelope(envelope, key) == "Buy milk"

    def test_open_bytes(self, manager, fast_derive):
        manager.initialize("pw", "alice")
        assert manager.open(manager.seal(b"\x00\x01"), as_text=False) == b"\x00\x01"

    def test_seal_value(self, manager, fast_derive):
        manager.initialize("pw", "alice")
        value = {"title": "t", "items": [1, 2]}
        assert manager.open_value(manager.seal_value(value)) == value

    def test_seal_without_key(self, manager):
        with pytest.raises(KeyUnavailableError):
            manager.seal("Buy milk")

    def test_foreign_envelope(self, manager, fast_derive, other_key):
        manager.initialize("pw", "alice")
        with pytest.raises(DecryptionError):
            manager.open(seal("not yours", other_key))

    def test_plaintext_cap_from_config(self, storage, fast_derive):
        config = CipherConfig(max_attachment_size=1024, max_plaintext_size=2048)
        manager = KeyManager(storage=storage, config=config)
        manager.initialize("pw", "alice")
        with pytest.raises(PayloadTooLargeError):
            manager.seal("x" * 4096)

    def test_managers_are_independent(self, fast_derive):
        first = KeyManager()
        second = KeyManager()
        first.initialize("pw", "alice")
        assert second.has_key() is False
        second.restore_from_session()
        assert second.has_key() is False
        assert isinstance(first.key, DerivedKey)


class TestBoundAttachments:

    @pytest.fixture
    def small_manager(self, storage, fast_derive):
        config = CipherConfig(max_attachment_size=1024, max_plaintext_size=2048)
        manager = KeyManager(storage=storage, config=config)
        manager.initialize("pw", "alice")
        return manager

    def test_roundtrip(self, small_manager, key):
        data = b"\x89PNG\r\n\x1a\n" + b"\x00" * 1016
        attachment = small_manager.encrypt_attachment(data, "image/png", "a.png")
        assert attachment.file_name == "a.png"
        assert small_manager.decrypt_attachment(attachment) == data
        assert decrypt_attachment(attachment, key) == data

    def test_cap_from_config(self, small_manager):
        with pytest.raises(PayloadTooLargeError) as exc:
            small_manager.encrypt_attachment(b"x" * 4096, "image/png", "big.png")
        assert exc.value.limit == 1024

    def test_without_key(self, manager):
        with pytest.raises(KeyUnavailableError):
            manager.encrypt_attachment(b"x", "image/png", "a.png")


class TestDefaultConfig:

    def test_config_read_from_environment(self, monkeypatch, fast_derive):
        monkeypatch.setenv("NOTECIPHER_SESSION_KEY", "noteKey")
        monkeypatch.setenv("NOTECIPHER_MAX_ATTACHMENT_SIZE", "2048")
        monkeypatch.setenv("NOTECIPHER_MAX_PLAINTEXT_SIZE", "4096")
        manager = KeyManager()
        assert manager.config.session_key_name == "noteKey"
        assert manager.config.max_attachment_size == 2048
        manager.initialize("pw", "alice")
        assert "noteKey" in manager.storage
        with pytest.raises(PayloadTooLargeError):
            manager.encrypt_attachment(b"x" * 4096, "image/png", "big.png")

    def test_invalid_environment_names_variable(self, monkeypatch):
        monkeypatch.setenv("NOTECIPHER_MAX_ATTACHMENT_SIZE", "ten megabytes")
        with pytest.raises(ValueError, match="NOTECIPHER_MAX_ATTACHMENT_SIZE"):
            KeyManager()
