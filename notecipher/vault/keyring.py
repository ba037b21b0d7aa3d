"""
KeyManager — owns the active encryption key for one user session.

Provides the public API used by the authentication flow and the note
CRUD layer:
- ``initialize(password, account_identifier)`` — derive and hold the key
- ``restore_from_session()`` — reload the key after an app reload
- ``has_key()`` / ``state`` — inspect the lifecycle state
- ``clear()`` — discard the key on logout or failed login
- ``seal()`` / ``open()`` — cipher calls bound to the active key
- ``encrypt_attachment()`` / ``decrypt_attachment()`` — attachments, capped
  at ``config.max_attachment_size``

State machine::

    NO_KEY --initialize / restore_from_session--> KEY_READY
    KEY_READY --clear--> NO_KEY
    KEY_READY --restore_from_session--> KEY_READY

Security Note:
    The key is kept in session-scoped storage only (see
    :class:`notecipher.data.SessionData`). Never log key material; log
    fingerprints only.
"""
import enum
import logging
from typing import Any, Optional, Union
from collections.abc import MutableMapping

from ..data import SessionData
from ..exceptions import KeyUnavailableError
from .config import CipherConfig
from .attachments import (
    EncryptedAttachment,
    encrypt_attachment,
    decrypt_attachment,
)
from .crypto import (
    DerivedKey,
    derive_key,
    derive_key_async,
    seal,
    open_envelope,
    seal_value,
    open_value,
    Plaintext,
)

logger = logging.getLogger("notecipher.vault")


class KeyState(str, enum.Enum):
    NO_KEY = "no_key"
    KEY_READY = "key_ready"


class KeyManager:
    """Holder of the one active key of a session.

    Instances are passed explicitly to whatever needs to encrypt or
    decrypt; there is no module-level key. The key reference is replaced
    as a whole, so concurrent readers see either a complete key or none.
    """

    def __init__(
        self,
        storage: Optional[MutableMapping[str, Any]] = None,
        config: Optional[CipherConfig] = None,
    ):
        self._storage = storage if storage is not None else SessionData()
        self._config = config or CipherConfig.from_env()
        self._key: Optional[DerivedKey] = None

    def __repr__(self) -> str:
        return f"<KeyManager state={self.state.value}>"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> KeyState:
        return KeyState.KEY_READY if self._key is not None else KeyState.NO_KEY

    @property
    def config(self) -> CipherConfig:
        return self._config

    @property
    def storage(self) -> MutableMapping[str, Any]:
        return self._storage

    def has_key(self) -> bool:
        """True iff a key is loaded."""
        return self._key is not None

    @property
    def key(self) -> DerivedKey:
        """The active key.

        Raises:
            KeyUnavailableError: If no key is loaded.
        """
        key = self._key
        if key is None:
            raise KeyUnavailableError("Encryption key not available")
        return key

    def _activate(self, key: DerivedKey) -> None:
        self._key = key
        self._storage[self._config.session_key_name] = key.to_session()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, password: str, account_identifier: str) -> None:
        """Derive the account key and make it the active key.

        Usable at login and at registration: the key only depends on the
        credentials, not on server state.

        Raises:
            KeyDerivationError: If the credentials are unusable. Any
                previously held key is cleared first.
        """
        try:
            key = derive_key(password, account_identifier)
        except Exception:
            self.clear()
            raise
        self._activate(key)
        logger.info("Encryption key initialized (fp=%s)", key.fingerprint)

    async def initialize_async(self, password: str, account_identifier: str) -> None:
        """Same as :meth:`initialize`, deriving off the event loop."""
        try:
            key = await derive_key_async(password, account_identifier)
        except Exception:
            self.clear()
            raise
        self._activate(key)
        logger.info("Encryption key initialized (fp=%s)", key.fingerprint)

    def restore_from_session(self) -> bool:
        """Reload the key from session storage without a password prompt.

        Returns:
            True if a key is now active, False if none was stored (the
            manager stays in NO_KEY).
        """
        name = self._config.session_key_name
        stored = self._storage.get(name)
        if stored is None:
            logger.debug("No session key stored under %r", name)
            return False
        try:
            key = DerivedKey.from_session(stored)
        except (TypeError, ValueError) as err:
            logger.warning(
                "Discarding malformed session key %r: %s", name, err,
            )
            del self._storage[name]
            return False
        if self._key is not None and self._key == key:
            logger.debug("Session key already active (fp=%s)", key.fingerprint)
            return True
        self._key = key
        logger.info("Encryption key restored from session (fp=%s)", key.fingerprint)
        return True

    def clear(self) -> None:
        """Discard the key from memory and from session storage.

        Called on logout and on authentication failure. Idempotent.
        """
        had_key = self._key is not None
        self._key = None
        self._storage.pop(self._config.session_key_name, None)
        if had_key:
            logger.info("Encryption key cleared")

    # ------------------------------------------------------------------
    # Cipher calls bound to the active key
    # ------------------------------------------------------------------

    def seal(self, plaintext: Plaintext) -> str:
        return seal(plaintext, self.key, max_size=self._config.max_plaintext_size)

    def open(self, envelope: Union[str, bytes], as_text: bool = True) -> Plaintext:
        return open_envelope(envelope, self.key, as_text=as_text)

    def seal_value(self, value: Any) -> str:
        return seal_value(value, self.key, max_size=self._config.max_plaintext_size)

    def open_value(self, envelope: Union[str, bytes]) -> Any:
        return open_value(envelope, self.key)

    def encrypt_attachment(
        self, data: bytes, mime_type: str, file_name: str
    ) -> EncryptedAttachment:
        """Encrypt an image or video under the active key.

        The payload cap is ``config.max_attachment_size``.
        """
        return encrypt_attachment(
            data, mime_type, file_name, self.key,
            max_size=self._config.max_attachment_size,
        )

    def decrypt_attachment(self, attachment: EncryptedAttachment) -> bytes:
        return decrypt_attachment(attachment, self.key)
