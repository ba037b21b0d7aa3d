"""
NoteCipher defaults.

Environment overrides are read in a single place,
:meth:`notecipher.vault.config.CipherConfig.from_env`; importing this
module never inspects the environment.

KDF parameters are deliberately absent: every client must derive the
same key from the same credentials, so they live as versioned
constants in :mod:`notecipher.vault.crypto`.
"""

# name of the session-storage entry holding the active key
SESSION_KEY = 'encryptionKey'
SESSION_ID = 'session_id'
SESSION_CREATED = 'created'

# 10 MiB, same cap the CRUD layer applies to request bodies
MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024
# base64 of a max-size attachment is ~13.4 MiB
MAX_PLAINTEXT_SIZE = 16 * 1024 * 1024
