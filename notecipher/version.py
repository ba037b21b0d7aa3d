"""NoteCipher Meta information.
   NoteCipher encrypts notes and attachments on the client so the
   storage backend only ever sees ciphertext.
"""
__title__ = 'notecipher'
__description__ = (
   'Client-side encryption core for zero-knowledge note storage: '
   'password key derivation, versioned AES-GCM envelopes and attachments.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2024 NoteCipher Authors'
__author__ = 'NoteCipher Authors'
__author_email__ = 'dev@notecipher.invalid'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/notecipher/notecipher'
