import os
import pytest

from notecipher.vault.crypto import DerivedKey, derive_key


@pytest.fixture
def key():
    """A random key; avoids paying PBKDF2 cost in cipher tests."""
    return DerivedKey(os.urandom(32))


@pytest.fixture
def other_key():
    return DerivedKey(os.urandom(32))


@pytest.fixture(scope="session")
def alice_key():
    """Key derived from the reference credentials."""
    return derive_key("Tr0ub4dor&3", "alice")
