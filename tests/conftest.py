"""
Pytest fixtures for the chainloader tests.
"""
import pytest

from chainloader.crypto import Secp256k1Key
from chainloader.diagnostics import reset_rate_limits
from chainloader.identity import AddressBook
from chainloader.keeper import InMemoryKeeper
from chainloader.loader import Loader

from tests.test_helpers import Publisher, ALICE_PRIV, BOB_PRIV, CAROL_PRIV, TEST_NETWORK, TEST_PREFIX


@pytest.fixture(autouse=True)
def _fresh_rate_limits():
    """Rate-limited messages from one test must not hide those of the next"""
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def alice():
    """Deterministic key pair for the usual sender"""
    return Secp256k1Key.from_private_bytes(ALICE_PRIV)


@pytest.fixture
def bob():
    """Deterministic key pair for the usual recipient"""
    return Secp256k1Key.from_private_bytes(BOB_PRIV)


@pytest.fixture
def carol():
    return Secp256k1Key.from_private_bytes(CAROL_PRIV)


@pytest.fixture
def keeper():
    return InMemoryKeeper()


@pytest.fixture
def publisher(keeper):
    return Publisher(keeper)


@pytest.fixture
def address_book(alice, bob):
    """
    Address book as the loader's owner sees it: we are Alice, so we hold
    her private key, and we know Bob's public key.
    """
    book = AddressBook()
    book.add(alice, label="alice")
    book.add(bob.public_only(), label="bob")
    return book


@pytest.fixture
def loader(keeper, address_book):
    return Loader(keeper, TEST_NETWORK, TEST_PREFIX, lookup=address_book)
