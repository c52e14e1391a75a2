"""
Helpers for building chainloader test fixtures.
"""
from .publisher import (
    Publisher, ALICE_PRIV, BOB_PRIV, CAROL_PRIV, TEST_NETWORK, TEST_PREFIX
)

__all__ = ["Publisher", "ALICE_PRIV", "BOB_PRIV", "CAROL_PRIV", "TEST_NETWORK", "TEST_PREFIX"]
