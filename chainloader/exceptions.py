"""
Exceptions for the chainloader package.
"""


class ChainLoaderError(Exception):
    """Base exception for chainloader errors."""
    pass


class ConfigurationError(ChainLoaderError, ValueError):
    """Raised when a loader or one of its collaborators is misconfigured."""
    pass


class KeeperError(ChainLoaderError):
    """
    Raised when the keeper (storage collaborator) fails.

    Storage unavailability is systemic: it aborts the whole load call
    rather than a single item.
    """

    def __init__(self, message: str, keys_requested: int = 0):
        self.keys_requested = keys_requested
        super().__init__(message)


class TxDecodeError(ChainLoaderError):
    """Raised by a decoder when a transaction cannot be decoded."""
    pass


class DecryptionError(ChainLoaderError):
    """Raised when ciphertext cannot be decrypted with the given key."""
    pass


class PermissionRecoveryError(ChainLoaderError):
    """Raised when a permission record cannot be recovered from raw data."""
    pass
