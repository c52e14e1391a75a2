"""
Storage collaborator interface.

The keeper is a content-addressed byte store. The loader only reads from
it, with batched multi-gets; ``put`` exists for publishers.
"""
import hashlib
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence


def content_key(data: bytes) -> str:
    """Return the content address (hex SHA-256) of data"""
    return hashlib.sha256(data).hexdigest()


class Keeper(ABC):
    """
    Abstract base class for keeper clients.

    Implementations may be backed by any store that can return many values
    in one round trip.
    """

    @abstractmethod
    async def get_many(self, keys: Sequence[str]) -> List[Optional[bytes]]:
        """
        Fetch the values stored under keys.

        Args:
            keys: Keys to fetch

        Returns:
            One entry per key, in the same order; None where a key is absent

        Raises:
            KeeperError: If the store cannot be reached or answers malformed data
        """
        pass

    @abstractmethod
    async def put(self, data: bytes) -> str:
        """
        Store data under its content address.

        Args:
            data: Bytes to store

        Returns:
            The key the data is stored under
        """
        pass

    async def close(self) -> None:
        """Release any open connections or resources."""
        pass
