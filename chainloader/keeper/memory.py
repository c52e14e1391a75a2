"""
In-memory keeper.

Useful for development and tests: it needs no service, and it records the
multi-gets it serves so callers can check how often the store was hit.
"""
import logging
from typing import Dict, List, Optional, Sequence

from ..exceptions import KeeperError
from .base import Keeper, content_key

logger = logging.getLogger(__name__)


class InMemoryKeeper(Keeper):
    """Dict-backed keeper."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        """
        Initialize the keeper.

        Args:
            initial: Optional key/value pairs to preload; keys are not checked
                against the content of their values
        """
        self._store: Dict[str, bytes] = dict(initial or {})
        self.calls: List[List[str]] = []
        self.fail_with: Optional[Exception] = None

    async def get_many(self, keys: Sequence[str]) -> List[Optional[bytes]]:
        keys = list(keys)
        self.calls.append(keys)
        if self.fail_with is not None:
            raise KeeperError(f"Keeper unavailable: {self.fail_with}", len(keys)) from self.fail_with
        logger.debug(f"Serving {len(keys)} keys from memory")
        return [self._store.get(key) for key in keys]

    async def put(self, data: bytes) -> str:
        key = content_key(data)
        self._store[key] = bytes(data)
        return key

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)
