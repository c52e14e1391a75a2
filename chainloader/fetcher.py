"""
Batched keeper access.
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ._aio import maybe_await
from .exceptions import KeeperError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """Value (or absence) returned by the keeper for one key"""
    key: str
    data: Optional[bytes] = None

    @property
    def found(self) -> bool:
        return self.data is not None


class BatchFetcher:
    """
    Wraps a keeper's multi-get.

    Each ``fetch`` issues exactly one multi-get for the distinct keys
    requested and maps the answer back onto the requested order.
    """

    def __init__(self, keeper: Any):
        self.keeper = keeper

    async def fetch(self, keys: Sequence[str]) -> List[FetchResult]:
        """
        Fetch keys in one round trip.

        Args:
            keys: Keys to fetch; duplicates allowed

        Returns:
            One FetchResult per requested key, in the requested order

        Raises:
            KeeperError: If the keeper fails or answers with the wrong number of values
        """
        keys = list(keys)
        if not keys:
            return []

        unique = list(dict.fromkeys(keys))
        try:
            values = await maybe_await(self.keeper.get_many(unique))
        except KeeperError:
            raise
        except Exception as e:
            logger.error(f"Error fetching {len(unique)} files from keeper: {e}")
            raise KeeperError(str(e) or "Failed to retrieve files from keeper", len(unique)) from e

        values = list(values or [])
        if len(values) != len(unique):
            raise KeeperError(
                f"Keeper returned {len(values)} values for {len(unique)} keys", len(unique)
            )

        by_key = dict(zip(unique, values))
        return [FetchResult(key=key, data=by_key[key]) for key in keys]
