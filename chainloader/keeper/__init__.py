"""
Keeper clients for chainloader.

``get_keeper`` returns an HTTP client for a keeper service URL, or an
in-memory keeper when no URL is given.
"""
import logging
from typing import Any, Optional

from .base import Keeper, content_key
from .http import HttpKeeper
from .memory import InMemoryKeeper

__all__ = ['Keeper', 'HttpKeeper', 'InMemoryKeeper', 'content_key', 'get_keeper']

logger = logging.getLogger(__name__)


def get_keeper(url: Optional[str] = None, **kwargs: Any) -> Keeper:
    """
    Get a keeper client.

    Args:
        url: Keeper service URL; None for an in-memory keeper
        **kwargs: Passed to HttpKeeper (timeout, retry_count)

    Returns:
        Keeper implementation
    """
    if url:
        logger.info(f"Using HTTP keeper at {url}")
        return HttpKeeper(url, **kwargs)
    logger.info("Using in-memory keeper")
    return InMemoryKeeper()
