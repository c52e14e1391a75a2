"""
Diagnostics for items dropped by the loader, and rate-limited logging.

Dropping an item is an expected outcome (most transactions on a shared
chain are not readable by us), so drops are recorded as ``Diagnostic``
values rather than raised. Systemic failures that repeat for every input
unit are logged through ``rate_limited_log`` to keep the log readable.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# At most 100 distinct messages, each logged at most once per TTL
_log_cache = TTLCache(maxsize=100, ttl=60)
_log_cache_lock = threading.RLock()


class DropReason(str, Enum):
    """Why an item was dropped from a load."""
    UNPARSEABLE = "UNPARSEABLE"
    UNKNOWN_PARTIES = "UNKNOWN_PARTIES"
    NO_SHARED_KEY = "NO_SHARED_KEY"
    PAYLOAD_DECRYPT_FAILED = "PAYLOAD_DECRYPT_FAILED"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_INVALID = "PERMISSION_INVALID"
    FILE_DECRYPT_FAILED = "FILE_DECRYPT_FAILED"


@dataclass(frozen=True)
class Diagnostic:
    """
    Record of a dropped item.

    Attributes:
        original_index: Position of the item in its batch
        reason: Why it was dropped
        detail: Human-readable detail
        tx_id: Transaction id, when the item got far enough to have one
    """
    original_index: int
    reason: DropReason
    detail: str = ""
    tx_id: Optional[str] = None

    def __str__(self) -> str:
        where = self.tx_id or f"item {self.original_index}"
        return f"{where} dropped ({self.reason.value}): {self.detail}"


def rate_limited_log(
    message: str,
    level: str = "warning",
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message unless the same message was logged recently.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was logged, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    key = f"{level}:{message}"

    with _log_cache_lock:
        if key in _log_cache:
            return False
        log_method(message)
        _log_cache[key] = True
    return True


def reset_rate_limits() -> None:
    """Forget previously logged messages"""
    with _log_cache_lock:
        _log_cache.clear()
