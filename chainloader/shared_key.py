"""
Shared-secret derivation between the parties of a transaction.
"""
import logging
from typing import Any, Callable, Optional

from ._aio import maybe_await
from .crypto import ecdh_shared_secret
from .models import IdentityMatch

logger = logging.getLogger(__name__)

KeyAgreement = Callable[[bytes, bytes], Any]


async def derive_shared_key(
    sender: Optional[IdentityMatch],
    recipient: Optional[IdentityMatch],
    agreement: KeyAgreement = ecdh_shared_secret
) -> Optional[bytes]:
    """
    Derive the symmetric key shared by sender and recipient.

    Whichever party we hold the private key for contributes it, and the
    other contributes its public key. The sender's private key is preferred.

    Args:
        sender: Resolved sender identity
        recipient: Resolved recipient identity
        agreement: Key agreement primitive taking (private_key, public_key);
            may return the secret or an awaitable of it

    Returns:
        The shared secret, or None if it cannot be derived (missing or
        unusable key material, or a failing agreement)
    """
    if sender is None or recipient is None:
        return None

    try:
        private_key = sender.key.private_key()
        public_key = recipient.key.public_key()
        if not private_key:
            private_key = recipient.key.private_key()
            public_key = sender.key.public_key()

        if not (private_key and public_key):
            return None

        secret = await maybe_await(agreement(private_key, public_key))
    except Exception as e:
        logger.debug(
            f"Key agreement between {getattr(sender, 'address', '?')} and "
            f"{getattr(recipient, 'address', '?')} failed: {e!r}"
        )
        return None
    return secret
