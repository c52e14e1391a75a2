"""
Identity resolution for the parties of a transaction.

The loader does not know who is behind an address. It asks an injected
lookup, which may be backed by anything (a local address book, a remote
identity service). Resolution misses and lookup failures are normal
outcomes and never abort a batch.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .crypto import Secp256k1Key, address_from_public_key
from .exceptions import ConfigurationError
from .models import IdentityMatch, KeyMaterial, ParsedIntent

logger = logging.getLogger(__name__)

LookupFunction = Callable[[str, bool], Awaitable[Optional[IdentityMatch]]]


class IdentityLookup(Protocol):
    """Protocol for identity lookups"""

    def lookup(self, address: str, want_private: bool) -> Awaitable[Optional[IdentityMatch]]:
        """Resolve address to an identity, or to None if it is unknown"""
        ...


def as_lookup_function(lookup: Any) -> Optional[LookupFunction]:
    """
    Normalize a lookup collaborator to a plain function.

    Args:
        lookup: None, an object with a ``lookup`` method, or a callable

    Returns:
        The lookup function, or None if no lookup was given

    Raises:
        ConfigurationError: If lookup is neither
    """
    if lookup is None:
        return None
    method = getattr(lookup, "lookup", None)
    if callable(method):
        return method
    if callable(lookup):
        return lookup
    raise ConfigurationError(
        f"lookup must be callable or expose a lookup() method, got {type(lookup).__name__}"
    )


@dataclass(frozen=True)
class Parties:
    """Resolved sender and recipient of one transaction"""
    sender: Optional[IdentityMatch] = None
    recipient: Optional[IdentityMatch] = None

    @property
    def complete(self) -> bool:
        return self.sender is not None and self.recipient is not None


def match_parties(
    from_addresses: Sequence[str],
    to_addresses: Sequence[str],
    resolved: Mapping[str, Optional[IdentityMatch]]
) -> Parties:
    """
    Pick the sender and recipient among resolved addresses.

    The sender is the first resolved address in ``from_addresses`` order.
    The recipient is the first resolved address in ``to_addresses`` order
    whose public key differs from the sender's, so a transaction sent to
    oneself has no recipient.

    Args:
        from_addresses: Sender candidates, in transaction order
        to_addresses: Recipient candidates, in transaction order
        resolved: Lookup results by address

    Returns:
        The matched parties
    """
    sender = None
    for address in from_addresses:
        match = resolved.get(address)
        if match is not None:
            sender = match
            break

    if sender is None:
        return Parties()

    sender_key = sender.key.public_key()
    for address in to_addresses:
        match = resolved.get(address)
        if match is not None and match.key.public_key() != sender_key:
            return Parties(sender=sender, recipient=match)

    return Parties(sender=sender)


def _has_public_key(match: Any) -> bool:
    try:
        public_key = match.key.public_key()
    except Exception:
        return False
    return isinstance(public_key, (bytes, bytearray)) and len(public_key) > 0


class IdentityResolver:
    """
    Resolves the parties of a batch of intents with one concurrent round of lookups.
    """

    def __init__(self, lookup: Any = None, want_private: bool = True):
        """
        Initialize the resolver.

        Args:
            lookup: Identity lookup (see ``as_lookup_function``), or None
            want_private: Whether to ask the lookup for private key material
        """
        self.lookup = as_lookup_function(lookup)
        self.want_private = want_private

    @property
    def enabled(self) -> bool:
        return self.lookup is not None

    async def _lookup_one(self, address: str) -> Optional[IdentityMatch]:
        result = self.lookup(address, self.want_private)
        if not inspect.isawaitable(result):
            raise TypeError(f"lookup must return an awaitable, got {type(result).__name__}")
        return await result

    async def resolve_addresses(self, addresses: Iterable[str]) -> Dict[str, Optional[IdentityMatch]]:
        """
        Look up every distinct address concurrently.

        Args:
            addresses: Addresses to resolve; duplicates and empty values are ignored

        Returns:
            Mapping of address to identity (None for misses and failed lookups)
        """
        unique = list(dict.fromkeys(a for a in addresses if a))
        if not self.enabled or not unique:
            return {address: None for address in unique}

        results = await asyncio.gather(
            *(self._lookup_one(address) for address in unique),
            return_exceptions=True
        )

        resolved: Dict[str, Optional[IdentityMatch]] = {}
        for address, result in zip(unique, results):
            if isinstance(result, TypeError):
                logger.warning(f"Identity lookup for {address} misbehaved: {result}")
                result = None
            elif isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.debug(f"Identity lookup for {address} failed: {result}")
                result = None
            elif result is not None and not _has_public_key(result):
                logger.warning(f"Identity lookup for {address} returned unusable key material")
                result = None
            resolved[address] = result
        return resolved

    async def resolve(self, intents: Sequence[ParsedIntent]) -> List[Parties]:
        """
        Resolve the parties of each intent.

        Args:
            intents: Intents of one batch

        Returns:
            Parties for each intent, in the same order
        """
        if not self.enabled:
            return [Parties() for _ in intents]

        resolved = await self.resolve_addresses(
            address for intent in intents for address in intent.addresses
        )
        return [
            match_parties(intent.from_addresses, intent.to_addresses, resolved)
            for intent in intents
        ]


class AddressBook:
    """
    In-memory identity lookup keyed by address.

    Entries added with private key material are returned with it only when
    the caller asks for private keys.
    """

    def __init__(self):
        self._entries: Dict[str, IdentityMatch] = {}

    def add(self, key: KeyMaterial, address: Optional[str] = None, label: Optional[str] = None) -> IdentityMatch:
        """
        Add an identity.

        Args:
            key: Key material for the identity
            address: Address to file it under (derived from the public key by default)
            label: Optional human-readable name

        Returns:
            The stored identity
        """
        address = address or address_from_public_key(key.public_key())
        match = IdentityMatch(address=address, key=key, label=label)
        self._entries[address] = match
        return match

    def remove(self, address: str) -> None:
        self._entries.pop(address, None)

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def lookup(self, address: str, want_private: bool = True) -> Optional[IdentityMatch]:
        match = self._entries.get(address)
        if match is None or want_private or match.key.private_key() is None:
            return match
        return IdentityMatch(
            address=match.address,
            key=Secp256k1Key(match.key.public_key()),
            label=match.label
        )
