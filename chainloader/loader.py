"""
Loader - loads files announced on a blockchain from the keeper.

A batch of transactions goes through these stages:

1. parse transactions into intents (unparseable ones are dropped)
2. resolve the parties of every intent concurrently, and derive the shared
   secret of the parties of every permission intent
3. fetch public files and sealed permission records in one multi-get
4. recover permission records
5. fetch the shared files the records point to in a second multi-get
6. decrypt shared files

Per-item failures drop the item with a diagnostic. Keeper failures are
systemic and abort the call with ``KeeperError``. Whatever the batch size,
the keeper is hit at most twice.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional, Sequence, TYPE_CHECKING

from pydantic import BaseModel

from ._aio import maybe_await
from .config import LoaderConfig
from .crypto import SecretBoxCipher, ecdh_shared_secret
from .decoder import OpReturnDecoder, TxDecoder
from .diagnostics import Diagnostic, DropReason
from .exceptions import ConfigurationError
from .fetcher import BatchFetcher
from .identity import IdentityResolver, Parties
from .keeper import get_keeper
from .models import FileType, LoadedFile, ParsedIntent, PermissionRecord, TxType
from .parser import parse_transactions
from .permission import PermissionCodec, SealedPermissionCodec
from .shared_key import KeyAgreement, derive_shared_key

# Avoid circular imports with TYPE_CHECKING
if TYPE_CHECKING:
    from .stream import LoaderStream


class OutcomeKind(str, Enum):
    """Kind of outcome produced for an item"""
    PUBLIC = "public"
    PERMISSION = "permission"
    SHARED = "shared"
    DROPPED = "dropped"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one pipeline step for one item.

    ``file`` is set for PUBLIC, PERMISSION and SHARED outcomes,
    ``diagnostic`` for DROPPED ones.
    """
    kind: OutcomeKind
    original_index: int
    file: Optional[LoadedFile] = None
    diagnostic: Optional[Diagnostic] = None


@dataclass
class _WorkItem:
    """Working state of one intent during a load"""
    intent: ParsedIntent
    parties: Parties
    shared_key: Optional[bytes] = None
    lookup_key: Optional[str] = None
    permission: Optional[PermissionRecord] = None

    @property
    def index(self) -> int:
        return self.intent.original_index

    @property
    def is_public(self) -> bool:
        return self.intent.tx_type == TxType.PUBLIC

    def loaded(self, file_type: FileType, key: str, data: bytes, encrypted_data: Optional[bytes] = None) -> LoadedFile:
        return LoadedFile(
            original_index=self.index,
            type=file_type,
            key=key,
            data=data,
            intent=self.intent,
            permission=self.permission,
            sender=self.parties.sender,
            recipient=self.parties.recipient,
            encrypted_data=encrypted_data,
        )


def _as_batch(txs: Any) -> List[Any]:
    # Models, mappings and byte strings are single transactions, not batches
    if isinstance(txs, (BaseModel, Mapping, str, bytes, bytearray)):
        return [txs]
    if isinstance(txs, Iterable):
        return list(txs)
    return [txs]


def _require_methods(name: str, obj: Any, *methods: str) -> None:
    if obj is None:
        raise ConfigurationError(f"{name} is required")
    missing = [m for m in methods if not callable(getattr(obj, m, None))]
    if missing:
        raise ConfigurationError(f"{name} must provide {', '.join(missing)}()")


class Loader:
    """
    Loads files referenced by blockchain transactions from the keeper.

    To use the loader, you'll need:
    - A keeper client (anything with ``get_many`` and ``put``)
    - The network name and application prefix transactions are tagged with
    - For permission transactions: an identity lookup that knows at least
      one private key of each pair of parties
    """

    def __init__(
        self,
        keeper: Any,
        network_name: str,
        prefix: str,
        lookup: Any = None,
        decoder: Optional[TxDecoder] = None,
        cipher: Optional[Any] = None,
        permission_codec: Optional[PermissionCodec] = None,
        key_agreement: KeyAgreement = ecdh_shared_secret,
        high_water_mark: int = 16,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the Loader

        Args:
            keeper: Keeper client exposing get_many(keys) and put(data)
            network_name: Network transactions must belong to (e.g., "testnet")
            prefix: Application prefix of embedded transaction data
            lookup: Optional identity lookup, a callable or an object with
                lookup(address, want_private) returning an awaitable
            decoder: Transaction decoder (defaults to OpReturnDecoder)
            cipher: Symmetric cipher with decrypt(data, key) (defaults to SecretBoxCipher)
            permission_codec: Codec with recover(data, shared_key)
                (defaults to SealedPermissionCodec over the cipher)
            key_agreement: Key agreement primitive (private_key, public_key) -> secret
            high_water_mark: Default buffer size of streams created with stream()
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ConfigurationError: If a required collaborator or setting is missing or invalid
        """
        _require_methods("keeper", keeper, "get_many", "put")
        for setting, value in (("network_name", network_name), ("prefix", prefix)):
            if not isinstance(value, str) or not value:
                raise ConfigurationError(f"{setting} must be a non-empty string")
        if not prefix.isascii():
            raise ConfigurationError("prefix must be ASCII")
        if not callable(key_agreement):
            raise ConfigurationError("key_agreement must be callable")
        if isinstance(high_water_mark, bool) or not isinstance(high_water_mark, int) or high_water_mark <= 0:
            raise ConfigurationError(f"high_water_mark must be a positive integer, got {high_water_mark!r}")

        self.keeper = keeper
        self.network_name = network_name
        self.prefix = prefix
        self.decoder = decoder or OpReturnDecoder()
        self.cipher = cipher or SecretBoxCipher()
        self.permission_codec = permission_codec or SealedPermissionCodec(self.cipher)
        self.key_agreement = key_agreement
        self.high_water_mark = high_water_mark
        self.logger = logger or logging.getLogger(__name__)

        _require_methods("decoder", self.decoder, "parse", "validate")
        _require_methods("cipher", self.cipher, "decrypt")
        _require_methods("permission_codec", self.permission_codec, "recover")

        self.resolver = IdentityResolver(lookup)

    @classmethod
    def from_config(cls, config: LoaderConfig, keeper: Any = None, lookup: Any = None, **kwargs: Any) -> "Loader":
        """
        Build a loader from configuration.

        Args:
            config: Loader configuration
            keeper: Keeper client; built from config.keeper_url when omitted
            lookup: Optional identity lookup
            **kwargs: Other Loader arguments

        Returns:
            Configured Loader
        """
        if keeper is None:
            keeper = get_keeper(
                config.keeper_url,
                **({"timeout": config.keeper_timeout, "retry_count": config.keeper_retry_count}
                   if config.keeper_url else {})
            )
        kwargs.setdefault("high_water_mark", config.high_water_mark)
        return cls(keeper, config.network_name, config.prefix, lookup=lookup, **kwargs)

    def lookup_with(self, lookup: Any) -> "Loader":
        """
        Set the identity lookup.

        Args:
            lookup: Callable or object with lookup(address, want_private)

        Returns:
            This loader, for chaining
        """
        self.resolver = IdentityResolver(lookup)
        return self

    def stream(self, high_water_mark: Optional[int] = None) -> "LoaderStream":
        """
        Create a streaming stage on top of this loader.

        Args:
            high_water_mark: Buffer size (defaults to the loader's high_water_mark)
        """
        from .stream import LoaderStream
        if high_water_mark is None:
            high_water_mark = self.high_water_mark
        return LoaderStream(self, high_water_mark=high_water_mark)

    async def load(self, txs: Any) -> List[LoadedFile]:
        """
        Load the files related to one or more transactions.

        Args:
            txs: A transaction, a parsed intent, or an iterable of either

        Returns:
            Loaded public and shared files, in the order of their transactions

        Raises:
            KeeperError: If the keeper fails
        """
        files = []
        async for outcome in self.iter_outcomes(txs):
            if outcome.kind in (OutcomeKind.PUBLIC, OutcomeKind.SHARED):
                files.append(outcome.file)

        files.sort(key=lambda f: f.original_index)
        return files

    def _dropped(self, diagnostic: Diagnostic) -> Outcome:
        self.logger.debug(str(diagnostic))
        return Outcome(
            kind=OutcomeKind.DROPPED,
            original_index=diagnostic.original_index,
            diagnostic=diagnostic
        )

    def _drop(self, item: _WorkItem, reason: DropReason, detail: str) -> Outcome:
        return self._dropped(Diagnostic(
            original_index=item.index,
            reason=reason,
            detail=detail,
            tx_id=item.intent.tx_id
        ))

    async def _derive(self, item: _WorkItem) -> Optional[bytes]:
        return await derive_shared_key(item.parties.sender, item.parties.recipient, self.key_agreement)

    async def _classify(self, items: Sequence[_WorkItem]) -> List[Outcome]:
        """Assign first-round lookup keys; return drops for items that get none"""
        permission_items = [item for item in items if not item.is_public]
        shared_keys = await asyncio.gather(*(self._derive(item) for item in permission_items))

        dropped = []
        for item, shared_key in zip(permission_items, shared_keys):
            if item.parties.sender is None:
                dropped.append(self._drop(item, DropReason.UNKNOWN_PARTIES, "unknown tx participants"))
                continue
            if shared_key is None:
                dropped.append(self._drop(item, DropReason.NO_SHARED_KEY, "failed to get shared key"))
                continue
            item.shared_key = shared_key
            try:
                permission_key = await maybe_await(self.cipher.decrypt(item.intent.payload, shared_key))
                item.lookup_key = bytes(permission_key).hex()
            except Exception as e:
                dropped.append(self._drop(
                    item, DropReason.PAYLOAD_DECRYPT_FAILED, f"failed to decrypt permission key: {e}"
                ))
                continue

        for item in items:
            if item.is_public:
                item.lookup_key = item.intent.payload.hex()
        return dropped

    async def iter_outcomes(self, txs: Any) -> AsyncIterator[Outcome]:
        """
        Run the pipeline over a batch, yielding outcomes as they are produced.

        Outcomes are yielded per stage, not in input order. Every parsed item
        ends in exactly one PUBLIC, SHARED or DROPPED outcome; permission
        items that get as far as a recovered record also yield a PERMISSION
        outcome on the way.

        Args:
            txs: A transaction, a parsed intent, or an iterable of either

        Yields:
            Outcome values

        Raises:
            KeeperError: If the keeper fails
        """
        intents, unparseable = parse_transactions(
            _as_batch(txs), self.decoder, self.network_name, self.prefix
        )
        for diagnostic in unparseable:
            yield self._dropped(diagnostic)
        if not intents:
            return

        fetcher = BatchFetcher(self.keeper)
        parties = await self.resolver.resolve(intents)
        items = [_WorkItem(intent=intent, parties=p) for intent, p in zip(intents, parties)]

        for outcome in await self._classify(items):
            yield outcome

        # Public files first, then sealed permission records, each in input order
        round_one = [item for item in items if item.is_public]
        round_one += [item for item in items if not item.is_public and item.lookup_key is not None]
        if not round_one:
            return

        results = await fetcher.fetch([item.lookup_key for item in round_one])
        recovered: List[_WorkItem] = []
        for item, result in zip(round_one, results):
            if not result.found:
                yield self._drop(item, DropReason.NOT_FOUND, f"{result.key} not in keeper")
                continue

            if item.is_public:
                yield Outcome(
                    kind=OutcomeKind.PUBLIC,
                    original_index=item.index,
                    file=item.loaded(FileType.PUBLIC, result.key, result.data)
                )
                continue

            try:
                record = await maybe_await(self.permission_codec.recover(result.data, item.shared_key))
                if not isinstance(record, PermissionRecord):
                    record = PermissionRecord.model_validate(record)
            except Exception as e:
                yield self._drop(
                    item, DropReason.PERMISSION_INVALID, f"failed to recover permission: {e}"
                )
                continue

            item.permission = record
            recovered.append(item)
            yield Outcome(
                kind=OutcomeKind.PERMISSION,
                original_index=item.index,
                file=item.loaded(
                    FileType.PERMISSION,
                    result.key,
                    record.model_dump_json(by_alias=True).encode("utf-8"),
                    encrypted_data=result.data
                )
            )

        if not recovered:
            return

        results = await fetcher.fetch([item.permission.file_key for item in recovered])
        for item, result in zip(recovered, results):
            if not result.found:
                yield self._drop(item, DropReason.NOT_FOUND, f"{result.key} not in keeper")
                continue

            data = result.data
            encrypted_data = None
            decryption_key = item.permission.decryption_key_bytes()
            if decryption_key:
                try:
                    data = bytes(await maybe_await(self.cipher.decrypt(result.data, decryption_key)))
                except Exception as e:
                    yield self._drop(
                        item, DropReason.FILE_DECRYPT_FAILED, f"failed to decrypt shared file: {e}"
                    )
                    continue
                encrypted_data = result.data

            yield Outcome(
                kind=OutcomeKind.SHARED,
                original_index=item.index,
                file=item.loaded(FileType.SHARED, result.key, data, encrypted_data=encrypted_data)
            )
