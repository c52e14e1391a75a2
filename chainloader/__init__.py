"""
chainloader - load files announced on a blockchain from a content-addressed keeper.
"""
from .version import __version__
from .config import LoaderConfig
from .crypto import SecretBoxCipher, Secp256k1Key, address_from_public_key, ecdh_shared_secret
from .decoder import OpReturnDecoder, encode_tx_data
from .diagnostics import Diagnostic, DropReason
from .exceptions import (
    ChainLoaderError, ConfigurationError, KeeperError, TxDecodeError,
    DecryptionError, PermissionRecoveryError
)
from .fetcher import BatchFetcher, FetchResult
from .identity import AddressBook, IdentityResolver, Parties
from .keeper import HttpKeeper, InMemoryKeeper, Keeper, get_keeper
from .loader import Loader, Outcome, OutcomeKind
from .models import (
    FileType, IdentityMatch, LoadedFile, ParsedIntent, PermissionRecord, RawTransaction, TxType
)
from .permission import SealedPermissionCodec
from .shared_key import derive_shared_key
from .stream import LoaderStream

__all__ = [
    "Loader",
    "LoaderStream",
    "LoaderConfig",
    "Outcome",
    "OutcomeKind",
    "AddressBook",
    "IdentityResolver",
    "Parties",
    "BatchFetcher",
    "FetchResult",
    "Keeper",
    "HttpKeeper",
    "InMemoryKeeper",
    "get_keeper",
    "OpReturnDecoder",
    "encode_tx_data",
    "SealedPermissionCodec",
    "SecretBoxCipher",
    "Secp256k1Key",
    "address_from_public_key",
    "ecdh_shared_secret",
    "derive_shared_key",
    "Diagnostic",
    "DropReason",
    "FileType",
    "IdentityMatch",
    "LoadedFile",
    "ParsedIntent",
    "PermissionRecord",
    "RawTransaction",
    "TxType",
    "ChainLoaderError",
    "ConfigurationError",
    "KeeperError",
    "TxDecodeError",
    "DecryptionError",
    "PermissionRecoveryError",
    "__version__",
]
