"""
Data models for chainloader.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TxType(str, Enum):
    """Kind of directive embedded in a transaction."""
    PUBLIC = "public"
    PERMISSION = "permission"


class FileType(str, Enum):
    """Kind of artifact produced by the loader."""
    PUBLIC = "public"
    PERMISSION = "permission"
    SHARED = "sharedfile"


def _hex_to_bytes(value: Any) -> Any:
    # JSON round-trips carry bytes as hex strings
    if isinstance(value, str):
        if value.startswith("0x"):
            value = value[2:]
        return bytes.fromhex(value)
    return value


class RawTransaction(BaseModel):
    """A blockchain transaction as handed to the loader."""
    tx_id: str = Field(..., alias="txId")
    network: str
    from_addresses: List[str] = Field(default_factory=list, alias="from")
    to_addresses: List[str] = Field(default_factory=list, alias="to")
    data: Optional[bytes] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any) -> Any:
        return _hex_to_bytes(value)


class ParsedIntent(BaseModel):
    """
    Normalized decode of a transaction's embedded directive.

    ``payload`` holds the raw embedded bytes: the keeper key of the file
    for public intents, the sealed keeper key of a permission record for
    permission intents. ``original_index`` is the position of the
    transaction in the batch it was loaded with.
    """
    tx_id: str = Field(..., alias="txId")
    tx_type: TxType = Field(..., alias="txType")
    from_addresses: List[str] = Field(default_factory=list, alias="from")
    to_addresses: List[str] = Field(default_factory=list, alias="to")
    payload: bytes
    original_index: Optional[int] = Field(None, alias="originalIndex")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        return _hex_to_bytes(value)

    @property
    def addresses(self) -> List[str]:
        """All sender addresses followed by all recipient addresses"""
        return self.from_addresses + self.to_addresses


class PermissionRecord(BaseModel):
    """Decoded permission granting access to a shared file"""
    file_key: str = Field(..., alias="fileKey", min_length=1)
    decryption_key: Optional[str] = Field(None, alias="decryptionKey")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("decryption_key")
    @classmethod
    def _check_hex(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            bytes.fromhex(value)
        return value

    def decryption_key_bytes(self) -> Optional[bytes]:
        """
        Get the file decryption key.

        Returns:
            Raw key bytes, or None if the shared file is stored in the clear
        """
        if not self.decryption_key:
            return None
        return bytes.fromhex(self.decryption_key)


@runtime_checkable
class KeyMaterial(Protocol):
    """Protocol for asymmetric key material attached to an identity"""

    def private_key(self) -> Optional[bytes]:
        """Return the raw private key, or None if only the public half is known"""
        ...

    def public_key(self) -> bytes:
        """Return the encoded public key"""
        ...


@dataclass(frozen=True)
class IdentityMatch:
    """
    Resolved identity behind a blockchain address.

    Attributes:
        address: Address the identity was looked up by
        key: Key material for the identity
        label: Optional human-readable name
    """
    address: str
    key: KeyMaterial
    label: Optional[str] = None


@dataclass
class LoadedFile:
    """
    Final artifact produced for one transaction.

    Attributes:
        original_index: Position of the source transaction in its batch
        type: Kind of file
        key: Keeper key the data was fetched from
        data: Decrypted file contents
        intent: The parsed intent the file was derived from
        permission: Permission record, for permission and shared files
        sender: Resolved sender identity, if any
        recipient: Resolved recipient identity, if any
        encrypted_data: Data as stored in the keeper, when it differs from data
    """
    original_index: int
    type: FileType
    key: str
    data: bytes
    intent: ParsedIntent
    permission: Optional[PermissionRecord] = None
    sender: Optional[IdentityMatch] = None
    recipient: Optional[IdentityMatch] = None
    encrypted_data: Optional[bytes] = field(default=None, repr=False)
