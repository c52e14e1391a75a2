"""
Permission record codec.

A permission record is a small JSON document naming the keeper key of a
shared file and, optionally, the key the file is encrypted with. It is
stored in the keeper sealed under the shared secret of the two parties.
"""
import json
import logging
from typing import Optional, Protocol

from pydantic import ValidationError

from .crypto import SecretBoxCipher
from .exceptions import DecryptionError, PermissionRecoveryError
from .models import PermissionRecord

logger = logging.getLogger(__name__)


class PermissionCodec(Protocol):
    """Protocol for permission record codecs"""

    def recover(self, data: bytes, shared_key: bytes) -> PermissionRecord:
        """Recover a record from sealed data, raising on malformed input"""
        ...


class SealedPermissionCodec:
    """Permission codec that seals JSON records with a symmetric cipher"""

    def __init__(self, cipher: Optional[SecretBoxCipher] = None):
        self.cipher = cipher or SecretBoxCipher()

    def seal(self, record: PermissionRecord, shared_key: bytes) -> bytes:
        """
        Serialize and encrypt a permission record.

        Args:
            record: Record to seal
            shared_key: Shared secret of the two parties

        Returns:
            Sealed record, ready to be put in the keeper
        """
        body = record.model_dump_json(by_alias=True).encode("utf-8")
        return self.cipher.encrypt(body, shared_key)

    def recover(self, data: bytes, shared_key: bytes) -> PermissionRecord:
        """
        Decrypt and validate a sealed permission record.

        Args:
            data: Sealed record as fetched from the keeper
            shared_key: Shared secret of the two parties

        Returns:
            The permission record

        Raises:
            PermissionRecoveryError: If decryption fails or the record is malformed
        """
        try:
            body = self.cipher.decrypt(data, shared_key)
        except DecryptionError as e:
            raise PermissionRecoveryError(f"Failed to decrypt permission: {e}") from e

        try:
            return PermissionRecord.model_validate(json.loads(body.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise PermissionRecoveryError(f"Malformed permission record: {e}") from e
