"""
Cryptographic primitives used by the loader.

Identities carry secp256k1 keys. Two parties agree on a shared secret with
ECDH, and payloads, permission records and shared files are sealed with
libsodium secretbox under 32-byte keys.
"""
import hashlib
import logging
from typing import Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
import nacl.exceptions
import nacl.secret
import nacl.utils
from web3 import Web3

from .exceptions import DecryptionError

logger = logging.getLogger(__name__)

CURVE = ec.SECP256K1()
KEY_SIZE = nacl.secret.SecretBox.KEY_SIZE

PrivateKeyLike = Union[bytes, ec.EllipticCurvePrivateKey]
PublicKeyLike = Union[bytes, ec.EllipticCurvePublicKey]


def _load_private_key(private_key: PrivateKeyLike) -> ec.EllipticCurvePrivateKey:
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key
    if not isinstance(private_key, (bytes, bytearray)) or len(private_key) != 32:
        raise ValueError("Private key must be 32 raw bytes")
    return ec.derive_private_key(int.from_bytes(private_key, "big"), CURVE)


def _load_public_key(public_key: PublicKeyLike) -> ec.EllipticCurvePublicKey:
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return public_key
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes(public_key))


def address_from_public_key(public_key: PublicKeyLike) -> str:
    """
    Derive the checksummed account address for a secp256k1 public key.

    Args:
        public_key: Encoded (compressed or uncompressed) public key

    Returns:
        0x-prefixed checksum address
    """
    uncompressed = _load_public_key(public_key).public_bytes(
        Encoding.X962, PublicFormat.UncompressedPoint
    )
    digest = Web3.keccak(uncompressed[1:])
    return Web3.to_checksum_address("0x" + digest[-20:].hex())


class Secp256k1Key:
    """
    secp256k1 key material for an identity.

    Holds the public key and, when known, the private key. Satisfies the
    ``KeyMaterial`` protocol.
    """

    def __init__(self, public_key: bytes, private_key: Optional[bytes] = None):
        """
        Initialize the key.

        Args:
            public_key: Encoded public key
            private_key: Optional 32-byte private key matching public_key

        Raises:
            ValueError: If the keys are malformed or do not match
        """
        point = _load_public_key(public_key)
        self._public = point.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
        self._private = None
        if private_key is not None:
            derived = _load_private_key(private_key).public_key().public_bytes(
                Encoding.X962, PublicFormat.CompressedPoint
            )
            if derived != self._public:
                raise ValueError("Private key does not match public key")
            self._private = bytes(private_key)

    @classmethod
    def generate(cls) -> "Secp256k1Key":
        """Generate a new random key pair"""
        private = ec.generate_private_key(CURVE)
        raw = private.private_numbers().private_value.to_bytes(32, "big")
        return cls.from_private_bytes(raw)

    @classmethod
    def from_private_bytes(cls, private_key: bytes) -> "Secp256k1Key":
        """Build a key pair from a raw 32-byte private key"""
        public = _load_private_key(private_key).public_key().public_bytes(
            Encoding.X962, PublicFormat.CompressedPoint
        )
        return cls(public, private_key)

    def private_key(self) -> Optional[bytes]:
        return self._private

    def public_key(self) -> bytes:
        return self._public

    def public_only(self) -> "Secp256k1Key":
        """Return a copy of this key without the private half"""
        return Secp256k1Key(self._public)

    @property
    def address(self) -> str:
        return address_from_public_key(self._public)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secp256k1Key):
            return NotImplemented
        return self._public == other._public and self._private == other._private

    def __hash__(self) -> int:
        return hash(self._public)

    def __repr__(self) -> str:
        # Never print private key material
        return f"Secp256k1Key(public={self._public.hex()}, private={'yes' if self._private else 'no'})"


def ecdh_shared_secret(private_key: PrivateKeyLike, public_key: PublicKeyLike) -> bytes:
    """
    Derive a symmetric key from one party's private key and the other's public key.

    The ECDH shared point's x-coordinate is hashed with SHA-256, so the
    result can be used directly as a secretbox key. Deriving from
    (a.priv, b.pub) and from (b.priv, a.pub) yields the same key.

    Args:
        private_key: Raw 32-byte private key or a cryptography private key
        public_key: Encoded public key or a cryptography public key

    Returns:
        32-byte shared secret

    Raises:
        ValueError: If either key is malformed or not on the curve
    """
    shared = _load_private_key(private_key).exchange(ec.ECDH(), _load_public_key(public_key))
    return hashlib.sha256(shared).digest()


class SecretBoxCipher:
    """Symmetric cipher backed by libsodium secretbox (XSalsa20-Poly1305)."""

    key_size = KEY_SIZE

    @staticmethod
    def generate_key() -> bytes:
        return nacl.utils.random(KEY_SIZE)

    def encrypt(self, data: bytes, key: bytes) -> bytes:
        """
        Encrypt data under key.

        Args:
            data: Plaintext
            key: 32-byte symmetric key

        Returns:
            nonce + ciphertext + tag
        """
        box = nacl.secret.SecretBox(key)
        # box.encrypt prepends a random nonce to the ciphertext
        return bytes(box.encrypt(data))

    def decrypt(self, data: bytes, key: bytes) -> bytes:
        """
        Decrypt data produced by ``encrypt``.

        Args:
            data: nonce + ciphertext + tag
            key: 32-byte symmetric key

        Returns:
            Plaintext

        Raises:
            DecryptionError: If the key is wrong or the ciphertext is corrupt
        """
        try:
            return nacl.secret.SecretBox(key).decrypt(data)
        except (nacl.exceptions.CryptoError, ValueError, TypeError) as e:
            raise DecryptionError(f"Failed to decrypt {len(data or b'')} bytes: {e}") from e
