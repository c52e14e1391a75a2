#!/usr/bin/env python3
"""
Simple example of using chainloader.

Publishes one public and one shared file to a keeper, builds the
transactions that announce them, and loads them back.
"""
import asyncio
import logging
import os

from chainloader import (
    AddressBook, Loader, LoaderConfig, PermissionRecord, SealedPermissionCodec,
    SecretBoxCipher, Secp256k1Key, RawTransaction, TxType, encode_tx_data, ecdh_shared_secret
)
from chainloader.exceptions import ChainLoaderError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def publish(keeper, config, alice, bob):
    """Store a public file and a file Alice shares with Bob; return the announcing transactions"""
    cipher = SecretBoxCipher()

    public_key = await keeper.put(b"Hello, chain!")
    public_tx = RawTransaction(
        tx_id="tx-public",
        network=config.network_name,
        from_addresses=[alice.address],
        data=encode_tx_data(config.prefix, TxType.PUBLIC, bytes.fromhex(public_key)),
    )

    shared_secret = ecdh_shared_secret(alice.private_key(), bob.public_key())
    file_key = cipher.generate_key()
    record = PermissionRecord(
        file_key=await keeper.put(cipher.encrypt(b"For Bob only", file_key)),
        decryption_key=file_key.hex(),
    )
    permission_key = await keeper.put(SealedPermissionCodec(cipher).seal(record, shared_secret))
    permission_tx = RawTransaction(
        tx_id="tx-permission",
        network=config.network_name,
        from_addresses=[alice.address],
        to_addresses=[bob.address],
        data=encode_tx_data(
            config.prefix,
            TxType.PERMISSION,
            cipher.encrypt(bytes.fromhex(permission_key), shared_secret)
        ),
    )
    return [public_tx, permission_tx]


async def main():
    """
    Demonstrate basic usage of the Loader.

    This example shows how to:
    1. Configure a loader from the environment
    2. Tell it who we are through an address book
    3. Load a batch of transactions
    """
    os.environ.setdefault("CHAINLOADER_NETWORK", "testnet")
    os.environ.setdefault("CHAINLOADER_PREFIX", "tradle")
    config = LoaderConfig.from_env()

    alice = Secp256k1Key.generate()
    bob = Secp256k1Key.generate()

    # We are Bob: we hold our own private key and know Alice's public key
    book = AddressBook()
    book.add(bob, label="me")
    book.add(alice.public_only(), label="alice")

    loader = Loader.from_config(config, lookup=book)
    txs = await publish(loader.keeper, config, alice, bob)

    try:
        files = await loader.load(txs)
    except ChainLoaderError as e:
        logger.error(f"Error loading files: {e}")
        return

    for file in files:
        print(f"[{file.original_index}] {file.type.value} {file.key[:16]}...: {file.data.decode()}")


if __name__ == "__main__":
    asyncio.run(main())
