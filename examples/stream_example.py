#!/usr/bin/env python3
"""
Example of loading files from a stream of transactions.

Point CHAINLOADER_KEEPER_URL at a keeper service and feed the stage
transactions from your chain watcher; here the source is a list.
"""
import asyncio
import json
import logging
import sys

from chainloader import Loader, LoaderConfig
from chainloader.exceptions import ConfigurationError

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("stream-example")


def report_error(error):
    logger.warning(f"Keeper error, skipping unit: {error}")


async def main(path):
    """Load every transaction listed in a JSON file, one unit per block"""
    try:
        config = LoaderConfig.from_env()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return

    with open(path) as f:
        blocks = json.load(f)

    loader = Loader.from_config(config)
    async with loader.stream() as stream:
        stream.on("error", report_error)
        stream.on("file:permission", lambda f: logger.info(f"Permission for {f.permission.file_key}"))
        feeder = asyncio.create_task(stream.feed(blocks))
        async for file in stream:
            print(f"{file.intent.tx_id}: {file.type.value} file {file.key} ({len(file.data)} bytes)")
        await feeder


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(f"usage: {sys.argv[0]} BLOCKS.json")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
