"""
Tests for the LoaderStream processing stage.
"""
import asyncio
import logging

import pytest

from chainloader import ConfigurationError, FileType, KeeperError, Loader, LoaderStream, OpReturnDecoder
from chainloader.keeper import InMemoryKeeper, content_key

from tests.test_helpers import TEST_NETWORK, TEST_PREFIX


class PoisonedKeeper(InMemoryKeeper):
    """Keeper that fails any multi-get touching a poisoned key"""

    def __init__(self):
        super().__init__()
        self.poisoned = set()

    async def get_many(self, keys):
        if self.poisoned.intersection(keys):
            raise KeeperError("Keeper unavailable: poisoned key", len(keys))
        return await super().get_many(keys)


async def _collect(stream):
    return [file async for file in stream]


class TestStreamInit:
    """Test stream construction and event registration."""

    @pytest.mark.parametrize("high_water_mark", [0, -1, 1.5, None])
    def test_invalid_high_water_mark(self, loader, high_water_mark):
        with pytest.raises(ConfigurationError):
            LoaderStream(loader, high_water_mark=high_water_mark)

    def test_stream_factory(self, loader):
        stream = loader.stream(high_water_mark=4)
        assert isinstance(stream, LoaderStream)
        assert stream.high_water_mark == 4
        assert not stream.running

    def test_unknown_event(self, loader):
        with pytest.raises(ValueError, match="Unknown event"):
            loader.stream().on("data", print)
        with pytest.raises(ValueError, match="Unknown event"):
            loader.stream().off("data", print)

    def test_on_off(self, loader):
        stream = loader.stream()
        assert stream.on("file", print) is stream
        stream.off("file", print)
        stream.off("file", print)
        assert stream._handlers["file"] == []


class TestStreamOutput:
    """Test files coming out of the stream."""

    @pytest.mark.asyncio
    async def test_units_in_order(self, loader, publisher, alice, bob):
        units = [
            [await publisher.public_tx(b"a"), await publisher.permission_tx(b"b", alice, bob)],
            await publisher.public_tx(b"c"),
            [publisher.noise_tx(), await publisher.permission_tx(b"d", alice, bob, encrypt_file=False)],
        ]

        async with loader.stream() as stream:
            feeder = asyncio.create_task(stream.feed(units))
            files = await _collect(stream)
            await feeder

        assert [f.data for f in files] == [b"a", b"b", b"c", b"d"]
        assert [f.type for f in files] == [FileType.PUBLIC, FileType.SHARED, FileType.PUBLIC, FileType.SHARED]

    @pytest.mark.asyncio
    async def test_feed_async_iterable(self, loader, publisher):
        txs = [await publisher.public_tx(bytes([i])) for i in range(3)]

        async def source():
            for tx in txs:
                yield tx

        stream = loader.stream()
        feeder = asyncio.create_task(stream.feed(source()))
        files = await _collect(stream)
        await feeder

        assert [f.data for f in files] == [b"\x00", b"\x01", b"\x02"]
        assert not stream.running

    @pytest.mark.asyncio
    async def test_parsed_intents_accepted(self, loader, publisher):
        tx = await publisher.public_tx(b"parsed")
        intent = OpReturnDecoder().parse(tx, TEST_NETWORK, TEST_PREFIX)

        stream = loader.stream()
        await stream.write(intent)
        await stream.end()

        assert [f.data for f in await _collect(stream)] == [b"parsed"]

    @pytest.mark.asyncio
    async def test_write_after_end(self, loader):
        stream = loader.stream()
        await stream.end()
        with pytest.raises(RuntimeError):
            await stream.write([])
        await stream.wait_closed()

    @pytest.mark.asyncio
    async def test_output_is_bounded(self, loader, publisher):
        txs = [await publisher.public_tx(bytes([i])) for i in range(5)]
        stream = loader.stream(high_water_mark=1)

        async def write_all():
            for tx in txs:
                await stream.write(tx)

        # Nobody reads, so writers eventually wait
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(write_all(), timeout=0.5)
        assert stream.running

        await stream.aclose()
        assert not stream.running


class TestStreamEvents:
    """Test events emitted by the stream."""

    @pytest.mark.asyncio
    async def test_file_events(self, loader, publisher, alice, bob):
        seen = []
        public = await publisher.public_tx(b"pub")
        shared = await publisher.permission_tx(b"shh", alice, bob)

        async with loader.stream() as stream:
            stream.on("file:public", lambda f: seen.append(("public", f.data)))
            stream.on("file:permission", lambda f: seen.append(("permission", f.type)))
            stream.on("file:shared", lambda f: seen.append(("shared", f.data)))
            stream.on("file", lambda f: seen.append(("file", f.type)))
            await stream.write([public, shared])

        assert ("public", b"pub") in seen
        assert ("permission", FileType.PERMISSION) in seen
        assert ("shared", b"shh") in seen
        assert [event for event in seen if event[0] == "file"] == [
            ("file", FileType.PUBLIC), ("file", FileType.PERMISSION), ("file", FileType.SHARED)
        ]

    @pytest.mark.asyncio
    async def test_async_handlers(self, loader, publisher):
        seen = []

        async def handler(file):
            await asyncio.sleep(0)
            seen.append(file.data)

        async with loader.stream() as stream:
            stream.on("file", handler)
            await stream.write(await publisher.public_tx(b"async"))

        assert seen == [b"async"]

    @pytest.mark.asyncio
    async def test_handler_errors_are_logged(self, loader, publisher, caplog):
        def broken(file):
            raise RuntimeError("handler bug")

        with caplog.at_level(logging.ERROR):
            async with loader.stream() as stream:
                stream.on("file", broken)
                feeder = asyncio.create_task(stream.feed([await publisher.public_tx(b"still delivered")]))
                files = await _collect(stream)
                await feeder

        assert [f.data for f in files] == [b"still delivered"]
        assert "Error in file handler" in caplog.text

    @pytest.mark.asyncio
    async def test_keeper_error_event_and_recovery(self, publisher):
        keeper = PoisonedKeeper()
        publisher.keeper = keeper
        loader = Loader(keeper, TEST_NETWORK, TEST_PREFIX)
        before = await publisher.public_tx(b"before")
        poisoned = await publisher.public_tx(b"poisoned")
        keeper.poisoned.add(content_key(b"poisoned"))
        after = await publisher.public_tx(b"after")
        errors = []

        stream = loader.stream()
        stream.on("error", errors.append)
        feeder = asyncio.create_task(stream.feed([before, [poisoned, after], after]))
        files = await _collect(stream)
        await feeder

        # The failed unit produces nothing; later units still load
        assert [f.data for f in files] == [b"before", b"after"]
        assert len(errors) == 1
        assert isinstance(errors[0], KeeperError)

    @pytest.mark.asyncio
    async def test_repeated_keeper_errors_logged_once(self, publisher, caplog):
        keeper = PoisonedKeeper()
        publisher.keeper = keeper
        loader = Loader(keeper, TEST_NETWORK, TEST_PREFIX)
        tx = await publisher.public_tx(b"bad")
        keeper.poisoned.add(content_key(b"bad"))
        errors = []

        with caplog.at_level(logging.WARNING, logger="chainloader.loader"):
            async with loader.stream() as stream:
                stream.on("error", errors.append)
                for _ in range(3):
                    await stream.write(tx)

        assert len(errors) == 3
        assert caplog.text.count("Keeper failure in loader stream") == 1


class TestStreamFailure:
    """Test unexpected failures inside the stage."""

    @pytest.mark.asyncio
    async def test_unexpected_error_reaches_reader(self, keeper, publisher):
        class ExplodingDecoder(OpReturnDecoder):
            def parse(self, raw, network, prefix):
                raise RuntimeError("decoder bug")

        loader = Loader(keeper, TEST_NETWORK, TEST_PREFIX, decoder=ExplodingDecoder())
        stream = loader.stream()
        await stream.write(await publisher.public_tx(b"x"))
        await stream.end()

        with pytest.raises(RuntimeError, match="decoder bug"):
            await _collect(stream)

    @pytest.mark.asyncio
    async def test_exception_in_context_cancels(self, loader, publisher):
        with pytest.raises(ValueError):
            async with loader.stream() as stream:
                await stream.write(await publisher.public_tx(b"x"))
                raise ValueError("caller bug")
        assert not stream.running

    @pytest.mark.asyncio
    async def test_item_failure_keeps_stream_running(self, keeper, publisher, address_book, alice, bob):
        def agreement(private_key, public_key):
            raise RuntimeError("hsm offline")

        loader = Loader(keeper, TEST_NETWORK, TEST_PREFIX, lookup=address_book, key_agreement=agreement)
        units = [await publisher.permission_tx(b"lost", alice, bob), await publisher.public_tx(b"kept")]

        stream = loader.stream()
        feeder = asyncio.create_task(stream.feed(units))
        files = await _collect(stream)
        await feeder

        assert [f.data for f in files] == [b"kept"]
