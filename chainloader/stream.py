"""
Streaming stage over a Loader.

Units of input (one or more transactions each) are written to the stage,
run through the loader one at a time, and the resulting files come out the
other end one by one, each unit's files in transaction order. Both ends
are bounded by ``high_water_mark``: writers wait when the input is full and
the stage waits when nobody reads its output.

Events:
    file:public      a public file was loaded
    file:permission  a permission record was recovered
    file:shared      a shared file was loaded
    file             any of the above
    error            the keeper failed; the stage keeps accepting input
"""
import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

from ._aio import maybe_await
from .diagnostics import rate_limited_log
from .exceptions import ConfigurationError, KeeperError
from .loader import Loader, OutcomeKind
from .models import LoadedFile

# Outcome kind -> specific event; every file event also fires "file"
FILE_EVENTS = {
    OutcomeKind.PUBLIC: "file:public",
    OutcomeKind.PERMISSION: "file:permission",
    OutcomeKind.SHARED: "file:shared",
}
EVENTS = frozenset(FILE_EVENTS.values()) | {"file", "error"}

# Pushed downstream, not forwarded to readers
_FORWARDED = (OutcomeKind.PUBLIC, OutcomeKind.SHARED)

_END = object()

Handler = Callable[[Any], Any]


class LoaderStream:
    """
    Push-based, bounded processing stage that loads files for incoming transactions.

    Example:
        async with loader.stream() as stream:
            stream.on("error", report)
            asyncio.create_task(stream.feed(transactions))
            async for file in stream:
                handle(file)
    """

    def __init__(self, loader: Loader, high_water_mark: int = 16, logger: Optional[logging.Logger] = None):
        """
        Initialize the stage.

        Args:
            loader: Loader to run input units through
            high_water_mark: Capacity of the input and output buffers
            logger: Optional logger (defaults to the loader's)

        Raises:
            ConfigurationError: If high_water_mark is not positive
        """
        if not isinstance(high_water_mark, int) or high_water_mark <= 0:
            raise ConfigurationError(f"high_water_mark must be a positive integer, got {high_water_mark!r}")

        self.loader = loader
        self.high_water_mark = high_water_mark
        self.logger = logger or loader.logger
        self._input: asyncio.Queue = asyncio.Queue(maxsize=high_water_mark)
        self._output: asyncio.Queue = asyncio.Queue(maxsize=high_water_mark)
        self._handlers: Dict[str, List[Handler]] = {event: [] for event in EVENTS}
        self._task: Optional[asyncio.Task] = None
        self._ended = False
        self._failure: Optional[BaseException] = None

    def on(self, event: str, handler: Handler) -> "LoaderStream":
        """
        Register an event handler.

        Args:
            event: One of EVENTS
            handler: Called with a LoadedFile (file events) or the exception
                (error event); may be a coroutine function

        Returns:
            This stream, for chaining

        Raises:
            ValueError: If event is unknown
        """
        if event not in self._handlers:
            raise ValueError(f"Unknown event {event!r}, expected one of {sorted(EVENTS)}")
        self._handlers[event].append(handler)
        return self

    def off(self, event: str, handler: Handler) -> "LoaderStream":
        """Unregister an event handler"""
        if event not in self._handlers:
            raise ValueError(f"Unknown event {event!r}, expected one of {sorted(EVENTS)}")
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)
        return self

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the worker task (idempotent); requires a running event loop"""
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def write(self, txs: Any) -> None:
        """
        Queue one unit of input.

        Args:
            txs: A transaction, a parsed intent, or a list of either

        Raises:
            RuntimeError: If the input has been ended
        """
        if self._ended:
            raise RuntimeError("Cannot write to a loader stream after end()")
        self.start()
        await self._input.put(txs)

    async def end(self) -> None:
        """Signal that no more input will be written"""
        if self._ended:
            return
        self._ended = True
        self.start()
        await self._input.put(_END)

    async def feed(self, source: Union[Iterable[Any], AsyncIterable[Any]]) -> None:
        """
        Write every unit from source, then end the input.

        Args:
            source: Sync or async iterable of input units
        """
        if hasattr(source, "__aiter__"):
            async for unit in source:
                await self.write(unit)
        else:
            for unit in source:
                await self.write(unit)
        await self.end()

    async def _emit(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers[event]):
            try:
                await maybe_await(handler(payload))
            except Exception:
                self.logger.exception(f"Error in {event} handler")

    async def _process(self, unit: Any) -> None:
        files: List[LoadedFile] = []
        try:
            async for outcome in self.loader.iter_outcomes(unit):
                event = FILE_EVENTS.get(outcome.kind)
                if event is None:
                    continue
                await self._emit(event, outcome.file)
                await self._emit("file", outcome.file)
                if outcome.kind in _FORWARDED:
                    files.append(outcome.file)
        except KeeperError as e:
            rate_limited_log(
                f"Keeper failure in loader stream: {e}",
                level="warning",
                logger_instance=self.logger
            )
            await self._emit("error", e)
            return

        files.sort(key=lambda f: f.original_index)
        for file in files:
            await self._output.put(file)

    async def _run(self) -> None:
        try:
            while True:
                unit = await self._input.get()
                if unit is _END:
                    break
                await self._process(unit)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failure = e
            self.logger.exception("Loader stream stopped unexpectedly")
        await self._output.put(_END)

    async def _next(self) -> Any:
        item = await self._output.get()
        if item is _END:
            # Leave the marker for any other reader
            self._output.put_nowait(_END)
        return item

    async def __aiter__(self) -> AsyncIterator[LoadedFile]:
        self.start()
        while True:
            item = await self._next()
            if item is _END:
                if self._failure is not None:
                    raise self._failure
                return
            yield item

    async def wait_closed(self) -> None:
        """
        Wait until all input has been processed, discarding unread output.

        Only returns after end() has been called.
        """
        if self._task is None:
            return
        discarded = 0
        while await self._next() is not _END:
            discarded += 1
        if discarded:
            self.logger.debug(f"Discarded {discarded} unread files")
        await self._task

    async def aclose(self) -> None:
        """Stop the stage immediately, abandoning queued input"""
        self._ended = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "LoaderStream":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.aclose()
            return
        # Drain while ending so a full input buffer cannot block the exit
        await asyncio.gather(self.end(), self.wait_closed())
