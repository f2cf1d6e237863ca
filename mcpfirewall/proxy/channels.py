"""
Client Channels

The client side of the proxy: an async byte source for requests and a
sink shared by relayed backend output and synthesized replies.
"""

import asyncio
import sys
from typing import Protocol, TextIO

from structlog import get_logger

logger = get_logger(__name__)


class ClientInput(Protocol):
    """Async source of raw client bytes. Returns b"" at end of stream."""

    async def read(self, n: int) -> bytes: ...


class StdioClientInput:
    """
    Client requests read from stdin through an asyncio pipe transport.

    Reading never blocks the event loop, so relaying backend output
    continues while the client is idle.
    """

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdin
        self._reader: asyncio.StreamReader | None = None

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, self._stream)
        self._reader = reader

    async def read(self, n: int) -> bytes:
        if self._reader is None:
            await self.open()
        return await self._reader.read(n)


class ClientWriter(Protocol):
    """The part of asyncio.StreamWriter the client side needs."""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


async def open_stdout_writer(stream: TextIO | None = None) -> asyncio.StreamWriter:
    """
    Wrap stdout in a StreamWriter bound to the running loop.

    Writes are buffered by the pipe transport and drain() waits while
    the client is not reading, so a slow client never blocks the loop.
    """
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, stream or sys.stdout
    )
    return asyncio.StreamWriter(transport, protocol, None, loop)


class ClientOutput:
    """
    Writes to the client without breaking message framing.

    Backend output is relayed byte for byte and may stop mid-message.
    Synthesized replies are only written at a line boundary of that
    stream; until then they are queued. Framing state changes happen
    before the single await on drain(), so the relay and reply paths
    never interleave inside a message.

    Usage:
        output = ClientOutput(await open_stdout_writer())
        await output.relay(b'{"id": 1, "res')   # backend mid-message
        await output.reply(b'{"id": 2, ...}\\n')  # queued
        await output.relay(b'ult": {}}\\n')      # completes, then flushes reply
    """

    def __init__(self, writer: ClientWriter):
        self._writer = writer
        self._at_boundary = True
        self._pending: list[bytes] = []

    @property
    def at_boundary(self) -> bool:
        """Whether the relayed stream currently ends on a newline."""
        return self._at_boundary

    @property
    def pending_replies(self) -> int:
        return len(self._pending)

    async def relay(self, data: bytes) -> None:
        """
        Write backend bytes verbatim.

        Raises:
            ConnectionError: If the client has closed its end.
        """
        if not data:
            return

        last_newline = data.rfind(b"\n")
        if last_newline == -1:
            self._writer.write(data)
            self._at_boundary = False
        else:
            self._writer.write(data[:last_newline + 1])
            self._at_boundary = True
            self._write_pending()

            rest = data[last_newline + 1:]
            if rest:
                self._writer.write(rest)
                self._at_boundary = False

        await self._writer.drain()

    async def reply(self, payload: bytes) -> None:
        """
        Write a newline-terminated reply at the next line boundary.

        Raises:
            ConnectionError: If the client has closed its end.
        """
        if not self._at_boundary:
            self._pending.append(payload)
            logger.debug("reply_queued", pending=len(self._pending))
            return

        self._writer.write(payload)
        await self._writer.drain()

    async def close(self) -> None:
        """Flush queued replies after the backend stream has ended."""
        if not self._pending:
            return
        if not self._at_boundary:
            # The backend left a partial line; start replies on a new one
            self._writer.write(b"\n")
            self._at_boundary = True
        self._write_pending()
        await self._writer.drain()

    def _write_pending(self) -> None:
        for payload in self._pending:
            self._writer.write(payload)
        self._pending.clear()
