"""
Newline Frame Decoder

Turns a byte stream delivered in arbitrary chunks into complete
newline-delimited messages. A message is emitted as soon as its
delimiter arrives; the incomplete tail is kept for the next chunk.
"""

from typing import AsyncIterable, AsyncIterator, Iterable, Iterator

from structlog import get_logger

logger = get_logger(__name__)

DELIMITER = b"\n"
ENCODING = "utf-8"


class FrameDecoder:
    """
    Incremental newline framing.

    Buffers raw bytes rather than text so a multi-byte character split
    across chunks decodes correctly. Undecodable bytes are kept as
    surrogate escapes and can be re-encoded to the original bytes with
    encode_frame().

    Usage:
        decoder = FrameDecoder()
        for message in decoder.feed(b'{"id": 1}\\n{"id"'):
            ...                      # yields '{"id": 1}'
        decoder.feed(b': 2}\\n')     # returns ['{"id": 2}']
    """

    def __init__(self) -> None:
        self._buffer = b""
        self.frame_count = 0

    @property
    def pending(self) -> bytes:
        """Bytes received after the last delimiter."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """
        Add a chunk and return the messages it completed.

        Blank and whitespace-only lines are dropped.
        """
        if not chunk:
            return []

        data = self._buffer + chunk
        if DELIMITER not in chunk:
            self._buffer = data
            return []

        *lines, self._buffer = data.split(DELIMITER)

        messages: list[str] = []
        for raw in lines:
            if not raw.strip():
                continue
            messages.append(raw.decode(ENCODING, errors="surrogateescape"))

        self.frame_count += len(messages)
        return messages

    def decode(self, chunks: Iterable[bytes]) -> Iterator[str]:
        """Lazily decode a chunk iterable. State carries over between calls."""
        for chunk in chunks:
            yield from self.feed(chunk)

    async def adecode(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
        """Async variant of decode()."""
        async for chunk in chunks:
            for message in self.feed(chunk):
                yield message

    def finish(self) -> None:
        """Signal end of stream, discarding any unterminated fragment."""
        if self._buffer.strip():
            logger.warning(
                "incomplete_frame_discarded",
                size=len(self._buffer),
            )
        self._buffer = b""

    def reset(self) -> None:
        self._buffer = b""


def encode_frame(message: str) -> bytes:
    """Bytes of a decoded message, newline-terminated, as originally received."""
    return message.encode(ENCODING, errors="surrogateescape") + DELIMITER
