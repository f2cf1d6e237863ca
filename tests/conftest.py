"""
Shared fixtures and in-memory channel doubles.
"""

import asyncio
import json

import pytest
import structlog

from mcpfirewall.config import reset_settings
from mcpfirewall.policy.engine import PolicyEngine


class InMemoryBackend:
    """
    Backend double that answers every forwarded request with an empty
    result for the same id, and closes its output once its input closes.
    """

    def __init__(
        self,
        exit_code: int | None = 0,
        echo: bool = True,
        fail_writes: bool = False,
        close_on_eof: bool = True,
    ):
        self.exit_code = exit_code
        self.echo = echo
        self.fail_writes = fail_writes
        self.close_on_eof = close_on_eof

        self.received: list[bytes] = []
        self.started = False
        self.input_closed = False
        self._output: asyncio.Queue[bytes] = asyncio.Queue()

    def emit(self, data: bytes) -> None:
        """Queue raw bytes on the backend's output."""
        self._output.put_nowait(data)

    async def start(self) -> None:
        self.started = True

    async def write_line(self, data: bytes) -> None:
        if self.fail_writes:
            self.emit(b"")
            raise BrokenPipeError("backend stdin closed")

        self.received.append(data)
        if self.echo:
            try:
                message = json.loads(data)
            except ValueError:
                return
            if not isinstance(message, dict):
                return
            response = {"jsonrpc": "2.0", "id": message.get("id"), "result": {}}
            self.emit(json.dumps(response).encode() + b"\n")

    async def read(self, n: int) -> bytes:
        return await self._output.get()

    async def close_input(self) -> None:
        self.input_closed = True
        if self.close_on_eof:
            self.emit(b"")

    async def wait(self) -> int | None:
        return self.exit_code


class MemoryClientInput:
    """Client double that yields preset chunks, then end of stream."""

    def __init__(self, chunks: list[bytes]):
        self._chunks = list(chunks)

    async def read(self, n: int) -> bytes:
        if self._chunks:
            return self._chunks.pop(0)
        return b""


class MemoryClientWriter:
    """
    StreamWriter double collecting everything written to the client.

    Setting broken makes drain() fail as it does once the client has
    closed its end of the pipe.
    """

    def __init__(self, broken: bool = False):
        self.broken = broken
        self._buffer = bytearray()

    def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    async def drain(self) -> None:
        if self.broken:
            raise BrokenPipeError("client closed stdout")

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


def request_line(request_id, tool: str, **arguments) -> bytes:
    """A newline-terminated tools/call request."""
    message = {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": tool, "arguments": arguments},
    }
    return json.dumps(message).encode() + b"\n"


@pytest.fixture(autouse=True)
def reset_global_state():
    """Undo logging configuration and cached settings after each test."""
    yield
    structlog.reset_defaults()
    reset_settings()


@pytest.fixture
def insight_engine():
    """Engine that hides secret.* files."""
    return PolicyEngine.from_dict({
        "deny_insight": ["secret.*"],
        "deny_modification": [],
    })


@pytest.fixture
def full_engine():
    """Engine with both confidentiality and integrity rules."""
    return PolicyEngine.from_dict({
        "deny_insight": ["secret.*", "*.pem", ".env"],
        "deny_modification": ["locked.db", "*.lock"],
    })


@pytest.fixture
def make_request():
    """Builder for newline-terminated tools/call requests."""
    return request_line


@pytest.fixture
def backend_factory():
    """Factory for in-memory backends."""
    return InMemoryBackend


@pytest.fixture
def client_factory():
    """Factory for in-memory client inputs."""
    return MemoryClientInput


@pytest.fixture
def writer_factory():
    """Factory for in-memory client writers."""
    return MemoryClientWriter
