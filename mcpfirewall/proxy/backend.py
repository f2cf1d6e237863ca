"""
Backend Process Adapter

Owns the filesystem MCP server child process. The proxy only talks to
it through the BackendChannel interface so tests can substitute an
in-memory double.
"""

import asyncio
from typing import Protocol

from structlog import get_logger

logger = get_logger(__name__)

DEFAULT_BACKEND_COMMAND = [
    "npx",
    "-y",
    "@modelcontextprotocol/server-filesystem",
]


class BackendChannel(Protocol):
    """Narrow interface the proxy needs from a backend."""

    async def start(self) -> None: ...

    async def write_line(self, data: bytes) -> None: ...

    async def read(self, n: int) -> bytes: ...

    async def close_input(self) -> None: ...

    async def wait(self) -> int | None: ...


class SubprocessBackend:
    """
    Backend running as a child process over stdin/stdout pipes.

    stderr is inherited, so the server's own diagnostics reach the
    client's log untouched.

    Usage:
        backend = SubprocessBackend(DEFAULT_BACKEND_COMMAND + ["/home/me/src"])
        await backend.start()
        await backend.write_line(b'{"jsonrpc": "2.0", ...}\\n')
        data = await backend.read(65536)
    """

    def __init__(self, command: list[str]):
        """
        Initialize the adapter.

        Args:
            command: Program and arguments to spawn.
        """
        if not command:
            raise ValueError("Backend command must not be empty")
        self.command = list(command)
        self._process: asyncio.subprocess.Process | None = None

    @property
    def process(self) -> asyncio.subprocess.Process:
        if self._process is None:
            raise RuntimeError("Backend process has not been started")
        return self._process

    async def start(self) -> None:
        """
        Spawn the backend.

        Raises:
            FileNotFoundError: If the program does not exist.
            PermissionError: If the program is not executable.
        """
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
        )
        logger.info(
            "backend_started",
            command=self.command,
            pid=self._process.pid,
        )

    async def write_line(self, data: bytes) -> None:
        stdin = self.process.stdin
        stdin.write(data)
        await stdin.drain()

    async def read(self, n: int) -> bytes:
        return await self.process.stdout.read(n)

    async def close_input(self) -> None:
        stdin = self.process.stdin
        if stdin.is_closing():
            return
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # Backend already exited
            pass

    async def wait(self) -> int | None:
        """
        Wait for the backend to exit.

        Returns:
            The exit code, or None when the process was killed by a signal.
        """
        returncode = await self.process.wait()
        if returncode < 0:
            logger.warning("backend_killed", signal=-returncode)
            return None
        logger.info("backend_exited", exit_code=returncode)
        return returncode
