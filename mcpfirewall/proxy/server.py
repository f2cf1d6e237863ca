"""
Firewall Proxy

Runs the two directions of the stdio proxy as cooperative tasks:
client requests are framed and filtered on their way to the backend,
backend output is relayed to the client untouched.
"""

import asyncio
import contextlib

from structlog import get_logger

from mcpfirewall.proxy.backend import BackendChannel
from mcpfirewall.proxy.channels import ClientInput, ClientOutput
from mcpfirewall.proxy.framing import FrameDecoder
from mcpfirewall.proxy.interceptor import MessageInterceptor, Route

logger = get_logger(__name__)

DEFAULT_READ_CHUNK_SIZE = 65536


class FirewallProxy:
    """
    Bidirectional stdio proxy with policy enforcement.

    The process lives as long as the backend: when the backend closes
    its output the client pump is cancelled and the backend's exit code
    is returned.

    Usage:
        proxy = FirewallProxy(
            interceptor=MessageInterceptor(engine),
            backend=SubprocessBackend(command),
            client_input=StdioClientInput(),
            client_output=ClientOutput(await open_stdout_writer()),
        )
        exit_code = await proxy.run()
    """

    def __init__(
        self,
        interceptor: MessageInterceptor,
        backend: BackendChannel,
        client_input: ClientInput,
        client_output: ClientOutput,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
    ):
        """
        Initialize the proxy.

        Args:
            interceptor: Decides the route of each client message.
            backend: Backend channel, not yet started.
            client_input: Source of client bytes.
            client_output: Sink for relayed output and replies.
            read_chunk_size: Maximum bytes per read from either side.
        """
        self.interceptor = interceptor
        self.backend = backend
        self.client_input = client_input
        self.client_output = client_output
        self.read_chunk_size = read_chunk_size

        self._decoder = FrameDecoder()
        self._relayed_bytes = 0
        self._client_closed = False

    async def run(self) -> int:
        """
        Proxy until the backend closes its output.

        Returns:
            The backend's exit code, 0 if it exited without one.
        """
        await self.backend.start()

        pump = asyncio.create_task(self._proxy_client_to_backend())
        relay = asyncio.create_task(self._proxy_backend_to_client())

        try:
            await relay
        finally:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
            await self._close_client_output()

        exit_code = await self.backend.wait()

        logger.info(
            "firewall_proxy_stopped",
            exit_code=exit_code,
            relayed_bytes=self._relayed_bytes,
            **self.interceptor.stats,
        )
        return 0 if exit_code is None else exit_code

    async def _proxy_client_to_backend(self) -> None:
        """Frame, filter and forward client messages in arrival order."""
        try:
            while not self._client_closed:
                chunk = await self.client_input.read(self.read_chunk_size)
                if not chunk:
                    logger.info("client_input_closed")
                    self._decoder.finish()
                    break

                for line in self._decoder.feed(chunk):
                    if self._client_closed:
                        break
                    await self._route(line)

            await self.backend.close_input()

        except (BrokenPipeError, ConnectionResetError) as e:
            logger.error("backend_input_failed", error=str(e))

    async def _route(self, line: str) -> None:
        """
        Forward one client message or answer it directly.

        Raises:
            BrokenPipeError: If the backend no longer accepts input.
        """
        result = self.interceptor.process(line)
        if result.route == Route.FORWARD:
            await self.backend.write_line(result.payload)
            return

        try:
            await self.client_output.reply(result.payload)
        except ConnectionError as e:
            self._client_gone(e)

    async def _proxy_backend_to_client(self) -> None:
        """Relay backend output to the client byte for byte."""
        while True:
            data = await self.backend.read(self.read_chunk_size)
            if not data:
                break
            if self._client_closed:
                # Keep reading so the backend never blocks on a full pipe
                continue

            self._relayed_bytes += len(data)
            try:
                await self.client_output.relay(data)
            except ConnectionError as e:
                self._client_gone(e)
                # Nobody is left to serve; let the backend wind down
                with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                    await self.backend.close_input()

        logger.info("backend_output_closed")

    async def _close_client_output(self) -> None:
        if self._client_closed:
            return
        try:
            await self.client_output.close()
        except ConnectionError as e:
            self._client_gone(e)

    def _client_gone(self, error: Exception) -> None:
        if not self._client_closed:
            logger.warning("client_output_failed", error=str(error))
        self._client_closed = True
