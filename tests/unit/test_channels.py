"""
Tests for Client Channels
"""

import asyncio

import pytest

from mcpfirewall.proxy.channels import ClientOutput


DENIAL = b'{"jsonrpc":"2.0","id":9,"error":{"code":-32000,"message":"x"}}\n'


class TestClientOutput:
    """Test suite for framing-safe client writes."""

    @pytest.fixture
    def sink(self, writer_factory):
        return writer_factory()

    @pytest.fixture
    def output(self, sink):
        return ClientOutput(sink)

    def test_relay_is_verbatim(self, output, sink):
        """Test that backend bytes pass through unchanged."""
        async def scenario():
            await output.relay(b'{"id":1,')
            await output.relay(b'"result":{}}\n')

        asyncio.run(scenario())
        assert sink.getvalue() == b'{"id":1,"result":{}}\n'

    def test_reply_at_boundary_written_immediately(self, output, sink):
        """Test that replies go out at once when no backend message is open."""
        async def scenario():
            await output.relay(b'{"id":1}\n')
            await output.reply(DENIAL)

        asyncio.run(scenario())
        assert sink.getvalue() == b'{"id":1}\n' + DENIAL
        assert output.pending_replies == 0

    def test_reply_waits_for_backend_message(self, output, sink):
        """Test that a reply never lands inside a partial backend message."""
        async def first_half():
            await output.relay(b'{"id":1,"res')
            await output.reply(DENIAL)

        asyncio.run(first_half())

        assert output.at_boundary is False
        assert output.pending_replies == 1
        assert sink.getvalue() == b'{"id":1,"res'

        asyncio.run(output.relay(b'ult":{}}\n{"id":2,'))

        assert sink.getvalue() == (
            b'{"id":1,"result":{}}\n' + DENIAL + b'{"id":2,'
        )
        assert output.pending_replies == 0
        assert output.at_boundary is False

    def test_close_flushes_pending_on_new_line(self, output, sink):
        """Test that queued replies are flushed when the backend stops mid-line."""
        async def scenario():
            await output.relay(b'{"trunc')
            await output.reply(DENIAL)
            await output.close()

        asyncio.run(scenario())
        assert sink.getvalue() == b'{"trunc\n' + DENIAL

    def test_close_without_pending(self, output, sink):
        """Test that close adds nothing when no replies are queued."""
        async def scenario():
            await output.relay(b"partial")
            await output.close()

        asyncio.run(scenario())
        assert sink.getvalue() == b"partial"

    def test_empty_relay_ignored(self, output, sink):
        """Test that an empty chunk changes nothing."""
        asyncio.run(output.relay(b""))
        assert output.at_boundary is True
        assert sink.getvalue() == b""

    def test_closed_client_raises(self, writer_factory):
        """Test that a write to a closed client surfaces as a connection error."""
        output = ClientOutput(writer_factory(broken=True))

        with pytest.raises(ConnectionError):
            asyncio.run(output.reply(DENIAL))
        with pytest.raises(ConnectionError):
            asyncio.run(output.relay(b'{"id":1}\n'))
