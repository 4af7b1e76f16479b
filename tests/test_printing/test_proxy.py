"""Tests for raw socket forwarding."""

import asyncio

import pytest

from tillprint.printing.errors import InvalidAddressFormat, NetworkTransportError
from tillprint.printing.proxy import forward_to_printer


class TestForwardToPrinter:
    """Tests for forward_to_printer."""

    @pytest.mark.asyncio
    async def test_writes_bytes_to_socket(self):
        """Bytes should arrive unchanged at the printer socket."""
        received = asyncio.get_running_loop().create_future()

        async def handle(reader, writer):
            received.set_result(await reader.read())
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            sent = await forward_to_printer(f"127.0.0.1:{port}", b"\x1b@TEST\n", timeout=2)
            data = await asyncio.wait_for(received, 2)

        assert sent == 7
        assert data == b"\x1b@TEST\n"

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        """An unreachable printer should raise NetworkTransportError."""
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        with pytest.raises(NetworkTransportError) as exc_info:
            await forward_to_printer(f"127.0.0.1:{port}", b"x", timeout=2)

        assert f"127.0.0.1:{port}" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_address(self):
        """Malformed addresses should be rejected before connecting."""
        with pytest.raises(InvalidAddressFormat):
            await forward_to_printer("localhost:9100", b"x")
