"""Raw TCP forwarding for network printers (port 9100 style)."""

import asyncio
import logging

from tillprint.printing.errors import RECEIPT_SAVED_HINT, NetworkTransportError
from tillprint.printing.transports.network import parse_network_address

logger = logging.getLogger(__name__)


async def forward_to_printer(address: str, data: bytes, timeout: float = 10.0) -> int:
    """Write bytes to a printer's raw socket.

    Args:
        address: "a.b.c.d:port" address.
        data: Bytes to write.
        timeout: Connect and write timeout in seconds.

    Returns:
        int: Number of bytes written.

    Raises:
        InvalidAddressFormat: If the address is malformed.
        NetworkTransportError: If the printer could not be reached.
    """
    ip, port = parse_network_address(address)

    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.error(f"Could not connect to printer {ip}:{port}: {e}")
        raise NetworkTransportError(
            f"Could not connect to printer at {ip}:{port}. " + RECEIPT_SAVED_HINT
        ) from e

    try:
        writer.write(data)
        await asyncio.wait_for(writer.drain(), timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.error(f"Failed sending {len(data)} bytes to {ip}:{port}: {e}")
        raise NetworkTransportError(
            f"Failed to send data to printer at {ip}:{port}. " + RECEIPT_SAVED_HINT
        ) from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing connection to {ip}:{port}: {e}")

    logger.info(f"Forwarded {len(data)} bytes to {ip}:{port}")
    return len(data)
