"""Network receipt printer transport.

Delivery goes through the backend print proxy when one is configured; that
is the only path with a verifiable outcome. Without a proxy the bytes are
posted straight to the printer's HTTP port, but the outcome cannot be
confirmed, so the attempt is always reported as failed.
"""

import logging
import re

import httpx

from tillprint.db.models import PrinterType
from tillprint.printing.errors import (
    RECEIPT_SAVED_HINT,
    InvalidAddressFormat,
    NetworkTransportError,
    UnverifiableDeliveryError,
)

logger = logging.getLogger(__name__)

NETWORK_ADDRESS_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}:\d+$")
PREVIEW_BYTES = 100


def parse_network_address(address: str) -> tuple[str, int]:
    """Validate and split an "a.b.c.d:port" address.

    Args:
        address: Network address.

    Returns:
        tuple[str, int]: IP address and port.

    Raises:
        InvalidAddressFormat: If the format, an octet or the port is invalid.
    """
    address = address.strip()
    if not NETWORK_ADDRESS_PATTERN.match(address):
        raise InvalidAddressFormat()

    ip, port = address.split(":")
    if any(int(octet) > 255 for octet in ip.split(".")):
        raise InvalidAddressFormat("Invalid IP address format.")

    port_number = int(port)
    if not 1 <= port_number <= 65535:
        raise InvalidAddressFormat("Invalid port number. Must be between 1 and 65535.")

    return ip, port_number


class NetworkTransport:
    """Transport for a printer reachable by IP address."""

    printer_type = PrinterType.NETWORK

    def __init__(
        self,
        device_address: str,
        proxy_url: str | None = None,
        probe_timeout: float = 3.0,
        send_timeout: float = 5.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize network transport.

        Args:
            device_address: "a.b.c.d:port" address.
            proxy_url: Base URL of the backend print proxy (None = direct).
            probe_timeout: Timeout for connectivity probes in seconds.
            send_timeout: Timeout for direct delivery in seconds.
            http_transport: Optional httpx transport (used by tests).
        """
        self.device_address = device_address
        self.proxy_url = proxy_url.rstrip("/") if proxy_url else None
        self.probe_timeout = probe_timeout
        self.send_timeout = send_timeout
        self._http_transport = http_transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._http_transport)

    async def probe(self) -> bool:
        """Best-effort reachability check; never raises for I/O failures.

        Raises:
            InvalidAddressFormat: If the address is malformed.
        """
        ip, port = parse_network_address(self.device_address)
        try:
            async with self._client(self.probe_timeout) as client:
                await client.get(f"http://{ip}:{port}/")
        except httpx.HTTPError as e:
            logger.warning(
                f"Network printer connection test failed for {ip}:{port}, "
                f"configuration will be saved: {e}"
            )
            return False
        return True

    async def send(self, data: bytes) -> None:
        """Deliver bytes through the proxy, or directly when there is none.

        Raises:
            InvalidAddressFormat: If the address is malformed.
            NetworkTransportError: If the proxy rejected or could not be reached.
            UnverifiableDeliveryError: If no proxy is configured.
        """
        ip, port = parse_network_address(self.device_address)
        address = f"{ip}:{port}"

        if self.proxy_url:
            await self._send_via_proxy(address, data)
            return

        await self._send_direct(ip, port, data)

    async def _send_via_proxy(self, address: str, data: bytes) -> None:
        payload = {"address": address, "data": list(data), "type": "network"}
        try:
            async with self._client(self.send_timeout) as client:
                response = await client.post(f"{self.proxy_url}/api/print", json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._log_preview(address, data)
            logger.error(f"Print proxy returned {e.response.status_code} for {address}")
            raise NetworkTransportError(
                "Backend print service unavailable. " + RECEIPT_SAVED_HINT
            ) from e
        except httpx.RequestError as e:
            self._log_preview(address, data)
            logger.error(f"Print proxy request failed for {address}: {e}")
            raise NetworkTransportError(
                "Backend print service unreachable. " + RECEIPT_SAVED_HINT
            ) from e

        logger.info(f"Sent {len(data)} bytes to {address} via print proxy")

    async def _send_direct(self, ip: str, port: int, data: bytes) -> None:
        try:
            async with self._client(self.send_timeout) as client:
                await client.post(
                    f"http://{ip}:{port}",
                    content=data,
                    headers={"Content-Type": "application/octet-stream"},
                )
        except httpx.HTTPError as e:
            logger.warning(f"Direct network print to {ip}:{port} failed: {e}")

        self._log_preview(f"{ip}:{port}", data)
        raise UnverifiableDeliveryError()

    def _log_preview(self, address: str, data: bytes) -> None:
        preview = data[:PREVIEW_BYTES].decode("utf-8", errors="replace")
        logger.info(
            f"Network printer print data: address={address} "
            f"data_length={len(data)} data_preview={preview!r}"
        )

    async def release(self) -> None:
        """Clients are opened per request; nothing to release."""
        return None
