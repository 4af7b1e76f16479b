"""Printer transports.

Use get_transport() to build the transport matching a printer configuration.
"""

from functools import lru_cache
from pathlib import Path

from tillprint.config import Settings, get_settings
from tillprint.db.models import PrinterType
from tillprint.printing.transports.base import Transport
from tillprint.printing.transports.network import NetworkTransport, parse_network_address
from tillprint.printing.transports.usb import UsbHost, UsbTransport, parse_usb_address


@lru_cache
def get_usb_host() -> UsbHost:
    """Get the process-wide libusb host.

    Returns:
        UsbHost: pyusb-backed host.
    """
    from tillprint.printing.transports.pyusb_backend import PyUsbHost

    settings = get_settings()
    return PyUsbHost(
        Path(settings.usb_grants_file),
        transfer_timeout_ms=settings.usb_transfer_timeout_ms,
    )


def validate_device_address(printer_type: PrinterType, device_address: str) -> str:
    """Check an address against its printer type before any I/O.

    Returns:
        str: The stripped address.

    Raises:
        ConfigurationError: If the address is malformed for the type.
    """
    device_address = device_address.strip()
    if printer_type == PrinterType.USB:
        parse_usb_address(device_address)
    else:
        parse_network_address(device_address)
    return device_address


def get_transport(
    printer_type: PrinterType,
    device_address: str,
    usb_host: UsbHost | None = None,
    settings: Settings | None = None,
) -> Transport:
    """Factory function that returns the transport for a printer type.

    Args:
        printer_type: USB or network.
        device_address: Configured device address.
        usb_host: USB host (default: process-wide libusb host).
        settings: Application settings (default: cached settings).

    Returns:
        Transport: Transport bound to the address.
    """
    settings = settings or get_settings()

    if printer_type == PrinterType.USB:
        return UsbTransport(usb_host or get_usb_host(), device_address)

    return NetworkTransport(
        device_address,
        proxy_url=settings.print_proxy_url or None,
        probe_timeout=settings.probe_timeout_seconds,
        send_timeout=settings.network_send_timeout_seconds,
    )


__all__ = [
    "NetworkTransport",
    "Transport",
    "UsbTransport",
    "get_transport",
    "get_usb_host",
    "validate_device_address",
]
