"""USB receipt printer transport.

Devices are reached through a ``UsbHost``: the host only exposes devices the
tenant previously granted, and asks for permission before granting new ones.
A send holds the device exclusively for the whole
open -> configure -> claim -> transfer -> release -> close cycle.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from tillprint.db.models import PrinterType
from tillprint.printing.errors import (
    InvalidDeviceAddress,
    NoDeviceSelected,
    NoOutputEndpoint,
    PermissionDenied,
    PrintingError,
    UsbTransferError,
)
from tillprint.printing.schemas import USBDeviceDescriptor, UsbDeviceFilter

logger = logging.getLogger(__name__)

USB_ADDRESS_PATTERN = re.compile(r"USB(\d+)")
PRINTER_CLASS_CODE = 7
DEFAULT_CONFIGURATION = 1
PRINTER_INTERFACE = 0


def parse_usb_address(device_address: str) -> int:
    """Decode a "USB<vendorId>" address.

    Args:
        device_address: Stored device address.

    Returns:
        int: Decimal vendor ID.

    Raises:
        InvalidDeviceAddress: If the address does not contain a vendor ID.
    """
    match = USB_ADDRESS_PATTERN.fullmatch(device_address.strip())
    if not match:
        raise InvalidDeviceAddress()
    return int(match.group(1))


def usb_device_address(vendor_id: int) -> str:
    """Stable address stored in printer configurations."""
    return f"USB{vendor_id}"


# ============================================================================
# Permission results
# ============================================================================


@dataclass(frozen=True)
class Granted:
    """The user picked a device and the host granted access."""

    device: USBDeviceDescriptor


@dataclass(frozen=True)
class Denied:
    """The host refused access."""

    reason: str | None = None


@dataclass(frozen=True)
class Dismissed:
    """The prompt closed without a device being chosen."""


PermissionResult = Granted | Denied | Dismissed


# ============================================================================
# Host interfaces
# ============================================================================


class UsbDevice(Protocol):
    """A host-granted USB device handle."""

    vendor_id: int
    product_id: int

    def describe(self) -> USBDeviceDescriptor: ...

    @property
    def configuration(self) -> int | None:
        """Active configuration value, None when unset."""
        ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def select_configuration(self, value: int) -> None: ...

    async def claim_interface(self, interface: int) -> None: ...

    async def release_interface(self, interface: int) -> None: ...

    def out_endpoint(self, interface: int) -> int | None:
        """Address of the first OUT endpoint of the interface, if any."""
        ...

    async def transfer_out(self, endpoint: int, data: bytes) -> int: ...


class UsbHost(Protocol):
    """Access to the USB devices of the machine running the service."""

    async def get_devices(self) -> list[UsbDevice]:
        """Devices previously granted. Never prompts."""
        ...

    async def request_device(self, filters: list[UsbDeviceFilter]) -> PermissionResult:
        """Ask for access to a device matching any of the filters."""
        ...


# ============================================================================
# Device handle lifecycle
# ============================================================================


class HandleState(str, enum.Enum):
    """Lifecycle of a device handle during one send."""

    CLOSED = "closed"
    OPEN = "open"
    CONFIGURATION_SELECTED = "configuration_selected"
    INTERFACE_CLAIMED = "interface_claimed"
    TRANSFERRED = "transferred"
    INTERFACE_RELEASED = "interface_released"


class UsbHandle:
    """Exclusive, scoped use of a USB device.

    Entering opens the device, selects a configuration when none is set and
    claims the interface. Exiting releases the interface and closes the
    device on every path, including failed transfers. A release or close
    failure never replaces an error that is already propagating.
    """

    def __init__(self, device: UsbDevice, interface: int = PRINTER_INTERFACE):
        self.device = device
        self.interface = interface
        self.state = HandleState.CLOSED

    async def __aenter__(self) -> "UsbHandle":
        await self.device.open()
        self.state = HandleState.OPEN
        try:
            if self.device.configuration is None:
                await self.device.select_configuration(DEFAULT_CONFIGURATION)
            self.state = HandleState.CONFIGURATION_SELECTED
            await self.device.claim_interface(self.interface)
            self.state = HandleState.INTERFACE_CLAIMED
        except BaseException as exc:
            await self._close(exc)
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            await self.device.release_interface(self.interface)
            self.state = HandleState.INTERFACE_RELEASED
        except Exception as release_error:
            if exc is None:
                await self._close(release_error)
                raise
            logger.warning(f"Failed to release USB interface {self.interface}: {release_error}")
        await self._close(exc)
        return False

    async def _close(self, pending: BaseException | None) -> None:
        try:
            await self.device.close()
        except Exception as close_error:
            if pending is None:
                raise
            logger.warning(f"Failed to close USB device: {close_error}")
        finally:
            self.state = HandleState.CLOSED

    async def transfer(self, data: bytes) -> int:
        """Bulk-transfer data to the first OUT endpoint.

        Raises:
            NoOutputEndpoint: If the interface has no OUT endpoint.
        """
        endpoint = self.device.out_endpoint(self.interface)
        if endpoint is None:
            raise NoOutputEndpoint()
        written = await self.device.transfer_out(endpoint, data)
        self.state = HandleState.TRANSFERRED
        return written


# ============================================================================
# Host-level operations
# ============================================================================


async def list_granted_devices(host: UsbHost) -> list[USBDeviceDescriptor]:
    """Describe all devices the host has already granted.

    Args:
        host: USB host.

    Returns:
        list[USBDeviceDescriptor]: Granted devices.
    """
    return [device.describe() for device in await host.get_devices()]


async def request_device(
    host: UsbHost, filters: list[UsbDeviceFilter] | None = None
) -> USBDeviceDescriptor:
    """Ask the host for access to a printer.

    Args:
        host: USB host.
        filters: Device filters (default: any printer-class device).

    Returns:
        USBDeviceDescriptor: The granted device.

    Raises:
        NoDeviceSelected: If the request was dismissed.
        PermissionDenied: If access was refused.
    """
    result = await host.request_device(filters or [UsbDeviceFilter(class_code=PRINTER_CLASS_CODE)])
    if isinstance(result, Granted):
        logger.info(f"USB access granted for {result.device.device_address}")
        return result.device
    if isinstance(result, Dismissed):
        raise NoDeviceSelected()
    logger.warning(f"USB access denied: {result.reason}")
    raise PermissionDenied()


class UsbTransport:
    """Transport for a printer attached over USB."""

    printer_type = PrinterType.USB

    def __init__(self, host: UsbHost, device_address: str, interface: int = PRINTER_INTERFACE):
        """Initialize USB transport.

        Args:
            host: USB host used to find and open the device.
            device_address: "USB<vendorId>" address.
            interface: Interface number to claim.
        """
        self.host = host
        self.device_address = device_address
        self.interface = interface

    async def _find_granted(self, vendor_id: int) -> UsbDevice | None:
        for device in await self.host.get_devices():
            if device.vendor_id == vendor_id:
                return device
        return None

    async def _resolve_device(self, vendor_id: int) -> UsbDevice:
        """Find the granted device, asking for access when it is missing."""
        device = await self._find_granted(vendor_id)
        if device is None:
            await request_device(self.host, [UsbDeviceFilter(vendor_id=vendor_id)])
            device = await self._find_granted(vendor_id)
        if device is None:
            raise NoDeviceSelected(
                "Printer not found. Please make sure the printer is connected "
                "and select it from the device list."
            )
        return device

    async def probe(self) -> bool:
        """Make sure the device is granted and can be opened.

        Raises:
            InvalidDeviceAddress: If the address is malformed.
            DevicePermissionError: If access was not granted.
        """
        vendor_id = parse_usb_address(self.device_address)
        device = await self._resolve_device(vendor_id)
        try:
            await device.open()
        except (PrintingError, OSError) as e:
            logger.warning(f"USB printer {self.device_address} could not be opened: {e}")
            return False
        try:
            await device.close()
        except (PrintingError, OSError) as e:
            logger.warning(f"USB printer {self.device_address} did not close cleanly: {e}")
        return True

    async def send(self, data: bytes) -> None:
        """Send bytes to the device.

        Raises:
            InvalidDeviceAddress: If the address is malformed.
            DevicePermissionError: If access was not granted.
            NoOutputEndpoint: If the printer has no OUT endpoint.
            UsbTransferError: If the device failed during the cycle.
        """
        vendor_id = parse_usb_address(self.device_address)
        device = await self._resolve_device(vendor_id)
        try:
            async with UsbHandle(device, self.interface) as handle:
                written = await handle.transfer(data)
        except PrintingError:
            raise
        except OSError as e:
            raise UsbTransferError() from e

        logger.info(f"Sent {written} bytes to USB printer {self.device_address}")

    async def release(self) -> None:
        """Nothing is held between sends; handles close at the end of each send."""
        return None
