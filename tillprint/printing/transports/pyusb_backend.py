"""libusb-backed USB host using pyusb.

There is no interactive permission prompt on a server, so "granting" a
device means recording its vendor/product pair in a JSON allow-list. Only
allow-listed devices are returned by ``get_devices``; ``request_device``
grants the first attached device matching the filters.
"""

import asyncio
import errno
import json
import logging
from pathlib import Path

import usb.core
import usb.util

from tillprint.printing.errors import PermissionDenied, UsbTransferError, UsbUnavailable
from tillprint.printing.schemas import USBDeviceDescriptor, UsbDeviceFilter
from tillprint.printing.transports.usb import (
    Denied,
    Dismissed,
    Granted,
    PermissionResult,
    usb_device_address,
)

logger = logging.getLogger(__name__)

ACCESS_ERRNOS = (errno.EACCES, errno.EPERM)


def _read_string(device, index: int) -> str | None:
    if not index:
        return None
    try:
        return usb.util.get_string(device, index)
    except ValueError as e:
        # pyusb raises ValueError when the language ids cannot be read,
        # which is what happens without read access to the device node.
        logger.debug(f"Cannot read USB string descriptor {index}: {e}")
        return None


def _matches(device, device_filter: UsbDeviceFilter) -> bool:
    """Check a pyusb device against a permission filter.

    Printers usually declare their class on the interface, not the device,
    so the class code is checked on both.
    """
    if device_filter.vendor_id is not None and device.idVendor != device_filter.vendor_id:
        return False
    if device_filter.product_id is not None and device.idProduct != device_filter.product_id:
        return False
    if device_filter.class_code is not None:
        if device.bDeviceClass == device_filter.class_code:
            return True
        return any(
            interface.bInterfaceClass == device_filter.class_code
            for configuration in device
            for interface in configuration
        )
    return True


class PyUsbDevice:
    """Adapter exposing a pyusb device through the ``UsbDevice`` protocol."""

    def __init__(self, device, transfer_timeout_ms: int = 5000):
        """Initialize the adapter.

        Args:
            device: pyusb ``usb.core.Device``.
            transfer_timeout_ms: Bulk write timeout.
        """
        self._device = device
        self._timeout = transfer_timeout_ms
        self._detached: list[int] = []

    @property
    def vendor_id(self) -> int:
        return self._device.idVendor

    @property
    def product_id(self) -> int:
        return self._device.idProduct

    @property
    def device_address(self) -> str:
        return usb_device_address(self.vendor_id)

    def _call(self, action: str, func, *args):
        try:
            return func(*args)
        except usb.core.USBError as e:
            logger.error(f"USB {action} failed on {self.device_address}: {e}")
            if e.errno in ACCESS_ERRNOS:
                raise PermissionDenied() from e
            raise UsbTransferError() from e

    async def _run(self, action: str, func, *args):
        """Run a blocking libusb call in a worker thread."""
        return await asyncio.to_thread(self._call, action, func, *args)

    def describe(self) -> USBDeviceDescriptor:
        """Read the descriptor strings of the device."""
        manufacturer = self._call(
            "read manufacturer", _read_string, self._device, self._device.iManufacturer
        )
        product = self._call("read product", _read_string, self._device, self._device.iProduct)
        serial = self._call("read serial", _read_string, self._device, self._device.iSerialNumber)
        return USBDeviceDescriptor(
            vendor_id=self.vendor_id,
            product_id=self.product_id,
            manufacturer=manufacturer or "Unknown Manufacturer",
            product=product or "USB Printer",
            serial_number=serial or "N/A",
            device_address=self.device_address,
        )

    @property
    def configuration(self) -> int | None:
        try:
            return self._device.get_active_configuration().bConfigurationValue
        except usb.core.USBError:
            return None

    async def open(self) -> None:
        # libusb opens lazily; detaching the kernel printer driver is what
        # makes the interface claimable on Linux.
        try:
            active = await self._run("query kernel driver", self._device.is_kernel_driver_active, 0)
        except NotImplementedError:
            return  # Windows and macOS backends have no kernel driver API
        if active:
            await self._run("detach kernel driver", self._device.detach_kernel_driver, 0)
            self._detached.append(0)

    async def close(self) -> None:
        await self._run("close", usb.util.dispose_resources, self._device)
        while self._detached:
            interface = self._detached.pop()
            try:
                await asyncio.to_thread(self._device.attach_kernel_driver, interface)
            except (NotImplementedError, usb.core.USBError) as e:
                logger.warning(f"Could not reattach kernel driver on {self.device_address}: {e}")

    async def select_configuration(self, value: int) -> None:
        await self._run("set configuration", self._device.set_configuration, value)

    async def claim_interface(self, interface: int) -> None:
        await self._run("claim interface", usb.util.claim_interface, self._device, interface)

    async def release_interface(self, interface: int) -> None:
        await self._run("release interface", usb.util.release_interface, self._device, interface)

    def out_endpoint(self, interface: int) -> int | None:
        configuration = self._call("read configuration", self._device.get_active_configuration)
        setting = configuration[(interface, 0)]
        endpoint = usb.util.find_descriptor(
            setting,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress)
            == usb.util.ENDPOINT_OUT,
        )
        return endpoint.bEndpointAddress if endpoint is not None else None

    async def transfer_out(self, endpoint: int, data: bytes) -> int:
        return await self._run("bulk write", self._device.write, endpoint, data, self._timeout)


class PyUsbHost:
    """USB host backed by libusb with a persisted allow-list of grants."""

    def __init__(self, grants_file: Path, transfer_timeout_ms: int = 5000, backend=None):
        """Initialize the host.

        Args:
            grants_file: JSON file storing granted (vendor_id, product_id) pairs.
            transfer_timeout_ms: Bulk write timeout for opened devices.
            backend: Optional pyusb backend (default: auto-detected libusb).
        """
        self.grants_file = Path(grants_file)
        self.transfer_timeout_ms = transfer_timeout_ms
        self._backend = backend
        self._grants = self._load_grants()

    def _load_grants(self) -> set[tuple[int, int]]:
        if not self.grants_file.exists():
            return set()
        try:
            with open(self.grants_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable USB grants file {self.grants_file}: {e}")
            return set()
        return {(entry["vendor_id"], entry["product_id"]) for entry in data.get("grants", [])}

    def _save_grants(self) -> None:
        self.grants_file.parent.mkdir(parents=True, exist_ok=True)
        grants = [
            {"vendor_id": vendor_id, "product_id": product_id}
            for vendor_id, product_id in sorted(self._grants)
        ]
        with open(self.grants_file, "w") as f:
            json.dump({"grants": grants}, f, indent=2)

    def _attached(self) -> list:
        try:
            return list(usb.core.find(find_all=True, backend=self._backend))
        except usb.core.NoBackendError as e:
            raise UsbUnavailable() from e

    def _wrap(self, device) -> PyUsbDevice:
        return PyUsbDevice(device, transfer_timeout_ms=self.transfer_timeout_ms)

    async def get_devices(self) -> list[PyUsbDevice]:
        return [
            self._wrap(device)
            for device in self._attached()
            if (device.idVendor, device.idProduct) in self._grants
        ]

    async def request_device(self, filters: list[UsbDeviceFilter]) -> PermissionResult:
        candidates = [
            device for device in self._attached() if any(_matches(device, f) for f in filters)
        ]
        if not candidates:
            return Dismissed()

        device = self._wrap(candidates[0])
        try:
            descriptor = device.describe()
        except (PermissionDenied, UsbTransferError) as e:
            return Denied(reason=str(e.__cause__ or e))

        self._grants.add((device.vendor_id, device.product_id))
        self._save_grants()
        return Granted(device=descriptor)

