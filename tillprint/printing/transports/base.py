"""Transport interface shared by USB and network printers."""

from typing import Protocol, runtime_checkable

from tillprint.db.models import PrinterType


@runtime_checkable
class Transport(Protocol):
    """Protocol defining how encoded receipts reach a printer.

    A transport is bound to one configured device address. The printer
    controller depends only on this protocol.
    """

    printer_type: PrinterType
    device_address: str

    async def probe(self) -> bool:
        """Check whether the printer looks reachable.

        Returns:
            bool: True if the device responded or could be opened.

        Raises:
            DevicePermissionError: If the host refused access to a USB device.
        """
        ...

    async def send(self, data: bytes) -> None:
        """Deliver an encoded receipt.

        Args:
            data: ESC/POS byte stream.

        Raises:
            ConfigurationError: If the device address is malformed.
            TransportError: If delivery failed or cannot be verified.
        """
        ...

    async def release(self) -> None:
        """Drop any resources held between sends."""
        ...
