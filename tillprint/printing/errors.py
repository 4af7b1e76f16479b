"""Printing error hierarchy.

Every error carries a message that can be shown to the cashier as-is.
Raw pyusb/httpx exceptions are chained as ``__cause__`` and never raised
from the printer controller.
"""

RECEIPT_SAVED_HINT = (
    "Receipt data has been saved and can be printed manually from the print history."
)


class PrintingError(Exception):
    """Base class for receipt printing failures."""

    default_message = "Printing failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ============================================================================
# Configuration errors (rejected before any I/O)
# ============================================================================


class ConfigurationError(PrintingError):
    """Invalid printer configuration."""

    default_message = "Invalid printer configuration."


class InvalidDeviceAddress(ConfigurationError):
    """USB device address does not decode to a vendor ID."""

    default_message = (
        "Invalid USB device address format. Please select a device from the list."
    )


class InvalidAddressFormat(ConfigurationError):
    """Network address is not a valid IPv4:port pair."""

    default_message = "Invalid network address format. Use IP:PORT (e.g., 192.168.1.100:9100)"


# ============================================================================
# Device permission errors
# ============================================================================


class DevicePermissionError(PrintingError):
    """The host did not grant access to a USB device."""

    default_message = "Permission denied. Please allow access to the printer when prompted."


class NoDeviceSelected(DevicePermissionError):
    """The permission prompt was dismissed without choosing a device."""

    default_message = "No device selected. Please select a printer from the device list."


class PermissionDenied(DevicePermissionError):
    """Access to the device was refused."""


# ============================================================================
# Transport errors
# ============================================================================


class TransportError(PrintingError):
    """Delivering bytes to the printer failed."""

    default_message = "Failed to send data to the printer."


class UsbUnavailable(TransportError):
    """No USB backend (libusb) is available on this host."""

    default_message = (
        "USB printing is not available on this host. Install libusb or use a network printer."
    )


class NoOutputEndpoint(TransportError):
    """The claimed interface has no OUT endpoint."""

    default_message = "No output endpoint found on printer."


class UsbTransferError(TransportError):
    """Opening, claiming or writing to the USB device failed."""

    default_message = "USB printer communication failed. Please check the connection and try again."


class NetworkTransportError(TransportError):
    """Network delivery failed."""

    default_message = "Network printer connection failed. " + RECEIPT_SAVED_HINT


class UnverifiableDeliveryError(NetworkTransportError):
    """Bytes were sent without a way to confirm the printer received them.

    Reported as a failure even though the receipt may have printed.
    """

    default_message = (
        "Network printing requires a backend service or the printer must support "
        "HTTP printing. " + RECEIPT_SAVED_HINT
    )


# ============================================================================
# Controller errors
# ============================================================================


class PrinterNotConnectedError(PrintingError):
    """No active configuration, or the configured device is not detected."""

    default_message = (
        "Printer is not connected. Please connect a printer first from Printer Manager."
    )


class OrderNotFoundError(PrintingError):
    """The order or return to print does not exist for this tenant."""

    default_message = "Order not found."
