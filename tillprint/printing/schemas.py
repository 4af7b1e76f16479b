"""Schemas for receipt printing."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from tillprint.db.models import PrinterType, PrintJobStatus, PrintJobType


class ReceiptType(str, Enum):
    """Kind of receipt, printed on the "Type:" line."""

    SALE = "SALE"
    REFUND = "REFUND"
    RETURN = "RETURN"
    TEST = "TEST"


class ConnectionState(str, Enum):
    """Printer controller connection state."""

    UNCONFIGURED = "unconfigured"
    CONFIGURED_NOT_DETECTED = "configured_not_detected"
    CONNECTED = "connected"


# ============================================================================
# Receipt Schemas
# ============================================================================


class ReceiptItem(BaseModel):
    """One line item on a receipt."""

    name: str
    quantity: int
    unit_price: float
    line_total: float


class ReceiptData(BaseModel):
    """Order or return data a receipt is built from."""

    order_number: str
    date: str
    type: ReceiptType = ReceiptType.SALE
    items: list[ReceiptItem] = Field(default_factory=list)
    subtotal: float
    discount_amount: float = 0.0
    tax: float
    total: float


# ============================================================================
# Device Schemas
# ============================================================================


class USBDeviceDescriptor(BaseModel):
    """A USB device visible to the host.

    ``device_address`` is "USB" followed by the decimal vendor ID and is what
    printer configurations store.
    """

    vendor_id: int
    product_id: int
    manufacturer: str = "Unknown Manufacturer"
    product: str = "USB Printer"
    serial_number: str = "N/A"
    device_address: str

    model_config = {"frozen": True}


class UsbDeviceFilter(BaseModel):
    """Filter passed to a USB permission request."""

    vendor_id: int | None = None
    product_id: int | None = None
    class_code: int | None = None

    model_config = {"frozen": True}


class DeviceListResponse(BaseModel):
    """Schema for the granted USB device list."""

    devices: list[USBDeviceDescriptor]
    count: int
    message: str | None = None
    needs_permission: bool = False


class DeviceRequestResponse(BaseModel):
    """Schema for a granted USB permission request."""

    device: USBDeviceDescriptor
    message: str = "Device access granted. You can now connect this printer."


# ============================================================================
# Printer Configuration Schemas
# ============================================================================


class PrinterConfigCreate(BaseModel):
    """Schema for initializing (connecting) a printer."""

    type: PrinterType = PrinterType.USB
    device: str | None = Field(None, description="USB<vendorId> or IP:PORT")
    name: str | None = Field(None, max_length=100, description="Display name")
    options: dict = Field(default_factory=dict)


class PrinterConfigResponse(BaseModel):
    """Schema for a stored printer configuration."""

    id: str
    tenant_id: str
    printer_type: PrinterType
    device_address: str
    printer_name: str
    is_active: bool
    config_options: dict | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class InitializeResponse(BaseModel):
    """Result of initializing a printer.

    The configuration is saved even when the connectivity probe fails.
    """

    message: str
    config: PrinterConfigResponse
    is_connected: bool
    database_id: str
    error: str | None = None


class PrinterStatusResponse(BaseModel):
    """Schema for printer connection status."""

    is_connected: bool
    state: ConnectionState
    status: Literal["Ready", "Disconnected"]
    config: PrinterConfigResponse | None = None
    last_connected: datetime | None = None
    detected_devices: int = 0
    message: str | None = None


# ============================================================================
# Print Job Schemas
# ============================================================================


class PrintResultResponse(BaseModel):
    """Schema for a successful print request."""

    message: str
    success: bool = True
    receipt_text: str | None = None
    job_id: str | None = None


class PrintJobResponse(BaseModel):
    """Schema for print job (history) response."""

    id: str
    tenant_id: str
    job_type: PrintJobType
    order_id: str
    printer_config_id: str | None
    status: PrintJobStatus
    receipt_text: str | None = None
    error_message: str | None = None
    printed_at: datetime | None = None
    attempted_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PrintHistoryResponse(BaseModel):
    """Schema for print history."""

    history: list[PrintJobResponse]
    count: int


# ============================================================================
# Print Proxy Schemas
# ============================================================================


class ProxyPrintRequest(BaseModel):
    """Body of POST /api/print sent by network transports."""

    address: str = Field(..., description="IP:PORT of the printer")
    data: list[int] = Field(..., description="Raw bytes as integers 0-255")
    type: Literal["network"] = "network"

    def payload(self) -> bytes:
        """Raw bytes to forward.

        Raises:
            ValueError: If any element is outside 0-255.
        """
        return bytes(self.data)


class ProxyPrintResponse(BaseModel):
    """Result of forwarding a print payload."""

    success: bool = True
    address: str
    bytes_sent: int
