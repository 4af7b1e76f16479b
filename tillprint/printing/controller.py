"""Printer controller: configuration, status, dispatch and job records."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.orm import Session

from tillprint.config import Settings, get_settings
from tillprint.db.models import (
    PrinterConfig,
    PrinterType,
    PrintJob,
    PrintJobStatus,
    PrintJobType,
)
from tillprint.printing.concurrency import DeviceLocks, InFlightRequests
from tillprint.printing.errors import (
    ConfigurationError,
    DevicePermissionError,
    NetworkTransportError,
    OrderNotFoundError,
    PrinterNotConnectedError,
    PrintingError,
    TransportError,
    UsbTransferError,
    UsbUnavailable,
)
from tillprint.printing.escpos import TEST_PRINT, encode_text, render_text
from tillprint.printing.orders import OrderSource, SqlOrderSource
from tillprint.printing.receipt import build_test_receipt_data, format_receipt
from tillprint.printing.schemas import (
    ConnectionState,
    DeviceListResponse,
    InitializeResponse,
    PrinterConfigCreate,
    PrinterConfigResponse,
    PrinterStatusResponse,
    PrintResultResponse,
    ReceiptData,
    USBDeviceDescriptor,
)
from tillprint.printing.transports import get_transport, get_usb_host, validate_device_address
from tillprint.printing.transports.base import Transport
from tillprint.printing.transports.usb import UsbHost, list_granted_devices, request_device

logger = logging.getLogger(__name__)

TransportFactory = Callable[[PrinterType, str], Transport]
ReceiptLoader = Callable[[str], Awaitable[ReceiptData | None]]


class PrinterController:
    """Owns one tenant's receipt printer.

    State is derived from the active configuration:
    UNCONFIGURED (no active row), CONFIGURED_NOT_DETECTED and CONNECTED.
    Every print request writes exactly one print job record, whatever the
    outcome; a failure to write that record is logged and never hides the
    printing error.
    """

    HISTORY_MAX_LIMIT = 100

    def __init__(
        self,
        db: Session,
        tenant_id: str,
        user_id: str | None = None,
        *,
        usb_host: UsbHost | None = None,
        orders: OrderSource | None = None,
        settings: Settings | None = None,
        transport_factory: TransportFactory | None = None,
        device_locks: DeviceLocks | None = None,
        in_flight: InFlightRequests | None = None,
    ):
        """Initialize printer controller.

        Args:
            db: Database session.
            tenant_id: Current tenant ID.
            user_id: Current user ID (optional).
            usb_host: USB host (default: process-wide libusb host, created lazily).
            orders: Order data source (default: orders table).
            settings: Application settings.
            transport_factory: Builds a transport for (printer_type, address).
            device_locks: Per-device send locks shared across requests.
            in_flight: Registry used to coalesce identical print requests.
        """
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.settings = settings or get_settings()
        self.orders = orders or SqlOrderSource(db, tenant_id)
        self.device_locks = device_locks or DeviceLocks()
        self.in_flight = in_flight
        self._usb_host = usb_host
        self._transport_factory = transport_factory or self._default_transport

    @property
    def usb_host(self) -> UsbHost:
        if self._usb_host is None:
            self._usb_host = get_usb_host()
        return self._usb_host

    def _default_transport(self, printer_type: PrinterType, device_address: str) -> Transport:
        usb_host = self.usb_host if printer_type == PrinterType.USB else None
        return get_transport(
            printer_type, device_address, usb_host=usb_host, settings=self.settings
        )

    # ========================================================================
    # Configuration
    # ========================================================================

    def get_active_config(self) -> PrinterConfig | None:
        """Get the tenant's active printer configuration.

        Returns:
            PrinterConfig | None: Active configuration if any.
        """
        return (
            self.db.query(PrinterConfig)
            .filter(PrinterConfig.tenant_id == self.tenant_id, PrinterConfig.is_active.is_(True))
            .order_by(PrinterConfig.created_at.desc())
            .first()
        )

    def _save_active_config(
        self,
        printer_type: PrinterType,
        device_address: str,
        printer_name: str,
        options: dict,
    ) -> PrinterConfig:
        """Store a configuration as the tenant's only active one.

        The current active row is updated in place (re-initialize); any
        other active rows are deactivated and flushed before the row is
        activated, all in one transaction.
        """
        active = (
            self.db.query(PrinterConfig)
            .filter(PrinterConfig.tenant_id == self.tenant_id, PrinterConfig.is_active.is_(True))
            .order_by(PrinterConfig.created_at.desc())
            .with_for_update()
            .all()
        )
        config = active[0] if active else None
        for stale in active[1:]:
            stale.is_active = False
        self.db.flush()

        if config is None:
            config = PrinterConfig(tenant_id=self.tenant_id)
            self.db.add(config)
        else:
            config.updated_at = datetime.utcnow()

        config.user_id = self.user_id
        config.printer_type = printer_type
        config.device_address = device_address
        config.printer_name = printer_name
        config.config_options = options
        config.is_active = True

        self.db.commit()
        self.db.refresh(config)
        return config

    async def initialize(self, data: PrinterConfigCreate) -> InitializeResponse:
        """Validate, probe and save a printer configuration.

        The configuration is saved even when the probe fails, so flaky
        detection never blocks setup; ``is_connected`` reports the probe.

        Args:
            data: Printer type, device address and options.

        Returns:
            InitializeResponse: Saved configuration and probe outcome.

        Raises:
            ConfigurationError: If the device is missing or malformed.
        """
        if not data.device or not data.device.strip():
            raise ConfigurationError(
                "No printer device specified. Please select a USB device or enter network address."
            )
        device_address = validate_device_address(data.type, data.device)

        error = None
        transport = self._transport_factory(data.type, device_address)
        try:
            is_connected = await transport.probe()
        except (DevicePermissionError, TransportError) as e:
            logger.warning(f"Printer probe failed for {device_address}: {e.message}")
            is_connected = False
            error = e.message
        finally:
            await transport.release()

        config = self._save_active_config(
            data.type,
            device_address,
            data.name or f"{data.type.value.upper()} Printer",
            data.options,
        )
        logger.info(
            f"Saved {data.type.value} printer {device_address} for tenant {self.tenant_id} "
            f"(connected={is_connected})"
        )

        return InitializeResponse(
            message="Printer connected successfully"
            if is_connected
            else "Printer configuration saved, but the printer was not detected",
            config=PrinterConfigResponse.model_validate(config),
            is_connected=is_connected,
            database_id=config.id,
            error=error,
        )

    def disconnect(self) -> int:
        """Deactivate the tenant's printer configuration. Idempotent.

        Returns:
            int: Number of configurations deactivated.
        """
        count = (
            self.db.query(PrinterConfig)
            .filter(PrinterConfig.tenant_id == self.tenant_id, PrinterConfig.is_active.is_(True))
            .update({PrinterConfig.is_active: False}, synchronize_session=False)
        )
        self.db.commit()
        if count:
            logger.info(f"Disconnected printer for tenant {self.tenant_id}")
        return count

    # ========================================================================
    # Devices and status
    # ========================================================================

    async def _granted_devices(self) -> list[USBDeviceDescriptor]:
        """Granted USB devices; empty when USB is unusable on this host."""
        try:
            return await list_granted_devices(self.usb_host)
        except PrintingError as e:
            logger.warning(f"USB device enumeration failed: {e.message}")
            return []

    async def _is_connected(self, config: PrinterConfig) -> tuple[bool, int]:
        if config.printer_type == PrinterType.USB:
            devices = await self._granted_devices()
            connected = any(d.device_address == config.device_address for d in devices)
            return connected, len(devices)
        # Network printers are assumed reachable once configured
        return True, 0

    async def get_status(self) -> PrinterStatusResponse:
        """Derive the connection status from the active configuration.

        Returns:
            PrinterStatusResponse: Current status.
        """
        config = self.get_active_config()
        if config is None:
            return PrinterStatusResponse(
                is_connected=False,
                state=ConnectionState.UNCONFIGURED,
                status="Disconnected",
            )

        is_connected, detected = await self._is_connected(config)
        return PrinterStatusResponse(
            is_connected=is_connected,
            state=ConnectionState.CONNECTED
            if is_connected
            else ConnectionState.CONFIGURED_NOT_DETECTED,
            status="Ready" if is_connected else "Disconnected",
            config=PrinterConfigResponse.model_validate(config),
            last_connected=datetime.utcnow() if is_connected else None,
            detected_devices=detected,
            message=None if is_connected else "Printer configured but device not detected",
        )

    async def get_devices(self) -> DeviceListResponse:
        """List USB devices already granted on this host.

        Returns:
            DeviceListResponse: Devices plus a hint when none are usable.
        """
        try:
            devices = await list_granted_devices(self.usb_host)
        except UsbUnavailable as e:
            return DeviceListResponse(devices=[], count=0, message=e.message)

        if not devices:
            return DeviceListResponse(
                devices=[],
                count=0,
                message='No USB printers detected. Click "Request USB Device" '
                "to grant access to your printer.",
                needs_permission=True,
            )
        return DeviceListResponse(devices=devices, count=len(devices))

    async def request_usb_device(self) -> USBDeviceDescriptor:
        """Ask the host for access to a printer-class USB device.

        Raises:
            NoDeviceSelected: If no device was chosen.
            PermissionDenied: If access was refused.
        """
        return await request_device(self.usb_host)

    async def _require_connected(self) -> PrinterConfig:
        config = self.get_active_config()
        if config is None:
            raise PrinterNotConnectedError()
        is_connected, _ = await self._is_connected(config)
        if not is_connected:
            raise PrinterNotConnectedError()
        return config

    # ========================================================================
    # Printing
    # ========================================================================

    async def _dispatch(self, config: PrinterConfig, payload: bytes) -> None:
        """Send bytes to the configured printer, one send per device at a time.

        Raises:
            PrintingError: Transport failures, translated to user-facing errors.
        """
        transport = self._transport_factory(config.printer_type, config.device_address)
        try:
            async with self.device_locks.hold(self.tenant_id, config.device_address):
                await transport.send(payload)
        except PrintingError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error printing to {config.device_address}")
            if config.printer_type == PrinterType.USB:
                raise UsbTransferError() from e
            raise NetworkTransportError() from e
        finally:
            await transport.release()

    def _record_job(
        self,
        job_type: PrintJobType,
        order_id: str,
        status: PrintJobStatus,
        config: PrinterConfig | None = None,
        receipt: ReceiptData | None = None,
        receipt_text: str | None = None,
        error_message: str | None = None,
    ) -> PrintJob | None:
        """Insert the job record for one attempt.

        Returns:
            PrintJob | None: The record, or None if it could not be written.
        """
        now = datetime.utcnow()
        job = PrintJob(
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            job_type=job_type,
            order_id=order_id,
            printer_config_id=config.id if config else None,
            receipt_data=receipt.model_dump(mode="json") if receipt else None,
            receipt_text=receipt_text,
            status=status,
            error_message=error_message,
            printed_at=now if status == PrintJobStatus.COMPLETED else None,
            attempted_at=now if status == PrintJobStatus.FAILED else None,
        )
        try:
            self.db.add(job)
            self.db.commit()
            self.db.refresh(job)
        except Exception as e:
            logger.error(f"Could not record {job_type.value} print job for {order_id}: {e}")
            self.db.rollback()
            return None
        return job

    async def _business_name(self) -> str:
        return await self.orders.get_business_name() or self.settings.default_business_name

    async def _print(
        self,
        job_type: PrintJobType,
        order_id: str,
        load_receipt: ReceiptLoader,
        not_found: str,
        success_message: str,
    ) -> PrintResultResponse:
        order_id = (order_id or "").strip()
        config = None
        receipt = None
        receipt_text = None

        try:
            if not order_id:
                raise OrderNotFoundError(not_found)
            config = await self._require_connected()
            receipt = await load_receipt(order_id)
            if receipt is None:
                raise OrderNotFoundError(not_found)

            document = format_receipt(receipt, await self._business_name())
            receipt_text = render_text(document)
            await self._dispatch(config, encode_text(receipt_text))
        except Exception as exc:
            message = exc.message if isinstance(exc, PrintingError) else str(exc)
            logger.warning(f"{job_type.value} print for {order_id or 'unknown'} failed: {message}")
            self._record_job(
                job_type,
                order_id or "unknown",
                PrintJobStatus.FAILED,
                config=config,
                receipt=receipt,
                receipt_text=receipt_text,
                error_message=message,
            )
            raise

        job = self._record_job(
            job_type,
            order_id,
            PrintJobStatus.COMPLETED,
            config=config,
            receipt=receipt,
            receipt_text=receipt_text,
        )
        return PrintResultResponse(
            message=success_message,
            receipt_text=receipt_text,
            job_id=job.id if job else None,
        )

    async def _coalesced(
        self, job_type: PrintJobType, order_id: str, factory: Callable[[], Awaitable]
    ):
        if self.in_flight is None:
            return await factory()
        key = (self.tenant_id, job_type.value, (order_id or "").strip())
        return await self.in_flight.run(key, factory)

    async def print_receipt(self, order_id: str) -> PrintResultResponse:
        """Print the receipt of a sale.

        Args:
            order_id: Order UUID.

        Returns:
            PrintResultResponse: Result with the printed receipt text.

        Raises:
            PrinterNotConnectedError: If no printer is connected.
            OrderNotFoundError: If the order does not exist.
            TransportError: If delivery failed (the job is logged as failed).
        """
        return await self._coalesced(
            PrintJobType.RECEIPT,
            order_id,
            lambda: self._print(
                PrintJobType.RECEIPT,
                order_id,
                self.orders.get_receipt_data,
                not_found="Order not found.",
                success_message="Receipt printed successfully",
            ),
        )

    async def print_return_receipt(self, return_id: str) -> PrintResultResponse:
        """Print the receipt of a refund order.

        Args:
            return_id: Refund order UUID.

        Returns:
            PrintResultResponse: Result with the printed receipt text.
        """
        return await self._coalesced(
            PrintJobType.RETURN_RECEIPT,
            return_id,
            lambda: self._print(
                PrintJobType.RETURN_RECEIPT,
                return_id,
                self.orders.get_return_receipt_data,
                not_found="Return order not found.",
                success_message="Return receipt printed successfully",
            ),
        )

    async def _test_receipt(self, _order_id: str) -> ReceiptData:
        return build_test_receipt_data()

    async def print_test_page(self) -> PrintResultResponse:
        """Print a sample receipt to check layout and paper.

        Returns:
            PrintResultResponse: Result with the printed receipt text.
        """
        order_id = build_test_receipt_data().order_number
        return await self._coalesced(
            PrintJobType.TEST,
            order_id,
            lambda: self._print(
                PrintJobType.TEST,
                order_id,
                self._test_receipt,
                not_found="Test receipt unavailable.",
                success_message="Test page printed successfully",
            ),
        )

    async def test(self) -> PrintResultResponse:
        """Send a short "TEST PRINT" to check the connection.

        No job record is written.
        """
        config = await self._require_connected()
        await self._dispatch(config, TEST_PRINT)
        return PrintResultResponse(message="Printer test completed successfully")

    # ========================================================================
    # History
    # ========================================================================

    def get_print_history(self, limit: int | None = None) -> list[PrintJob]:
        """List the tenant's print jobs, newest first.

        Args:
            limit: Maximum records (clamped to 1-100).

        Returns:
            list[PrintJob]: Job records.
        """
        if limit is None:
            limit = self.settings.print_history_default_limit
        limit = max(1, min(self.HISTORY_MAX_LIMIT, limit))
        return (
            self.db.query(PrintJob)
            .filter(PrintJob.tenant_id == self.tenant_id)
            .order_by(PrintJob.created_at.desc())
            .limit(limit)
            .all()
        )


def get_printer_controller(
    db: Session, tenant_id: str, user_id: str | None = None, **kwargs
) -> PrinterController:
    """Factory function for PrinterController.

    Args:
        db: Database session.
        tenant_id: Tenant ID.
        user_id: User ID (optional).
        **kwargs: Collaborators passed through to PrinterController.

    Returns:
        PrinterController: Printer controller instance.
    """
    return PrinterController(db, tenant_id, user_id, **kwargs)
