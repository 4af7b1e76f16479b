"""Printer API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from tillprint.config import Settings, get_settings
from tillprint.dependencies import (
    CurrentTenantId,
    CurrentUserId,
    get_db,
    get_device_locks,
    get_in_flight,
)
from tillprint.printing.concurrency import DeviceLocks, InFlightRequests
from tillprint.printing.controller import PrinterController, get_printer_controller
from tillprint.printing.errors import (
    ConfigurationError,
    DevicePermissionError,
    OrderNotFoundError,
    PrinterNotConnectedError,
    PrintingError,
    TransportError,
)
from tillprint.printing.proxy import forward_to_printer
from tillprint.printing.schemas import (
    DeviceListResponse,
    DeviceRequestResponse,
    InitializeResponse,
    PrinterConfigCreate,
    PrinterStatusResponse,
    PrintHistoryResponse,
    PrintJobResponse,
    PrintResultResponse,
    ProxyPrintRequest,
    ProxyPrintResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
proxy_router = APIRouter()


def get_controller(
    db: Annotated[Session, Depends(get_db)],
    tenant_id: CurrentTenantId,
    user_id: CurrentUserId,
    in_flight: Annotated[InFlightRequests, Depends(get_in_flight)],
    device_locks: Annotated[DeviceLocks, Depends(get_device_locks)],
) -> PrinterController:
    """Get printer controller dependency."""
    return get_printer_controller(
        db, tenant_id, user_id, in_flight=in_flight, device_locks=device_locks
    )


Controller = Annotated[PrinterController, Depends(get_controller)]


def to_http_error(error: PrintingError) -> HTTPException:
    """Map a printing error to an HTTP error carrying its user-facing message."""
    if isinstance(error, ConfigurationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, OrderNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, PrinterNotConnectedError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, DevicePermissionError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, TransportError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.message)


@router.post("/initialize", response_model=InitializeResponse)
async def initialize_printer(data: PrinterConfigCreate, controller: Controller):
    """Connect a printer and save it as the tenant's active printer.

    Args:
        data: Printer type, device address and options.
        controller: Printer controller.

    Returns:
        InitializeResponse: Saved configuration and probe outcome.
    """
    try:
        return await controller.initialize(data)
    except PrintingError as e:
        raise to_http_error(e) from e


@router.get("/status", response_model=PrinterStatusResponse)
async def get_printer_status(controller: Controller):
    """Get the tenant's printer status."""
    return await controller.get_status()


@router.get("/devices", response_model=DeviceListResponse)
async def list_devices(controller: Controller):
    """List USB printers already granted on this host."""
    return await controller.get_devices()


@router.post("/devices/request", response_model=DeviceRequestResponse)
async def request_device(controller: Controller):
    """Request access to a printer-class USB device.

    Returns:
        DeviceRequestResponse: The granted device.

    Raises:
        HTTPException: 403 if no device was selected or access was refused.
    """
    try:
        device = await controller.request_usb_device()
    except PrintingError as e:
        raise to_http_error(e) from e
    return DeviceRequestResponse(device=device)


@router.post("/test", response_model=PrintResultResponse)
async def test_printer(controller: Controller):
    """Send a short test print to the connected printer."""
    try:
        return await controller.test()
    except PrintingError as e:
        raise to_http_error(e) from e


@router.post("/test-page", response_model=PrintResultResponse)
async def print_test_page(controller: Controller):
    """Print a sample receipt."""
    try:
        return await controller.print_test_page()
    except PrintingError as e:
        raise to_http_error(e) from e


@router.post("/receipts/{order_id}", response_model=PrintResultResponse)
async def print_receipt(order_id: str, controller: Controller):
    """Print the receipt for an order.

    Args:
        order_id: Order UUID.
        controller: Printer controller.

    Returns:
        PrintResultResponse: Result with the printed receipt text.

    Raises:
        HTTPException: 404 if the order is missing, 409 if no printer is
            connected, 502 if delivery failed.
    """
    try:
        return await controller.print_receipt(order_id)
    except PrintingError as e:
        raise to_http_error(e) from e


@router.post("/returns/{return_id}", response_model=PrintResultResponse)
async def print_return_receipt(return_id: str, controller: Controller):
    """Print the receipt for a refund order."""
    try:
        return await controller.print_return_receipt(return_id)
    except PrintingError as e:
        raise to_http_error(e) from e


@router.post("/disconnect")
async def disconnect_printer(controller: Controller):
    """Disconnect the tenant's printer.

    Returns:
        dict: Confirmation message.
    """
    controller.disconnect()
    return {"message": "Printer disconnected successfully", "is_connected": False}


@router.get("/history", response_model=PrintHistoryResponse)
async def get_print_history(
    controller: Controller,
    limit: int | None = Query(None, description="Maximum records (clamped to 1-100)"),
):
    """Get the tenant's print job history, newest first."""
    jobs = controller.get_print_history(limit)
    return PrintHistoryResponse(
        history=[PrintJobResponse.model_validate(job) for job in jobs],
        count=len(jobs),
    )


@proxy_router.post("", response_model=ProxyPrintResponse)
async def proxy_print(
    data: ProxyPrintRequest,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Forward raw print bytes to a network printer's socket.

    Args:
        data: Printer address and bytes.
        settings: Application settings.

    Returns:
        ProxyPrintResponse: Bytes forwarded.

    Raises:
        HTTPException: 400 for a bad address or payload, 502 if the printer
            could not be reached.
    """
    try:
        payload = data.payload()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Print data must be a list of byte values (0-255).",
        ) from e

    try:
        sent = await forward_to_printer(
            data.address, payload, timeout=settings.proxy_socket_timeout_seconds
        )
    except PrintingError as e:
        raise to_http_error(e) from e

    return ProxyPrintResponse(address=data.address.strip(), bytes_sent=sent)
