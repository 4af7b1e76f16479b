"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from uuid import uuid4

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["PRINT_PROXY_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tillprint.db.models import Base, Order, OrderItem, OrderType, PrinterType, Tenant
from tillprint.printing.schemas import USBDeviceDescriptor
from tillprint.printing.transports.usb import Denied, Dismissed, Granted, usb_device_address

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ============================================================================
# Hardware fakes
# ============================================================================


class FakeUsbDevice:
    """In-memory USB device recording every call made on it."""

    def __init__(
        self,
        vendor_id: int = 1208,
        product_id: int = 514,
        endpoint: int | None = 1,
        configuration: int | None = 1,
        fail_on: dict | None = None,
    ):
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.endpoint = endpoint
        self._configuration = configuration
        self.fail_on = fail_on or {}
        self.calls: list[str] = []
        self.written = b""

    def describe(self) -> USBDeviceDescriptor:
        return USBDeviceDescriptor(
            vendor_id=self.vendor_id,
            product_id=self.product_id,
            manufacturer="EPSON",
            product="TM-T20II",
            serial_number="X1234",
            device_address=usb_device_address(self.vendor_id),
        )

    @property
    def configuration(self) -> int | None:
        return self._configuration

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    async def open(self) -> None:
        await self._step("open")

    async def close(self) -> None:
        await self._step("close")

    async def select_configuration(self, value: int) -> None:
        await self._step("select_configuration")
        self._configuration = value

    async def claim_interface(self, interface: int) -> None:
        await self._step("claim_interface")

    async def release_interface(self, interface: int) -> None:
        await self._step("release_interface")

    def out_endpoint(self, interface: int) -> int | None:
        self.calls.append("out_endpoint")
        return self.endpoint

    async def transfer_out(self, endpoint: int, data: bytes) -> int:
        await self._step("transfer_out")
        self.written += data
        return len(data)


class FakeUsbHost:
    """USB host with a granted list and devices that can still be granted."""

    def __init__(self, granted=None, grantable=None, deny: bool = False):
        self.granted = list(granted or [])
        self.grantable = list(grantable or [])
        self.deny = deny
        self.requests = []

    async def get_devices(self):
        return list(self.granted)

    async def request_device(self, filters):
        self.requests.append(filters)
        if self.deny:
            return Denied("blocked by host policy")
        for device in self.grantable:
            if any(f.vendor_id in (None, device.vendor_id) for f in filters):
                self.grantable.remove(device)
                self.granted.append(device)
                return Granted(device.describe())
        return Dismissed()


class RecordingTransport:
    """Transport double that records sent payloads."""

    def __init__(
        self,
        printer_type: PrinterType = PrinterType.NETWORK,
        device_address: str = "192.168.1.100:9100",
        probe_result: bool = True,
        probe_error: Exception | None = None,
        send_error: Exception | None = None,
    ):
        self.printer_type = printer_type
        self.device_address = device_address
        self.probe_result = probe_result
        self.probe_error = probe_error
        self.send_error = send_error
        self.sent: list[bytes] = []
        self.released = 0

    async def probe(self) -> bool:
        if self.probe_error:
            raise self.probe_error
        return self.probe_result

    async def send(self, data: bytes) -> None:
        if self.send_error:
            raise self.send_error
        self.sent.append(data)

    async def release(self) -> None:
        self.released += 1


# ============================================================================
# Database fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    # Import here to ensure env vars are set
    from tillprint.dependencies import get_db
    from tillprint.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_tenant(db: Session) -> Tenant:
    """Create a test tenant."""
    tenant = Tenant(
        id=str(uuid4()),
        name="Acme Store",
        slug="acme-store",
        business_name="Acme",
        is_active=True,
    )
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture
def test_order(db: Session, test_tenant: Tenant) -> Order:
    """Create a sale with one item."""
    order = Order(
        id=str(uuid4()),
        tenant_id=test_tenant.id,
        order_number="ORD-001",
        order_type=OrderType.SALE,
        subtotal=10.00,
        discount_amount=0,
        tax=1.00,
        total=11.00,
        items=[OrderItem(name="Widget", quantity=2, unit_price=5.00, line_total=10.00)],
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture
def test_refund(db: Session, test_tenant: Tenant) -> Order:
    """Create a refund order."""
    order = Order(
        id=str(uuid4()),
        tenant_id=test_tenant.id,
        order_number="RET-001",
        order_type=OrderType.REFUND,
        subtotal=5.00,
        discount_amount=0,
        tax=0.50,
        total=5.50,
        items=[OrderItem(name="Widget", quantity=1, unit_price=5.00, line_total=5.00)],
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture
def usb_printer() -> FakeUsbDevice:
    """A granted-able USB receipt printer."""
    return FakeUsbDevice()


@pytest.fixture
def usb_host(usb_printer: FakeUsbDevice) -> FakeUsbHost:
    """USB host on which the printer is already granted."""
    return FakeUsbHost(granted=[usb_printer])
