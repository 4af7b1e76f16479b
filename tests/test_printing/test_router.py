"""Tests for the printer API routes."""

import pytest
from conftest import FakeUsbDevice, FakeUsbHost, RecordingTransport
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tillprint.config import Settings
from tillprint.db.models import (
    PrinterConfig,
    PrinterType,
    PrintJob,
    PrintJobStatus,
    PrintJobType,
    Tenant,
)
from tillprint.printing import controller as controller_module
from tillprint.printing.errors import UnverifiableDeliveryError

NETWORK_ADDRESS = "192.168.1.100:9100"


@pytest.fixture
def transport(monkeypatch) -> RecordingTransport:
    """Transport used for every printer built by the API."""
    recording = RecordingTransport()
    monkeypatch.setattr(
        controller_module, "get_transport", lambda *args, **kwargs: recording
    )
    return recording


@pytest.fixture
def usb_host(monkeypatch) -> FakeUsbHost:
    """USB host used by the API."""
    host = FakeUsbHost(granted=[FakeUsbDevice()])
    monkeypatch.setattr(controller_module, "get_usb_host", lambda: host)
    return host


@pytest.fixture
def headers(test_tenant: Tenant) -> dict:
    """Identity headers for the test tenant."""
    return {"X-Tenant-ID": test_tenant.id, "X-User-ID": "cashier-1"}


@pytest.fixture
def network_printer(db: Session, test_tenant: Tenant) -> PrinterConfig:
    """Active network printer configuration."""
    config = PrinterConfig(
        tenant_id=test_tenant.id,
        printer_type=PrinterType.NETWORK,
        device_address=NETWORK_ADDRESS,
        printer_name="Counter",
        is_active=True,
    )
    db.add(config)
    db.commit()
    return config


class TestTenantIdentity:
    """Tests for tenant identity headers."""

    def test_missing_tenant_header(self, client: TestClient):
        """Requests without a tenant should be rejected."""
        response = client.get("/api/printer/status")
        assert response.status_code == 401

    def test_unknown_tenant(self, client: TestClient):
        """Unknown tenants should get 404."""
        response = client.get("/api/printer/status", headers={"X-Tenant-ID": "nope"})
        assert response.status_code == 404

    def test_disabled_tenant(self, client: TestClient, db: Session, test_tenant: Tenant, headers):
        """Disabled tenants should get 403."""
        test_tenant.is_active = False
        db.commit()
        response = client.get("/api/printer/status", headers=headers)
        assert response.status_code == 403


class TestInitializeEndpoint:
    """Tests for POST /api/printer/initialize."""

    def test_initialize_network_printer(self, client, headers, transport, usb_host):
        """Should save the printer and report the probe result."""
        response = client.post(
            "/api/printer/initialize",
            json={"type": "network", "device": NETWORK_ADDRESS},
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["is_connected"] is True
        assert data["config"]["printer_name"] == "NETWORK Printer"
        assert data["config"]["device_address"] == NETWORK_ADDRESS

    def test_initialize_bad_address(self, client, headers, transport, usb_host):
        """A malformed address should return 400 with a readable message."""
        response = client.post(
            "/api/printer/initialize",
            json={"type": "network", "device": "192.168.1.1:70000"},
            headers=headers,
        )

        assert response.status_code == 400
        assert "port" in response.json()["detail"]

    def test_initialize_without_device(self, client, headers, transport, usb_host):
        """A missing device should return 400."""
        response = client.post("/api/printer/initialize", json={"type": "usb"}, headers=headers)
        assert response.status_code == 400


class TestStatusAndDevices:
    """Tests for status and device endpoints."""

    def test_status_unconfigured(self, client, headers, usb_host):
        """Should report an unconfigured printer."""
        response = client.get("/api/printer/status", headers=headers)

        assert response.status_code == 200
        assert response.json()["state"] == "unconfigured"
        assert response.json()["status"] == "Disconnected"

    def test_status_network(self, client, headers, usb_host, network_printer):
        """A configured network printer should be ready."""
        response = client.get("/api/printer/status", headers=headers)
        assert response.json()["status"] == "Ready"

    def test_list_devices(self, client, headers, usb_host):
        """Should list granted USB devices."""
        response = client.get("/api/printer/devices", headers=headers)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["devices"][0]["device_address"] == "USB1208"

    def test_request_device_dismissed(self, client, headers, usb_host):
        """A request with no matching device should return 403."""
        response = client.post("/api/printer/devices/request", headers=headers)

        assert response.status_code == 403
        assert "No device selected" in response.json()["detail"]

    def test_request_device_granted(self, client, headers, usb_host):
        """A matching device should be granted."""
        usb_host.grantable.append(FakeUsbDevice(vendor_id=1305))

        response = client.post("/api/printer/devices/request", headers=headers)

        assert response.status_code == 200
        assert response.json()["device"]["device_address"] == "USB1305"


class TestPrintEndpoints:
    """Tests for receipt printing endpoints."""

    def test_print_receipt(self, client, headers, transport, usb_host, network_printer, test_order):
        """Should print the receipt and return its text."""
        response = client.post(f"/api/printer/receipts/{test_order.id}", headers=headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert "ORD-001" in response.json()["receipt_text"]
        assert len(transport.sent) == 1

    def test_print_receipt_not_connected(self, client, headers, usb_host, test_order):
        """Printing without a printer should return 409."""
        response = client.post(f"/api/printer/receipts/{test_order.id}", headers=headers)

        assert response.status_code == 409
        assert "not connected" in response.json()["detail"]

    def test_print_receipt_missing_order(
        self, client, headers, transport, usb_host, network_printer
    ):
        """Unknown orders should return 404."""
        response = client.post("/api/printer/receipts/missing", headers=headers)
        assert response.status_code == 404

    def test_print_receipt_unverifiable(
        self, client, headers, transport, usb_host, network_printer, test_order
    ):
        """Unverifiable network delivery should return 502 and be logged."""
        transport.send_error = UnverifiableDeliveryError()

        response = client.post(f"/api/printer/receipts/{test_order.id}", headers=headers)

        assert response.status_code == 502
        assert "printed manually" in response.json()["detail"]
        history = client.get("/api/printer/history", headers=headers).json()
        assert history["count"] == 1
        assert history["history"][0]["status"] == "failed"

    def test_print_return(self, client, headers, transport, usb_host, network_printer, test_refund):
        """Should print a return receipt."""
        response = client.post(f"/api/printer/returns/{test_refund.id}", headers=headers)

        assert response.status_code == 200
        assert "Type: RETURN" in response.json()["receipt_text"]

    def test_print_test_page(self, client, headers, transport, usb_host, network_printer):
        """Should print the test page."""
        response = client.post("/api/printer/test-page", headers=headers)

        assert response.status_code == 200
        assert "TEST-001" in response.json()["receipt_text"]

    def test_connection_test(self, client, headers, transport, usb_host, network_printer):
        """Should send a short test print."""
        response = client.post("/api/printer/test", headers=headers)

        assert response.status_code == 200
        assert transport.sent[0].startswith(b"\x1b@")


class TestDisconnectAndHistory:
    """Tests for disconnect and history endpoints."""

    def test_disconnect(self, client, headers, usb_host, network_printer):
        """Should deactivate the printer."""
        response = client.post("/api/printer/disconnect", headers=headers)

        assert response.status_code == 200
        assert response.json()["is_connected"] is False
        status = client.get("/api/printer/status", headers=headers).json()
        assert status["state"] == "unconfigured"

    def test_history_records_user(
        self, client, db, headers, transport, usb_host, network_printer, test_order
    ):
        """Print jobs should record the acting user."""
        client.post(f"/api/printer/receipts/{test_order.id}", headers=headers)

        response = client.get("/api/printer/history?limit=10", headers=headers)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert db.query(PrintJob).one().user_id == "cashier-1"

    def test_history_default_limit_from_settings(
        self, client, db, headers, test_tenant, usb_host, monkeypatch
    ):
        """Without a limit the configured default should apply."""
        monkeypatch.setattr(
            controller_module,
            "get_settings",
            lambda: Settings(database_url="sqlite:///:memory:", print_history_default_limit=2),
        )
        for i in range(3):
            db.add(
                PrintJob(
                    tenant_id=test_tenant.id,
                    job_type=PrintJobType.RECEIPT,
                    order_id=f"order-{i}",
                    status=PrintJobStatus.COMPLETED,
                )
            )
        db.commit()

        default = client.get("/api/printer/history", headers=headers).json()
        explicit = client.get("/api/printer/history?limit=3", headers=headers).json()

        assert default["count"] == 2
        assert explicit["count"] == 3


class TestProxyEndpoint:
    """Tests for POST /api/print."""

    def test_forwards_bytes(self, client, monkeypatch):
        """Should forward the bytes to the printer socket."""
        from tillprint.printing import router as router_module

        forwarded = {}

        async def fake_forward(address, data, timeout):
            forwarded["address"] = address
            forwarded["data"] = data
            return len(data)

        monkeypatch.setattr(router_module, "forward_to_printer", fake_forward)

        response = client.post(
            "/api/print",
            json={"address": NETWORK_ADDRESS, "data": [27, 64, 65], "type": "network"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "address": NETWORK_ADDRESS,
            "bytes_sent": 3,
        }
        assert forwarded == {"address": NETWORK_ADDRESS, "data": b"\x1b@A"}

    def test_rejects_out_of_range_bytes(self, client):
        """Values outside 0-255 should be rejected."""
        response = client.post(
            "/api/print", json={"address": NETWORK_ADDRESS, "data": [300], "type": "network"}
        )
        assert response.status_code == 400

    def test_rejects_bad_address(self, client):
        """Malformed addresses should be rejected before connecting."""
        response = client.post(
            "/api/print", json={"address": "999.1.1.1:9100", "data": [65], "type": "network"}
        )
        assert response.status_code == 400


class TestHealth:
    """Tests for the health check."""

    def test_health(self, client):
        """Health check should respond."""
        assert client.get("/health").json() == {"status": "healthy"}
