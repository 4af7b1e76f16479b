"""SQLAlchemy database models."""

import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.mysql import CHAR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


class OrderType(str, enum.Enum):
    """Order type enumeration."""

    SALE = "sale"
    REFUND = "refund"


class PrinterType(str, enum.Enum):
    """Receipt printer connection type."""

    USB = "usb"
    NETWORK = "network"


class PrintJobType(str, enum.Enum):
    """What a print job printed."""

    RECEIPT = "receipt"
    RETURN_RECEIPT = "return_receipt"
    TEST = "test"


class PrintJobStatus(str, enum.Enum):
    """Print job status enumeration."""

    PENDING = "pending"  # Recorded before delivery was attempted
    COMPLETED = "completed"  # Transport confirmed delivery
    FAILED = "failed"  # Delivery failed or could not be verified


class Tenant(Base):
    """Tenant model representing one shop (account) of the POS.

    Attributes:
        id: Primary key UUID.
        name: Account name.
        slug: URL-friendly identifier.
        business_name: Display name printed in the receipt header.
        is_active: Whether the tenant is active.
        created_at: Creation timestamp.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Order(Base):
    """Order model as written by the orders subsystem.

    The printing pipeline only reads orders.

    Attributes:
        id: Primary key UUID.
        tenant_id: FK to tenant.
        order_number: Human readable number (e.g. "ORD-001").
        order_type: Sale or refund.
        subtotal: Sum of line totals.
        discount_amount: Discount applied to the order.
        tax: Tax amount.
        total: Amount charged.
        created_at: Creation timestamp.
    """

    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    order_type: Mapped[OrderType] = mapped_column(
        Enum(OrderType, values_callable=lambda x: [e.value for e in x]),
        default=OrderType.SALE,
    )
    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    discount_amount: Mapped[float] = mapped_column(Float, default=0.0)
    tax: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )


class OrderItem(Base):
    """Order line item.

    Attributes:
        id: Primary key UUID.
        order_id: FK to order.
        name: Product name at the time of sale.
        quantity: Units sold.
        unit_price: Price per unit.
        line_total: quantity * unit_price after line discounts.
    """

    __tablename__ = "order_items"
    __table_args__ = (Index("ix_order_items_order_id", "order_id"),)

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    order_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    line_total: Mapped[float] = mapped_column(Float, default=0.0)

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")


class PrinterConfig(Base):
    """Receipt printer configuration.

    At most one configuration per tenant is active. Activation is done by
    the printer controller, which deactivates the previous row in the same
    transaction. Disconnecting only clears is_active.

    Attributes:
        id: Primary key UUID.
        tenant_id: FK to tenant.
        user_id: User who saved the configuration (opaque external ID).
        printer_type: USB or network.
        device_address: "USB<vendorId>" or "a.b.c.d:port".
        printer_name: Display name.
        is_active: Whether this is the tenant's current printer.
        config_options: Free-form options supplied by the client.
        created_at: Creation timestamp.
        updated_at: Last re-initialize timestamp.
    """

    __tablename__ = "printer_configs"
    __table_args__ = (Index("ix_printer_configs_tenant_active", "tenant_id", "is_active"),)

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    printer_type: Mapped[PrinterType] = mapped_column(
        Enum(PrinterType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    device_address: Mapped[str] = mapped_column(String(100), nullable=False)
    printer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    config_options: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", backref="printer_configs")


class PrintJob(Base):
    """Audit record of one print attempt.

    Rows are inserted once and never updated: a failed attempt and a later
    successful retry are two records.

    Attributes:
        id: Primary key UUID.
        tenant_id: FK to tenant.
        user_id: User who requested the print (opaque external ID).
        job_type: Receipt, return receipt or test page.
        order_id: Order or return the receipt was built from.
        printer_config_id: Configuration the job was dispatched to.
        receipt_data: Structured receipt input, kept for reprinting.
        receipt_text: Encoded receipt text including control codes.
        status: Outcome of the attempt.
        error_message: User-facing error if failed.
        printed_at: When delivery completed.
        attempted_at: When a failed attempt happened.
        created_at: Record creation timestamp.
    """

    __tablename__ = "print_jobs"
    __table_args__ = (
        Index("ix_print_jobs_tenant_id", "tenant_id"),
        Index("ix_print_jobs_status", "status"),
        Index("ix_print_jobs_order_id", "order_id"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    job_type: Mapped[PrintJobType] = mapped_column(
        Enum(PrintJobType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    printer_config_id: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("printer_configs.id", ondelete="SET NULL"), nullable=True
    )
    receipt_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    receipt_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[PrintJobStatus] = mapped_column(
        Enum(PrintJobStatus, values_callable=lambda x: [e.value for e in x]),
        default=PrintJobStatus.PENDING,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    printed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    attempted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", backref="print_jobs")
    printer_config: Mapped[Optional["PrinterConfig"]] = relationship("PrinterConfig")
