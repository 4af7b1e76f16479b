"""Initial database schema.

Revision ID: 001
Revises:
Create Date: 2026-10-16

Schema for the receipt printing service:
- Tenants (shops) with the business name printed on receipts
- Orders and order items (written by the orders subsystem, read here)
- Printer configurations (one active per tenant)
- Print jobs (append-only audit log of print attempts)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # Tenants table
    op.create_table(
        "tenants",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), unique=True, nullable=False),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), default=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # Orders table
    op.create_table(
        "orders",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("tenant_id", mysql.CHAR(36), nullable=False),
        sa.Column("order_number", sa.String(50), nullable=False),
        sa.Column("order_type", sa.Enum("sale", "refund", name="ordertype"), default="sale"),
        sa.Column("subtotal", sa.Float(), default=0.0),
        sa.Column("discount_amount", sa.Float(), default=0.0),
        sa.Column("tax", sa.Float(), default=0.0),
        sa.Column("total", sa.Float(), default=0.0),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"])

    # Order items table
    op.create_table(
        "order_items",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("order_id", mysql.CHAR(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), default=1),
        sa.Column("unit_price", sa.Float(), default=0.0),
        sa.Column("line_total", sa.Float(), default=0.0),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    # Printer configurations table
    op.create_table(
        "printer_configs",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("tenant_id", mysql.CHAR(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column(
            "printer_type",
            sa.Enum("usb", "network", name="printertype"),
            nullable=False,
        ),
        sa.Column("device_address", sa.String(100), nullable=False),
        sa.Column("printer_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True),
        sa.Column("config_options", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_printer_configs_tenant_active", "printer_configs", ["tenant_id", "is_active"]
    )

    # Print jobs table
    op.create_table(
        "print_jobs",
        sa.Column("id", mysql.CHAR(36), primary_key=True),
        sa.Column("tenant_id", mysql.CHAR(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column(
            "job_type",
            sa.Enum("receipt", "return_receipt", "test", name="printjobtype"),
            nullable=False,
        ),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("printer_config_id", mysql.CHAR(36), nullable=True),
        sa.Column("receipt_data", sa.JSON(), nullable=True),
        sa.Column("receipt_text", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "failed", name="printjobstatus"),
            default="pending",
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("printed_at", sa.DateTime(), nullable=True),
        sa.Column("attempted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["printer_config_id"], ["printer_configs.id"], ondelete="SET NULL"
        ),
    )
    op.create_index("ix_print_jobs_tenant_id", "print_jobs", ["tenant_id"])
    op.create_index("ix_print_jobs_status", "print_jobs", ["status"])
    op.create_index("ix_print_jobs_order_id", "print_jobs", ["order_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("print_jobs")
    op.drop_table("printer_configs")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("tenants")
