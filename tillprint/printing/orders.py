"""Order data for receipts.

Orders belong to the orders subsystem; the printer controller reads them
through the ``OrderSource`` protocol so it can be driven by any store.
"""

from typing import Protocol

from sqlalchemy.orm import Session, selectinload

from tillprint.db.models import Order, OrderType, Tenant
from tillprint.printing.receipt import format_receipt_date
from tillprint.printing.schemas import ReceiptData, ReceiptItem, ReceiptType


class OrderSource(Protocol):
    """Supplies receipt input for one tenant."""

    async def get_receipt_data(self, order_id: str) -> ReceiptData | None:
        """Receipt data for a sale, or None if the order does not exist."""
        ...

    async def get_return_receipt_data(self, return_id: str) -> ReceiptData | None:
        """Receipt data for a refund order, or None if there is no such refund."""
        ...

    async def get_business_name(self) -> str | None:
        """Business display name for the receipt header."""
        ...


def receipt_data_from_order(order: Order, receipt_type: ReceiptType) -> ReceiptData:
    """Convert an order row to receipt input.

    Args:
        order: Order with items loaded.
        receipt_type: Type printed on the receipt.

    Returns:
        ReceiptData: Receipt input.
    """
    return ReceiptData(
        order_number=order.order_number,
        date=format_receipt_date(order.created_at),
        type=receipt_type,
        items=[
            ReceiptItem(
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        discount_amount=order.discount_amount or 0,
        tax=order.tax,
        total=order.total,
    )


class SqlOrderSource:
    """Reads orders from the shared database."""

    def __init__(self, db: Session, tenant_id: str):
        """Initialize order source.

        Args:
            db: Database session.
            tenant_id: Tenant whose orders are visible.
        """
        self.db = db
        self.tenant_id = tenant_id

    def _get_order(self, order_id: str) -> Order | None:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.id == order_id, Order.tenant_id == self.tenant_id)
            .first()
        )

    async def get_receipt_data(self, order_id: str) -> ReceiptData | None:
        order = self._get_order(order_id)
        if not order:
            return None
        if order.order_type == OrderType.REFUND:
            return receipt_data_from_order(order, ReceiptType.REFUND)
        return receipt_data_from_order(order, ReceiptType.SALE)

    async def get_return_receipt_data(self, return_id: str) -> ReceiptData | None:
        order = self._get_order(return_id)
        if not order or order.order_type != OrderType.REFUND:
            return None
        return receipt_data_from_order(order, ReceiptType.RETURN)

    async def get_business_name(self) -> str | None:
        tenant = self.db.query(Tenant).filter(Tenant.id == self.tenant_id).first()
        if not tenant:
            return None
        return tenant.business_name or tenant.name
