"""Database module."""

from tillprint.db.database import SessionLocal, engine, init_db
from tillprint.db.models import (
    Base,
    Order,
    OrderItem,
    PrintJob,
    PrinterConfig,
    Tenant,
)

__all__ = [
    "SessionLocal",
    "engine",
    "init_db",
    "Base",
    "Tenant",
    "Order",
    "OrderItem",
    "PrinterConfig",
    "PrintJob",
]
