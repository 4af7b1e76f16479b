"""Dependency injection for FastAPI."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from tillprint.db.database import SessionLocal
from tillprint.db.models import Tenant
from tillprint.printing.concurrency import DeviceLocks, InFlightRequests


def get_db() -> Generator[Session, None, None]:
    """Get database session.

    Yields:
        Session: SQLAlchemy session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_tenant_id(
    db: Annotated[Session, Depends(get_db)],
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> str:
    """Get the tenant ID from the X-Tenant-ID header.

    Identity is established upstream (API gateway or POS shell); this
    service only checks that the tenant exists and is active.

    Args:
        db: Database session.
        x_tenant_id: Tenant ID header.

    Returns:
        str: The tenant ID.

    Raises:
        HTTPException: If the header is missing or the tenant is unknown or disabled.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Tenant-ID header",
        )

    tenant = db.query(Tenant).filter(Tenant.id == x_tenant_id).first()
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )
    if not tenant.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant is disabled",
        )
    return tenant.id


def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str | None:
    """Get the acting user's ID from the X-User-ID header, if any."""
    return x_user_id or None


def get_in_flight(request: Request) -> InFlightRequests:
    """Get the app-wide registry of in-flight print requests."""
    return request.app.state.in_flight


def get_device_locks(request: Request) -> DeviceLocks:
    """Get the app-wide per-device send locks."""
    return request.app.state.device_locks


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db)]
CurrentTenantId = Annotated[str, Depends(get_current_tenant_id)]
CurrentUserId = Annotated[str | None, Depends(get_current_user_id)]
