"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
from fastapi.middleware.cors import CORSMiddleware

from tillprint import __version__
from tillprint.config import get_settings
from tillprint.db.database import init_db
from tillprint.printing.concurrency import DeviceLocks, InFlightRequests

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events.

    Args:
        app: FastAPI application instance.
    """
    # Startup
    init_db()
    app.state.in_flight = InFlightRequests()
    app.state.device_locks = DeviceLocks()
    yield
    # Shutdown (cleanup if needed)


app = FastAPI(
    title=settings.app_name,
    description="Receipt printing service for point-of-sale terminals",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Import and include routers
from tillprint.printing.router import proxy_router
from tillprint.printing.router import router as printer_router

# API routes
app.include_router(printer_router, prefix="/api/printer", tags=["printer"])
app.include_router(proxy_router, prefix="/api/print", tags=["print-proxy"])


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns:
        dict: Health status.
    """
    return {"status": "healthy"}
