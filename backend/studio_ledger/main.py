"""Studio Ledger — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studio_ledger.api.errors import register_exception_handlers
from studio_ledger.api.v1.activity import router as activity_router
from studio_ledger.api.v1.bookings import router as bookings_router
from studio_ledger.api.v1.classes import router as classes_router
from studio_ledger.api.v1.subscriptions import router as subscriptions_router
from studio_ledger.config import settings
from studio_ledger.services import notification_service

# Configure root logger so all studio_ledger.* loggers output to stderr.
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    yield
    # Shutdown — let queued notifications go out, then dispose engine connections
    await notification_service.wait_for_pending()

    from studio_ledger.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Class credits, subscriptions, bookings and waitlists for a pilates studio.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(subscriptions_router)
app.include_router(bookings_router)
app.include_router(classes_router)
app.include_router(activity_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
