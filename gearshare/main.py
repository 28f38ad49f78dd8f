"""GearShare: FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gearshare.api.v1.bookings import router as bookings_router
from gearshare.api.v1.claims import router as claims_router
from gearshare.api.v1.equipment import router as equipment_router
from gearshare.api.v1.payments import router as payments_router
from gearshare.api.v1.webhooks import router as webhooks_router
from gearshare.config import settings
from gearshare.core.errors import BookingConflict, GearShareError, InvalidInput
from gearshare.schemas.common import ErrorResponse
from gearshare.schemas.equipment import ConflictResponse

# Configure root logger so all gearshare.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    yield
    # Shutdown: dispose engine connections
    from gearshare.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Booking, escrow and damage-claim settlement for peer-to-peer equipment rental.",
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


@app.exception_handler(GearShareError)
async def gearshare_error_handler(request: Request, exc: GearShareError) -> JSONResponse:
    """Map domain errors to HTTP: bad input is 422, conflicts and state errors are 409."""
    body = ErrorResponse(detail=exc.message, code=exc.code)
    if isinstance(exc, InvalidInput):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        status_code = status.HTTP_409_CONFLICT
    if isinstance(exc, BookingConflict):
        body.conflicts = [ConflictResponse.model_validate(c) for c in exc.conflicts]
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


# Routers
app.include_router(equipment_router)
app.include_router(bookings_router)
app.include_router(claims_router)
app.include_router(payments_router)
app.include_router(webhooks_router)


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
