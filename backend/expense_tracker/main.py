"""
FastAPI application entry point for the Expense Tracker backend.

This module initializes the FastAPI app with middleware, CORS, logging,
error mapping, and registers all API routers.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from expense_tracker import __version__
from expense_tracker.config import settings
from expense_tracker.database import init_db
from expense_tracker.dependencies import get_llm
from expense_tracker.exceptions import (
    ConflictError,
    ExpenseTrackerError,
    ExtractionError,
    NotFoundError,
    ParseError,
    StorageError,
    ValidationError,
)
from expense_tracker.logger import setup_logging
from expense_tracker.routers import receipts, categories
from expense_tracker.services.llm_service import LLMProvider

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ExtractionError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ParseError: status.HTTP_502_BAD_GATEWAY,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    setup_logging()
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized successfully")

    yield

    # Shutdown
    logger.info("Shutting down application...")


# Create FastAPI app
app = FastAPI(
    title="Expense Tracker API",
    description="API for receipt ingestion and expense tracking",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add GZip compression
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Register routers
app.include_router(receipts.router, prefix=f"{settings.API_PREFIX}/receipts", tags=["receipts"])
app.include_router(categories.router, prefix=f"{settings.API_PREFIX}/categories", tags=["categories"])

# Serve stored receipt images
upload_dir = Path(settings.UPLOAD_DIR)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount(settings.UPLOAD_URL_PREFIX, StaticFiles(directory=upload_dir), name="uploads")


def status_for(exc: ExpenseTrackerError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(ExpenseTrackerError)
async def expense_tracker_exception_handler(request: Request, exc: ExpenseTrackerError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    error = ValidationError.from_pydantic(exc, message="Invalid request")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error", "details": str(exc)},
    )


@app.get("/health")
async def health(llm: LLMProvider = Depends(get_llm)):
    """Health check endpoint; also reports whether the model provider answers."""
    llm_available = await asyncio.to_thread(llm.is_available)
    return {"status": "healthy", "llm": {"provider": llm.name, "available": llm_available}}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "expense_tracker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
