"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
starts the background import worker and registers the API routers.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import build_executor
from .api.routers import imports
from .core.config import settings
from .core.logging_config import configure_logging
from .db.session import get_engine
from .db.tables import ensure_tables
from .domain.imports.worker import ImportWorker

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start the import worker, and drain it on shutdown."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
    else:
        try:
            ensure_tables(get_engine())
            logger.info("customers and csv_imports tables ready")
        except Exception:
            logger.exception("Failed to initialize database tables")
            raise

    app.state.import_worker = ImportWorker(build_executor, max_workers=settings.import_max_concurrent_jobs)
    logger.info("Import worker started with %d threads", settings.import_max_concurrent_jobs)

    yield

    # Let in-flight jobs reach a terminal status before the process exits.
    app.state.import_worker.shutdown(wait=True)
    app.state.import_worker = None


app = FastAPI(
    title="Customer Import API",
    version="1.0.0",
    description="Background CSV import of customer records with pollable job status",
    lifespan=lifespan,
)

allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Customer Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "customer-import-api"
    }
