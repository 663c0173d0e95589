"""
Main FastAPI application.

Entry point for the CRM entity resolution and merge service.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from entity_merge.api.v1 import data_tools
from entity_merge.core.config import get_settings
from entity_merge.core.database import check_connection, create_tables

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Entity Resolution & Merge Engine"
VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Runs on startup and shutdown.
    """
    # Startup
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    logger.info(f"Starting {SERVICE_NAME}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Name similarity threshold: {settings.name_similarity_threshold}")

    try:
        create_tables()
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down")


# Create FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Duplicate detection and structural merges for CRM accounts and locations",
    version=VERSION,
    lifespan=lifespan
)

# CORS middleware (configure as needed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(data_tools.router, prefix="/api/v1")


@app.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "tools": [
            "similarity-candidates",
            "merge-accounts",
            "merge-locations",
            "add-location-to-multi",
            "remove-location-from-multi",
        ],
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns status of the service and database connectivity.
    """
    health_status = {
        "status": "healthy",
        "service": "running",
        "database": "unknown"
    }

    try:
        check_connection()
        health_status["database"] = "connected"
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["database"] = f"error: {str(e)}"
        logger.warning(f"Database health check failed: {e}")

    return health_status
