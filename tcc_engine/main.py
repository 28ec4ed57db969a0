"""
FastAPI application entry point for the TCC Engine API.

This module configures logging and CORS, registers the API routers, and
starts the ASGI server when run directly.

Routers:
- /compute: stateless engine computations
- /scenarios: saved scenario storage and reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tcc_engine import __version__
from tcc_engine.api import api_router
from tcc_engine.core.config import get_settings


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.
    """
    logger.info("TCC Engine API starting")
    yield
    logger.info("TCC Engine API shutting down")


# Create FastAPI application
app = FastAPI(
    title="TCC Engine API",
    version=__version__,
    description=(
        "Physician compensation engine: market percentile benchmarking, "
        "scenario modeling, batch runs, conversion factor optimization "
        "and productivity targets."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer health checks.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.
    """
    return {
        "name": "TCC Engine API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tcc_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
