"""
TCC Engine API package initialization.

This package contains FastAPI router modules for the TCC Engine:
- compute: Stateless engine computations (scenario, batch, optimizer,
  productivity targets, outliers, specialty suggestions)
- scenarios: Saved scenario storage and reload
"""

from fastapi import APIRouter

# Import router modules
from tcc_engine.api.compute import router as compute_router
from tcc_engine.api.scenarios import router as scenarios_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers (each router carries its own prefix)
api_router.include_router(compute_router)
api_router.include_router(scenarios_router)

# Export all routers for selective imports
__all__ = [
    "api_router",
    "compute_router",
    "scenarios_router",
]
