"""
FastAPI router module for saved scenarios.

Implements save / list / get / delete for saved scenarios through the injected
repository, plus a reload endpoint that restores a saved scenario against the
provider and market data currently loaded by the caller.
"""

import logging
from typing import List

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from tcc_engine.core.dependencies import RepositoryDep
from tcc_engine.models.schemas import (
    MarketRow,
    ProviderRow,
    SavedScenario,
    ScenarioLoadOutcome,
)
from tcc_engine.services.persistence import load_saved_scenario


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scenarios", tags=["scenarios"])


# =============================================================================
# Local Pydantic Models for API Requests / Responses
# =============================================================================

class ScenarioListResponse(BaseModel):
    """Response model for list scenarios endpoint."""
    scenarios: List[SavedScenario] = Field(default_factory=list)


class ScenarioReloadRequest(BaseModel):
    """Current data the saved scenario is restored against."""
    providers: List[ProviderRow] = Field(default_factory=list)
    markets: List[MarketRow] = Field(default_factory=list)


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/", response_model=ScenarioListResponse)
async def list_scenarios(repo: RepositoryDep) -> ScenarioListResponse:
    """
    List saved scenarios, oldest first (newest 20 kept).
    """
    return ScenarioListResponse(scenarios=repo.list_scenarios())


@router.post("/", response_model=SavedScenario, status_code=201)
async def save_scenario(
    repo: RepositoryDep,
    scenario: SavedScenario = Body(...),
) -> SavedScenario:
    """
    Save (or replace by id) a scenario.

    Raises:
        HTTPException 413: Payload larger than the configured cap
    """
    if not repo.save_scenario(scenario):
        raise HTTPException(status_code=413, detail="Scenario payload exceeds the storage size limit")
    logger.info(f"Saved scenario {scenario.id}")
    return scenario


@router.get("/{scenario_id}", response_model=SavedScenario)
async def get_scenario(scenario_id: str, repo: RepositoryDep) -> SavedScenario:
    scenario = repo.get_scenario(scenario_id)
    if scenario is None:
        logger.warning(f"Scenario not found: scenario_id={scenario_id}")
        raise HTTPException(status_code=404, detail="Scenario not found")
    return scenario


@router.delete("/{scenario_id}", status_code=204)
async def delete_scenario(scenario_id: str, repo: RepositoryDep) -> None:
    if not repo.delete_scenario(scenario_id):
        raise HTTPException(status_code=404, detail="Scenario not found")


@router.post("/{scenario_id}/load", response_model=ScenarioLoadOutcome)
async def load_scenario(
    scenario_id: str,
    repo: RepositoryDep,
    request: ScenarioReloadRequest = Body(...),
) -> ScenarioLoadOutcome:
    """
    Restore a saved scenario's inputs and selections against current data.

    Missing providers or specialties fall back with a warning, never an error.
    """
    scenario = repo.get_scenario(scenario_id)
    if scenario is None:
        raise HTTPException(status_code=404, detail="Scenario not found")
    return load_saved_scenario(scenario, request.providers, request.markets)


__all__ = ['router']
