"""
FastAPI router module for stateless engine computations.

Each endpoint validates its request body, calls exactly one engine function
and returns the engine's result model. No state is kept between calls; run
timestamps are taken here and passed into the engine.

Endpoints:
- POST /compute/scenario                 Single provider scenario
- POST /compute/batch                    Provider x scenario batch
- POST /compute/optimizer                CF optimizer across specialties
- POST /compute/optimizer/sweep          Modeled TCC at fixed CF percentiles
- POST /compute/optimizer/compare        Compare saved optimizer runs
- POST /compute/productivity-targets     Group wRVU targets per specialty
- POST /compute/outliers                 Outlier flags for a sample
- POST /compute/specialty-suggestions    Market specialty suggestions

Error mapping:
- Request validation failures: 422 (FastAPI default)
- ValueError from the engine (invalid combination of inputs): 400
- Anything else: logged with traceback, 500
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from tcc_engine.core.dependencies import SettingsDep
from tcc_engine.models.enums import OutlierMethod
from tcc_engine.models.schemas import (
    BatchOverrides,
    BatchResults,
    BatchScenario,
    CFSweepAllResult,
    MarketRow,
    OptimizerRunResult,
    OptimizerScenarioComparison,
    OptimizerSettings,
    ProductivityTargetRunResult,
    ProductivityTargetSettings,
    ProviderRow,
    SavedOptimizerConfig,
    ScenarioInputs,
    ScenarioResults,
    SpecialtySuggestionResult,
)
from tcc_engine.services.batch import run_batch
from tcc_engine.services.comparison import compare_optimizer_scenarios
from tcc_engine.services.optimizer import (
    run_modeled_tcc_sweep_all_specialties,
    run_optimizer_all_specialties,
)
from tcc_engine.services.outliers import detect_outliers
from tcc_engine.services.productivity_target import run_productivity_targets
from tcc_engine.services.scenario_compute import compute_scenario
from tcc_engine.services.specialty_match import suggest_market_specialties


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/compute", tags=["compute"])


# =============================================================================
# Local Pydantic Models for API Requests / Responses
# =============================================================================

class ScenarioRequest(BaseModel):
    """Request model for a single provider scenario."""
    provider: ProviderRow
    market: MarketRow
    scenarioInputs: ScenarioInputs = Field(default_factory=ScenarioInputs)


class BatchRequest(BaseModel):
    """Request model for a batch run."""
    providers: List[ProviderRow] = Field(default_factory=list)
    markets: List[MarketRow] = Field(default_factory=list)
    scenarios: List[BatchScenario] = Field(
        default_factory=list,
        description="Scenarios to run; a default 'Current' scenario when empty"
    )
    overrides: Optional[BatchOverrides] = None
    synonymMap: Dict[str, str] = Field(default_factory=dict)


class OptimizerRequest(BaseModel):
    """Request model for an optimizer run."""
    providers: List[ProviderRow] = Field(default_factory=list)
    markets: List[MarketRow] = Field(default_factory=list)
    settings: OptimizerSettings = Field(default_factory=OptimizerSettings)
    scenarioId: str = "default"
    scenarioName: str = "Optimizer run"
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    specialty: Optional[str] = Field(default=None, description="Run a single specialty")
    marketDatasetVersion: Optional[str] = None
    mappingVersion: Optional[str] = None


class SweepRequest(BaseModel):
    """Request model for a CF percentile sweep."""
    providers: List[ProviderRow] = Field(default_factory=list)
    markets: List[MarketRow] = Field(default_factory=list)
    settings: OptimizerSettings = Field(default_factory=OptimizerSettings)
    cfPercentiles: List[float] = Field(default_factory=lambda: [25.0, 50.0, 75.0, 90.0])
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    specialty: Optional[str] = None


class CompareRequest(BaseModel):
    """Request model for comparing saved optimizer configs (2-4)."""
    configs: List[SavedOptimizerConfig]


class ProductivityTargetRequest(BaseModel):
    """Request model for productivity targets."""
    providers: List[ProviderRow] = Field(default_factory=list)
    markets: List[MarketRow] = Field(default_factory=list)
    settings: ProductivityTargetSettings = Field(default_factory=ProductivityTargetSettings)
    synonymMap: Dict[str, str] = Field(default_factory=dict)


class OutlierRequest(BaseModel):
    """Request model for outlier detection."""
    values: List[float]
    method: OutlierMethod = OutlierMethod.IQR
    iqrK: Optional[float] = None
    madZThreshold: Optional[float] = None


class OutlierResponse(BaseModel):
    """Response model for outlier detection; one flag per input value."""
    flags: List[bool]


class SpecialtySuggestionRequest(BaseModel):
    """Request model for specialty suggestions."""
    providerSpecialties: List[str]
    marketSpecialties: List[str]
    minScore: Optional[float] = None
    limit: int = Field(default=3, ge=1)


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Error computing {action}")
    return HTTPException(status_code=500, detail=f"Failed to compute {action}: {str(e)}")


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/scenario", response_model=ScenarioResults)
async def compute_scenario_endpoint(
    settings: SettingsDep,
    request: ScenarioRequest = Body(...),
) -> ScenarioResults:
    """
    Compute scenario results for one provider against one market row.
    """
    try:
        return compute_scenario(request.provider, request.market, request.scenarioInputs, settings=settings)
    except Exception as e:
        raise _server_error("scenario", e)


@router.post("/batch", response_model=BatchResults)
async def compute_batch_endpoint(
    settings: SettingsDep,
    request: BatchRequest = Body(...),
) -> BatchResults:
    """
    Run every provider against every scenario.
    """
    try:
        results = run_batch(
            request.providers,
            request.markets,
            request.scenarios,
            run_at=datetime.now(timezone.utc),
            overrides=request.overrides,
            synonym_map=request.synonymMap,
            settings=settings,
        )
        logger.info(f"Batch endpoint returned {len(results.rows)} rows")
        return results
    except Exception as e:
        raise _server_error("batch", e)


@router.post("/optimizer", response_model=OptimizerRunResult)
async def compute_optimizer_endpoint(
    request: OptimizerRequest = Body(...),
) -> OptimizerRunResult:
    """
    Recommend a conversion factor for each specialty with matched providers.
    """
    try:
        return run_optimizer_all_specialties(
            request.providers,
            request.markets,
            request.settings,
            scenario_id=request.scenarioId,
            scenario_name=request.scenarioName,
            timestamp=datetime.now(timezone.utc),
            synonym_map=request.synonymMap,
            market_dataset_version=request.marketDatasetVersion,
            mapping_version=request.mappingVersion,
            specialty_filter=request.specialty,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _server_error("optimizer run", e)


@router.post("/optimizer/sweep", response_model=CFSweepAllResult)
async def compute_sweep_endpoint(
    request: SweepRequest = Body(...),
) -> CFSweepAllResult:
    """
    Model TCC at fixed market CF percentiles for each specialty.
    """
    try:
        return run_modeled_tcc_sweep_all_specialties(
            request.providers,
            request.markets,
            request.settings,
            request.cfPercentiles,
            synonym_map=request.synonymMap,
            specialty_filter=request.specialty,
        )
    except Exception as e:
        raise _server_error("CF sweep", e)


@router.post("/optimizer/compare", response_model=OptimizerScenarioComparison)
async def compare_optimizer_endpoint(
    request: CompareRequest = Body(...),
) -> OptimizerScenarioComparison:
    """
    Compare two to four saved optimizer configs that carry run results.
    """
    try:
        return compare_optimizer_scenarios(request.configs)
    except ValueError as e:
        logger.warning(f"Comparison rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _server_error("optimizer comparison", e)


@router.post("/productivity-targets", response_model=ProductivityTargetRunResult)
async def compute_productivity_targets_endpoint(
    request: ProductivityTargetRequest = Body(...),
) -> ProductivityTargetRunResult:
    """
    Group wRVU targets, provider percent-to-target and planning incentive.
    """
    try:
        return run_productivity_targets(
            request.providers,
            request.markets,
            request.settings,
            synonym_map=request.synonymMap,
        )
    except Exception as e:
        raise _server_error("productivity targets", e)


@router.post("/outliers", response_model=OutlierResponse)
async def compute_outliers_endpoint(
    request: OutlierRequest = Body(...),
) -> OutlierResponse:
    """
    Flag outliers in a sample with IQR fences or MAD modified z-scores.
    """
    try:
        flags = detect_outliers(request.values, request.method, request.iqrK, request.madZThreshold)
        return OutlierResponse(flags=flags)
    except Exception as e:
        raise _server_error("outliers", e)


@router.post("/specialty-suggestions", response_model=List[SpecialtySuggestionResult])
async def specialty_suggestions_endpoint(
    request: SpecialtySuggestionRequest = Body(...),
) -> List[SpecialtySuggestionResult]:
    """
    Rank market specialties for each provider specialty label.
    """
    try:
        return suggest_market_specialties(
            request.providerSpecialties,
            request.marketSpecialties,
            min_score=request.minScore,
            limit=request.limit,
        )
    except Exception as e:
        raise _server_error("specialty suggestions", e)


__all__ = ['router']
