"""
Batch Orchestrator Service

Runs scenario compute for every provider x scenario pair.

Flow per provider:
1. Resolve the market row (Exact -> Normalized -> Synonym -> Missing)
2. For each scenario, merge overrides (provider > specialty > base inputs);
   an override that fails validation is dropped with a row warning
3. compute_scenario, or emit a Missing row with results=None and risk high

iter_batch is a finite generator yielding one BatchRow per pair, so callers
own pacing and cancellation. run_batch consumes it in chunks, reporting
progress and checking a cooperative cancel callable between chunks.

Risk level:
- high:   any high-risk item, underpayRisk or fmvCheckSuggested
- medium: any warnings
- low:    otherwise

Usage:
    from tcc_engine.services.batch import run_batch

    results = run_batch(providers, markets, scenarios, run_at=datetime.now(timezone.utc))
"""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from pydantic import ValidationError

from tcc_engine.core.config import Settings, get_settings
from tcc_engine.models.enums import MatchStatus, RiskLevel
from tcc_engine.models.schemas import (
    BatchOverrides,
    BatchResults,
    BatchRow,
    BatchScenario,
    MarketRow,
    ProviderRow,
    ScenarioInputs,
    ScenarioResults,
)
from tcc_engine.services.scenario_compute import compute_scenario
from tcc_engine.services.specialty_match import match_market_row, normalize_specialty_key


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int, int], None]
CancelCheck = Callable[[], bool]

DEFAULT_SCENARIO: BatchScenario = BatchScenario(id="default", name="Current")

INVALID_OVERRIDE_WARNING: str = "Invalid scenario override ignored; base scenario inputs used"


def derive_risk_level(results: ScenarioResults) -> RiskLevel:
    """Single risk level from scenario results, for filtering and display."""
    flags = results.governanceFlags
    if results.risk.highRisk or flags.underpayRisk or flags.fmvCheckSuggested:
        return RiskLevel.HIGH
    if results.risk.warnings or results.warnings:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _lookup_override(mapping: Dict[str, Dict], key: Optional[str], normalize: bool = False) -> Dict:
    if not key:
        return {}
    if key in mapping:
        return mapping[key]
    if normalize:
        wanted = normalize_specialty_key(key)
        for k, v in mapping.items():
            if normalize_specialty_key(k) == wanted:
                return v
    return {}


def resolve_scenario_inputs(
    base: ScenarioInputs,
    provider: ProviderRow,
    overrides: Optional[BatchOverrides] = None,
) -> ScenarioInputs:
    """
    Merge partial overrides onto base inputs.

    Precedence: per-provider > per-specialty > base.
    """
    if overrides is None:
        return base
    by_specialty = _lookup_override(overrides.bySpecialty, provider.specialty, normalize=True)
    by_provider = _lookup_override(overrides.byProviderId, provider.providerId)
    if not by_specialty and not by_provider:
        return base
    merged = base.model_dump()
    merged.update(by_specialty)
    merged.update(by_provider)
    return ScenarioInputs.model_validate(merged)


def iter_batch(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    scenarios: Sequence[BatchScenario],
    overrides: Optional[BatchOverrides] = None,
    synonym_map: Optional[Dict[str, str]] = None,
    settings: Optional[Settings] = None,
) -> Iterator[BatchRow]:
    """
    Yield one BatchRow per provider x scenario, providers in input order.
    """
    settings = settings or get_settings()
    scenario_list = list(scenarios) or [DEFAULT_SCENARIO]

    for index, provider in enumerate(providers):
        provider_id = provider.providerId or provider.providerName or f"provider-{index}"
        specialty = (provider.specialty or "").strip()
        match = match_market_row(provider, market_rows, synonym_map)

        base_warnings: List[str] = []
        if not specialty:
            base_warnings.append("Missing specialty")

        if match.marketRow is None or match.status == MatchStatus.MISSING:
            missing = (
                f"Market missing for specialty: {specialty}"
                if specialty
                else "Market missing (no specialty)"
            )
            for sc in scenario_list:
                yield BatchRow(
                    providerId=provider_id,
                    providerName=provider.providerName,
                    specialty=provider.specialty,
                    division=provider.division,
                    scenarioId=sc.id,
                    scenarioName=sc.name,
                    matchStatus=MatchStatus.MISSING,
                    results=None,
                    riskLevel=RiskLevel.HIGH,
                    warnings=base_warnings + [missing],
                )
            continue

        for sc in scenario_list:
            row_warnings = list(base_warnings)
            override_rejected = False
            try:
                inputs = resolve_scenario_inputs(sc.scenarioInputs, provider, overrides)
            except ValidationError as e:
                logger.warning(
                    f"Ignoring invalid override for provider {provider_id} in scenario {sc.id}: {e.error_count()} error(s)"
                )
                inputs = sc.scenarioInputs
                override_rejected = True
                row_warnings.append(INVALID_OVERRIDE_WARNING)
            results = compute_scenario(provider, match.marketRow, inputs, settings=settings)
            warnings = row_warnings + list(results.warnings)
            warnings.extend(f"High risk: {r}" for r in results.risk.highRisk)
            risk_level = derive_risk_level(results)
            if override_rejected and risk_level == RiskLevel.LOW:
                risk_level = RiskLevel.MEDIUM
            yield BatchRow(
                providerId=provider_id,
                providerName=provider.providerName,
                specialty=provider.specialty,
                division=provider.division,
                scenarioId=sc.id,
                scenarioName=sc.name,
                matchStatus=match.status,
                matchedMarketSpecialty=match.marketRow.specialty,
                results=results,
                riskLevel=risk_level,
                warnings=warnings,
            )


def run_batch(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    scenarios: Sequence[BatchScenario],
    run_at: datetime,
    overrides: Optional[BatchOverrides] = None,
    synonym_map: Optional[Dict[str, str]] = None,
    chunk_size: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
    settings: Optional[Settings] = None,
) -> BatchResults:
    """
    Run the batch to completion or cancellation.

    Args:
        providers: Provider rows
        market_rows: Market rows
        scenarios: Scenarios to run (a default 'Current' scenario when empty)
        run_at: Run timestamp recorded in the results
        overrides: Per-specialty / per-provider partial inputs
        synonym_map: Provider specialty -> market specialty
        chunk_size: Rows per chunk (default from settings, 200)
        on_progress: Called as (processed, total, elapsed_ms) after each chunk
        should_cancel: Checked between chunks; True stops the run

    Returns:
        BatchResults; cancelled=True when stopped early
    """
    settings = settings or get_settings()
    size = chunk_size or settings.batch_chunk_size
    scenario_count = len(scenarios) or 1
    total = len(providers) * scenario_count
    start = time.perf_counter()

    rows: List[BatchRow] = []
    cancelled = False
    for row in iter_batch(providers, market_rows, scenarios, overrides, synonym_map, settings):
        rows.append(row)
        if len(rows) % size == 0:
            if on_progress:
                on_progress(len(rows), total, int((time.perf_counter() - start) * 1000))
            if should_cancel is not None and should_cancel():
                cancelled = len(rows) < total
                break

    if on_progress and not cancelled and len(rows) % size != 0:
        on_progress(len(rows), total, int((time.perf_counter() - start) * 1000))

    if cancelled:
        logger.info(f"Batch cancelled after {len(rows)}/{total} rows")
    else:
        logger.info(f"Batch complete: {len(rows)} rows ({len(providers)} providers x {scenario_count} scenarios)")

    return BatchResults(
        rows=rows,
        runAt=run_at,
        scenarioCount=scenario_count,
        providerCount=len(providers),
        cancelled=cancelled,
    )


__all__ = [
    'DEFAULT_SCENARIO',
    'INVALID_OVERRIDE_WARNING',
    'derive_risk_level',
    'resolve_scenario_inputs',
    'iter_batch',
    'run_batch',
]
