"""
Productivity Target Service

Sets a group wRVU target per specialty at 1.0 cFTE, scales it to each
provider's cFTE and ramp, and reports percent-to-target with a planning
incentive.

Group target approaches:
- wrvu_percentile: market wRVU at the target percentile
- pay_per_wrvu:    market TCC at the target percentile divided by market
                   $/wRVU (CF) at the CF percentile

Status bands on percent-to-target:
    >= 120       Above Target
    [100, 120)   At Target
    < 100        Below Target (the summary still counts <80 and 80-99 apart)

Planning incentive = max(0, actual - ramped target) * planning CF, where the
planning CF is the manual value or market CF at the planning percentile.
"""

import logging
import math
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from tcc_engine.models.enums import PlanningCFSource, ProviderTargetStatus, TargetApproach
from tcc_engine.models.schemas import (
    MarketRow,
    ProductivityTargetProviderInput,
    ProductivityTargetProviderResult,
    ProductivityTargetRunResult,
    ProductivityTargetSettings,
    ProductivityTargetSpecialtyResult,
    ProductivityTargetSpecialtySummary,
    ProviderRow,
    SpecialtyTargetRule,
    StatusBandCounts,
)
from tcc_engine.services.interpolation import interp_from_benchmarks
from tcc_engine.services.normalization import get_clinical_fte, get_total_wrvus, safe_div
from tcc_engine.services.specialty_match import match_market_row


logger = logging.getLogger(__name__)


ABOVE_TARGET_PCT: float = 120.0
AT_TARGET_PCT: float = 100.0
BAND_80_PCT: float = 80.0

MISSING_MARKET_WARNING: str = "Missing market data"
NO_TARGET_WARNING: str = "Could not compute group target"


def get_provider_target_status(percent_to_target: float) -> ProviderTargetStatus:
    # <80 and 80-99 share Below Target; only the summary bands split them
    if percent_to_target >= ABOVE_TARGET_PCT:
        return ProviderTargetStatus.ABOVE_TARGET
    if percent_to_target >= AT_TARGET_PCT:
        return ProviderTargetStatus.AT_TARGET
    return ProviderTargetStatus.BELOW_TARGET


def get_effective_target_rule(settings: ProductivityTargetSettings, specialty: str) -> SpecialtyTargetRule:
    """Per-specialty override merged over the global settings."""
    override = settings.specialtyTargetOverrides.get(specialty)
    if override is None:
        return SpecialtyTargetRule(
            targetApproach=settings.targetApproach,
            targetPercentile=settings.targetPercentile,
            cfPercentile=settings.cfPercentile,
        )
    return SpecialtyTargetRule(
        targetApproach=override.targetApproach,
        targetPercentile=(
            override.targetPercentile if override.targetPercentile is not None else settings.targetPercentile
        ),
        cfPercentile=override.cfPercentile if override.cfPercentile is not None else settings.cfPercentile,
    )


def compute_group_target_wrvu(
    specialty: str,
    settings: ProductivityTargetSettings,
    market: Optional[MarketRow],
) -> Optional[float]:
    """
    Group wRVU target at 1.0 cFTE.

    Returns:
        Target wRVUs, or None when there is no market or the market $/wRVU
        at the CF percentile is not positive
    """
    if market is None:
        return None
    rule = get_effective_target_rule(settings, specialty)
    if rule.targetApproach == TargetApproach.PAY_PER_WRVU:
        tcc = interp_from_benchmarks(rule.targetPercentile, market.tcc())
        dollars_per_wrvu = interp_from_benchmarks(rule.cfPercentile, market.cf())
        if dollars_per_wrvu <= 0:
            return None
        return tcc / dollars_per_wrvu
    return interp_from_benchmarks(rule.targetPercentile, market.wrvu())


def get_planning_cf(settings: ProductivityTargetSettings, market: Optional[MarketRow]) -> Optional[float]:
    manual = settings.planningCFManual
    if settings.planningCFSource == PlanningCFSource.MANUAL and manual is not None and math.isfinite(manual):
        return float(manual)
    if market is None:
        return None
    return interp_from_benchmarks(settings.planningCFPercentile, market.cf())


def compute_provider_targets(
    inputs: Sequence[ProductivityTargetProviderInput],
    group_target: float,
    settings: ProductivityTargetSettings,
    market: Optional[MarketRow],
) -> List[ProductivityTargetProviderResult]:
    planning_cf = get_planning_cf(settings, market)
    results = []
    for inp in inputs:
        target = group_target * inp.cFTE
        ramped = target * inp.rampFactor
        percent = safe_div(inp.actualWRVUs, ramped, 0.0) * 100 if ramped > 0 else 0.0
        incentive = None
        if planning_cf is not None and planning_cf > 0 and ramped > 0:
            incentive = max(0.0, inp.actualWRVUs - ramped) * planning_cf
        results.append(ProductivityTargetProviderResult(
            **inp.model_dump(),
            targetWRVU=target,
            rampedTargetWRVU=ramped,
            varianceWRVU=inp.actualWRVUs - ramped,
            percentToTarget=percent,
            status=get_provider_target_status(percent),
            planningIncentiveDollars=incentive,
        ))
    return results


def _untargeted(inputs: Sequence[ProductivityTargetProviderInput]) -> List[ProductivityTargetProviderResult]:
    return [
        ProductivityTargetProviderResult(
            **inp.model_dump(),
            targetWRVU=0.0,
            rampedTargetWRVU=0.0,
            varianceWRVU=inp.actualWRVUs,
            percentToTarget=0.0,
            status=ProviderTargetStatus.BELOW_TARGET,
        )
        for inp in inputs
    ]


def compute_specialty_summary(
    results: Sequence[ProductivityTargetProviderResult],
) -> ProductivityTargetSpecialtySummary:
    """Mean / median percent-to-target and band counts."""
    bands = StatusBandCounts()
    for r in results:
        pct = r.percentToTarget
        if pct < BAND_80_PCT:
            bands.below80 += 1
        elif pct < AT_TARGET_PCT:
            bands.eightyTo99 += 1
        elif pct < ABOVE_TARGET_PCT:
            bands.hundredTo119 += 1
        else:
            bands.atOrAbove120 += 1
    percents = [r.percentToTarget for r in results]
    if not percents:
        return ProductivityTargetSpecialtySummary(bandCounts=bands)
    return ProductivityTargetSpecialtySummary(
        meanPercentToTarget=float(np.mean(percents)),
        medianPercentToTarget=float(np.median(percents)),
        bandCounts=bands,
    )


def build_provider_inputs(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: ProductivityTargetSettings,
    synonym_map: Optional[Dict[str, str]] = None,
) -> Dict[str, Tuple[List[ProductivityTargetProviderInput], Optional[MarketRow]]]:
    """Provider inputs grouped by trimmed specialty, with the first matched market."""
    grouped: Dict[str, Tuple[List[ProductivityTargetProviderInput], Optional[MarketRow]]] = OrderedDict()
    for provider in providers:
        market = match_market_row(provider, market_rows, synonym_map).marketRow
        specialty = (provider.specialty or "").strip()
        provider_id = provider.providerId or provider.providerName or ""
        inputs, group_market = grouped.get(specialty, ([], None))
        inputs.append(ProductivityTargetProviderInput(
            providerId=provider_id,
            providerName=provider.providerName,
            specialty=specialty,
            cFTE=get_clinical_fte(provider),
            actualWRVUs=get_total_wrvus(provider),
            rampFactor=settings.rampFactorByProviderId.get(provider_id, 1.0),
        ))
        grouped[specialty] = (inputs, group_market or market)
    return grouped


def run_productivity_targets(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: Optional[ProductivityTargetSettings] = None,
    synonym_map: Optional[Dict[str, str]] = None,
) -> ProductivityTargetRunResult:
    """
    Targets and status for every specialty, sorted by specialty name.

    A specialty without market data keeps its providers at Below Target / 0%
    with the "Missing market data" warning.
    """
    settings = settings or ProductivityTargetSettings()
    results = []
    for specialty, (inputs, market) in build_provider_inputs(providers, market_rows, settings, synonym_map).items():
        rule = get_effective_target_rule(settings, specialty)
        group_target = compute_group_target_wrvu(specialty, settings, market)

        warning = None
        if market is None:
            warning = MISSING_MARKET_WARNING
        elif group_target is None:
            warning = NO_TARGET_WARNING

        if group_target is not None and group_target > 0:
            provider_results = compute_provider_targets(inputs, group_target, settings, market)
        else:
            provider_results = _untargeted(inputs)

        results.append(ProductivityTargetSpecialtyResult(
            specialty=specialty,
            groupTargetWRVU_1cFTE=group_target,
            targetPercentile=rule.targetPercentile,
            targetApproach=rule.targetApproach,
            providers=provider_results,
            summary=compute_specialty_summary(provider_results),
            totalPlanningIncentiveDollars=sum(r.planningIncentiveDollars or 0.0 for r in provider_results),
            warning=warning,
        ))

    results.sort(key=lambda r: r.specialty)
    logger.info(f"Productivity targets computed for {len(results)} specialties")
    return ProductivityTargetRunResult(bySpecialty=results)


__all__ = [
    'get_provider_target_status',
    'get_effective_target_rule',
    'compute_group_target_wrvu',
    'get_planning_cf',
    'compute_provider_targets',
    'compute_specialty_summary',
    'build_provider_inputs',
    'run_productivity_targets',
]
