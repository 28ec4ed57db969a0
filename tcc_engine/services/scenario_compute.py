"""
Scenario Compute Service

Computes every output for one provider under one set of ScenarioInputs:
threshold, wRVUs above threshold, current and modeled CF, incentive, PSQ,
current / modeled TCC, market percentiles, governance flags and risk.

Business rules:
- Threshold methods
    derived          = clinical base / modeled CF
    annual           = scenario annualThreshold, falling back to the
                       provider's currentThreshold
    wrvu_percentile  = market wRVU at the chosen percentile * cFTE
- Modeled CF = overrideCF when cfSource is override, otherwise
  interp(proposedCFPercentile) * cfAdjustmentFactor
- Incentive = max(0, wRVUs - threshold) * CF; never negative
- Current TCC = file currentTCC verbatim when > 0, otherwise
  clinical base + current incentive + current PSQ + quality + other
- Modeled TCC = modeled clinical base + incentive + PSQ + quality + other
- Percentiles compare values per 1.0 clinical FTE
- Alignment gap = TCC percentile - wRVU percentile

Governance flags:
- modeledInPolicyBand: 25 <= modeled TCC percentile <= 75
- fmvCheckSuggested:   modeled TCC percentile > fmv_high_percentile (90)
- underpayRisk / cfBelow25: current CF percentile < 25 (only when CF > 0)

Usage:
    from tcc_engine.services.scenario_compute import compute_scenario

    results = compute_scenario(provider, market, ScenarioInputs())
"""

import math
from typing import Optional

from tcc_engine.core.config import Settings, get_settings
from tcc_engine.models.enums import CFSource, PSQBasis, ThresholdMethod
from tcc_engine.models.schemas import (
    GovernanceFlags,
    MarketRow,
    PercentileResult,
    PSQConfig,
    ProviderRow,
    RiskAssessment,
    ScenarioInputs,
    ScenarioResults,
)
from tcc_engine.services.interpolation import infer_from_benchmarks, interp_from_benchmarks
from tcc_engine.services.normalization import (
    get_base_salary,
    get_clinical_base,
    get_clinical_fte,
    get_psq_dollars,
    get_total_wrvus,
    resolve_psq_on_total_pay,
    safe_div,
)


# =============================================================================
# Policy Band
# =============================================================================

POLICY_BAND_LOW: float = 25.0
POLICY_BAND_HIGH: float = 75.0
UNDERPAY_CF_PERCENTILE: float = 25.0


def _num(value: Optional[float]) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return float(value)


def compute_modeled_cf(market: MarketRow, scenario: ScenarioInputs) -> float:
    """Modeled CF from the override or the market CF curve with haircut."""
    if scenario.cfSource == CFSource.OVERRIDE and scenario.overrideCF is not None:
        return float(scenario.overrideCF)
    interpolated = interp_from_benchmarks(scenario.proposedCFPercentile, market.cf())
    return interpolated * scenario.cfAdjustmentFactor


def compute_annual_threshold(
    provider: ProviderRow,
    market: MarketRow,
    scenario: ScenarioInputs,
    clinical_base: float,
    clinical_fte: float,
    modeled_cf: float,
) -> float:
    """Annual wRVU threshold for the scenario's threshold method."""
    if scenario.thresholdMethod == ThresholdMethod.ANNUAL:
        if scenario.annualThreshold is not None and scenario.annualThreshold > 0:
            return float(scenario.annualThreshold)
        return _num(provider.currentThreshold)
    if scenario.thresholdMethod == ThresholdMethod.WRVU_PERCENTILE:
        per_fte = interp_from_benchmarks(scenario.wrvuPercentile, market.wrvu())
        return per_fte * clinical_fte
    return safe_div(clinical_base, modeled_cf, 0.0)


def _psq(
    percent: float,
    basis: PSQBasis,
    clinical_base: float,
    total_guaranteed: float,
    other_pay: float,
    fixed_dollars: Optional[float] = None,
) -> float:
    if basis == PSQBasis.TOTAL_PAY:
        return resolve_psq_on_total_pay(other_pay, percent)
    config = PSQConfig(
        include=percent > 0 or fixed_dollars is not None,
        psqPercent=percent,
        psqBasis=basis,
        psqFixedDollars=fixed_dollars,
    )
    return get_psq_dollars(clinical_base, config, total_guaranteed=total_guaranteed)


def _off_scale_warning(label: str, result: PercentileResult) -> Optional[str]:
    if result.belowRange or result.aboveRange:
        return f"{label} percentile is off-scale (below 25 or above 90)"
    return None


def compute_scenario(
    provider: ProviderRow,
    market: MarketRow,
    scenario: ScenarioInputs,
    settings: Optional[Settings] = None,
) -> ScenarioResults:
    """
    Compute scenario results for one provider against one market row.

    Args:
        provider: Validated provider row
        market: Market row for the provider's specialty
        scenario: Scenario levers (immutable)
        settings: Engine settings; defaults to get_settings()

    Returns:
        ScenarioResults
    """
    settings = settings or get_settings()
    warnings = []
    high_risk = []

    total_fte = _num(provider.totalFTE) or 1.0
    clinical_fte = get_clinical_fte(provider) or 1.0
    total_wrvus = get_total_wrvus(provider)
    modeled_wrvus = (
        float(scenario.modeledWRVUs)
        if scenario.modeledWRVUs is not None and math.isfinite(scenario.modeledWRVUs)
        else total_wrvus
    )

    base_salary = get_base_salary(provider)
    clinical_base = get_clinical_base(provider)
    if scenario.modeledBasePay is not None and math.isfinite(scenario.modeledBasePay):
        modeled_full_base = float(scenario.modeledBasePay)
        provider_total_fte = _num(provider.totalFTE)
        if provider_total_fte > 0:
            modeled_base = modeled_full_base * safe_div(_num(provider.clinicalFTE), provider_total_fte, 1.0)
        else:
            modeled_base = modeled_full_base
    else:
        modeled_full_base = base_salary
        modeled_base = clinical_base

    low_fte = settings.low_fte_risk_threshold
    if clinical_fte < low_fte:
        high_risk.append(f"Clinical FTE ({clinical_fte:g}) < {low_fte:g}")
    if total_fte < low_fte:
        high_risk.append(f"Total FTE ({total_fte:g}) < {low_fte:g}")
    if 0 < total_wrvus < settings.low_wrvu_warning_threshold:
        warnings.append(f"Total wRVUs ({total_wrvus:g}) low; ratios may be unstable")

    # --- Thresholds, CF and incentive ---
    modeled_cf = compute_modeled_cf(market, scenario)
    annual_threshold = compute_annual_threshold(
        provider, market, scenario, modeled_base, clinical_fte, modeled_cf
    )
    wrvus_above = max(0.0, modeled_wrvus - annual_threshold)
    annual_incentive = max(0.0, wrvus_above * modeled_cf)

    current_cf = _num(provider.currentCF)
    current_incentive = 0.0
    if current_cf > 0:
        current_threshold = _num(provider.currentThreshold) or safe_div(clinical_base, current_cf, 0.0)
        current_incentive = max(0.0, total_wrvus - current_threshold) * current_cf

    quality = _num(provider.qualityPayments)
    other = _num(provider.otherIncentives)

    # --- Current TCC ---
    current_psq = _psq(
        scenario.currentPsqPercent,
        scenario.psqBasis,
        clinical_base,
        base_salary,
        clinical_base + current_incentive + quality + other,
    )
    file_tcc = _num(provider.currentTCC)
    if file_tcc > 0:
        current_tcc = file_tcc
    else:
        current_tcc = clinical_base + current_incentive + current_psq + quality + other

    # --- Modeled TCC ---
    psq_dollars = _psq(
        scenario.psqPercent,
        scenario.psqBasis,
        modeled_base,
        modeled_full_base,
        modeled_base + annual_incentive + quality + other,
        fixed_dollars=scenario.psqFixedDollars,
    )
    modeled_tcc = modeled_base + annual_incentive + psq_dollars + quality + other
    change_in_tcc = modeled_tcc - current_tcc

    # --- Percentiles per 1.0 cFTE ---
    wrvu_res = infer_from_benchmarks(safe_div(total_wrvus, clinical_fte, total_wrvus), market.wrvu())
    tcc_res = infer_from_benchmarks(safe_div(current_tcc, clinical_fte, current_tcc), market.tcc())
    modeled_tcc_res = infer_from_benchmarks(safe_div(modeled_tcc, clinical_fte, modeled_tcc), market.tcc())
    if current_cf > 0:
        cf_res = infer_from_benchmarks(current_cf, market.cf())
    else:
        cf_res = PercentileResult(percentile=0.0)
    cf_modeled_res = infer_from_benchmarks(modeled_cf, market.cf())

    for label, res in (
        ("wRVU", wrvu_res),
        ("TCC", tcc_res),
        ("Modeled TCC", modeled_tcc_res),
        ("CF", cf_res),
    ):
        message = _off_scale_warning(label, res)
        if message:
            warnings.append(message)

    cf_below_25 = current_cf > 0 and cf_res.percentile < UNDERPAY_CF_PERCENTILE
    flags = GovernanceFlags(
        modeledInPolicyBand=POLICY_BAND_LOW <= modeled_tcc_res.percentile <= POLICY_BAND_HIGH,
        fmvCheckSuggested=modeled_tcc_res.percentile > settings.fmv_high_percentile,
        underpayRisk=cf_below_25,
        cfBelow25=cf_below_25,
    )

    return ScenarioResults(
        totalWRVUs=total_wrvus,
        clinicalFTE=clinical_fte,
        clinicalBase=clinical_base,
        annualThreshold=annual_threshold,
        wRVUsAboveThreshold=wrvus_above,
        currentCF=current_cf,
        modeledCF=modeled_cf,
        imputedTCCPerWRVURatioCurrent=safe_div(current_tcc, total_wrvus, 0.0),
        imputedTCCPerWRVURatioModeled=safe_div(modeled_tcc, modeled_wrvus, 0.0),
        currentIncentive=current_incentive,
        annualIncentive=annual_incentive,
        currentPsqDollars=current_psq,
        psqDollars=psq_dollars,
        currentTCC=current_tcc,
        modeledTCC=modeled_tcc,
        changeInTCC=change_in_tcc,
        wrvuPercentile=wrvu_res.percentile,
        wrvuPercentileBelowRange=wrvu_res.belowRange,
        wrvuPercentileAboveRange=wrvu_res.aboveRange,
        tccPercentile=tcc_res.percentile,
        tccPercentileBelowRange=tcc_res.belowRange,
        tccPercentileAboveRange=tcc_res.aboveRange,
        modeledTCCPercentile=modeled_tcc_res.percentile,
        modeledTCCPercentileBelowRange=modeled_tcc_res.belowRange,
        modeledTCCPercentileAboveRange=modeled_tcc_res.aboveRange,
        cfPercentileCurrent=cf_res.percentile,
        cfPercentileCurrentBelowRange=cf_res.belowRange,
        cfPercentileCurrentAboveRange=cf_res.aboveRange,
        cfPercentileModeled=cf_modeled_res.percentile,
        alignmentGapBaseline=tcc_res.percentile - wrvu_res.percentile,
        alignmentGapModeled=modeled_tcc_res.percentile - wrvu_res.percentile,
        governanceFlags=flags,
        risk=RiskAssessment(highRisk=high_risk, warnings=list(warnings)),
        warnings=warnings,
    )


__all__ = [
    'compute_modeled_cf',
    'compute_annual_threshold',
    'compute_scenario',
]
