"""
Compensation Normalization Service

Single source of truth for reading compensation and productivity values off a
ProviderRow and composing baseline TCC. Every comparison against market data
is made at 1.0 clinical FTE (cFTE).

Documented fallbacks (not errors):
- totalFTE <= 0 treats the entire base salary as clinical
- cFTE <= 0 normalizes TCC and wRVUs to 0 (callers exclude the provider)
- CF <= 0 yields zero incentive

Division is routed through safe_div so NaN and infinity never propagate.

The PSQ 'total_pay' basis is circular (total pay includes PSQ) and is never
computed by get_psq_dollars. Callers resolve it with resolve_psq_on_total_pay.
"""

import math
from typing import Dict, Optional

from tcc_engine.models.enums import PSQBasis, QualityPaymentsSource
from tcc_engine.models.schemas import (
    AdditionalTCCConfig,
    BaselineTCCBreakdown,
    BaselineTCCConfig,
    NormalizedPer1p0CFTE,
    PSQConfig,
    ProviderRow,
    TCCComponentOptions,
)


# Component ids understood by componentOptions
QUALITY_COMPONENT_ID: str = "quality"
OTHER_INCENTIVES_COMPONENT_ID: str = "otherIncentives"


# =============================================================================
# Arithmetic Guards
# =============================================================================


def safe_div(a: float, b: Optional[float], fallback: float) -> float:
    """
    Divide a by b, returning fallback when b is None, 0 or NaN, or when the
    quotient is NaN or infinite.
    """
    if b is None or b == 0 or math.isnan(b):
        return fallback
    q = a / b
    if math.isnan(q) or math.isinf(q):
        return fallback
    return q


def _num(value: Optional[float]) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return float(value)


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


# =============================================================================
# Provider Field Readers
# =============================================================================


def get_base_salary(provider: ProviderRow) -> float:
    """Sum of basePayComponents when any amount > 0, otherwise baseSalary."""
    components = provider.basePayComponents or []
    if any(_num(c.amount) > 0 for c in components):
        return sum(c.amount for c in components if _finite(c.amount))
    return _num(provider.baseSalary)


def get_clinical_base(provider: ProviderRow) -> float:
    """
    Clinical portion of base salary.

    clinicalFTESalary wins when finite. Otherwise base * clinicalFTE/totalFTE;
    if totalFTE <= 0 the whole base is treated as clinical.
    """
    if _finite(provider.clinicalFTESalary):
        return float(provider.clinicalFTESalary)
    base = get_base_salary(provider)
    total_fte = _num(provider.totalFTE)
    if total_fte <= 0:
        return base
    return base * safe_div(_num(provider.clinicalFTE), total_fte, 1.0)


def get_clinical_fte(provider: ProviderRow) -> float:
    """clinicalFTE if > 0, else totalFTE if > 0, else 0."""
    c = _num(provider.clinicalFTE)
    if c > 0:
        return c
    t = _num(provider.totalFTE)
    return t if t > 0 else 0.0


def get_total_wrvus(provider: ProviderRow) -> float:
    """totalWRVUs when non-zero, else workRVUs + pchWRVUs + outsideWRVUs."""
    total = _num(provider.totalWRVUs)
    if total:
        return total
    return _num(provider.workRVUs) + _num(provider.pchWRVUs) + _num(provider.outsideWRVUs)


# =============================================================================
# Component Dollars
# =============================================================================


def get_psq_dollars(
    clinical_base: float,
    config: PSQConfig,
    total_guaranteed: Optional[float] = None,
) -> float:
    """
    PSQ dollars for a pay basis.

    Args:
        clinical_base: Clinical base salary
        config: PSQ inclusion, percent, basis and optional fixed dollars
        total_guaranteed: Guaranteed pay (base plus guaranteed extras) used by
            the total_guaranteed basis; clinical base when omitted

    Returns:
        PSQ dollars. 0 when excluded or when the basis is total_pay.
    """
    if not config.include:
        return 0.0
    if config.psqBasis == PSQBasis.TOTAL_PAY:
        return 0.0
    if _finite(config.psqFixedDollars):
        return float(config.psqFixedDollars)
    if config.psqBasis == PSQBasis.FIXED:
        return 0.0
    pct = config.psqPercent or 0.0
    basis = clinical_base
    if config.psqBasis == PSQBasis.TOTAL_GUARANTEED and _finite(total_guaranteed):
        basis = float(total_guaranteed)
    return basis * (pct / 100.0)


def resolve_psq_on_total_pay(other_pay: float, pct: float) -> float:
    """
    PSQ as a percent of total pay where total pay includes the PSQ itself.

    psq = p * (other + psq)  =>  psq = other * p / (1 - p)
    """
    p = pct / 100.0
    if p >= 1:
        return 0.0
    return other_pay * p / (1 - p)


def get_additional_tcc(
    config: Optional[AdditionalTCCConfig],
    clinical_base: float,
    cfte: float,
) -> float:
    """Layered TCC: percent of base + dollars per 1.0 cFTE + flat dollars."""
    if config is None:
        return 0.0
    pct = config.percentOfBase if _finite(config.percentOfBase) else 0.0
    per_fte = config.dollarPer1p0FTE if _finite(config.dollarPer1p0FTE) else 0.0
    flat = config.flatDollar if _finite(config.flatDollar) else 0.0
    if pct == 0 and per_fte == 0 and flat == 0:
        return 0.0
    return clinical_base * (pct / 100.0) + per_fte * max(cfte, 0.0) + flat


def resolve_from_file_amount(
    raw_value: float,
    component_id: str,
    cfte: float,
    component_options: Optional[Dict[str, TCCComponentOptions]] = None,
) -> float:
    """File value, scaled by cFTE when the component is stored per 1.0 FTE."""
    if raw_value == 0 or cfte <= 0:
        return raw_value
    opts = (component_options or {}).get(component_id)
    if opts is not None and opts.normalizeForFTE:
        return raw_value * cfte
    return raw_value


def get_quality_dollars(provider: ProviderRow, config: BaselineTCCConfig) -> float:
    """Quality payments from file, or clinical base * override % of base."""
    if not config.includeQualityPayments:
        return 0.0
    clinical_base = get_clinical_base(provider)
    if (
        config.qualityPaymentsSource == QualityPaymentsSource.OVERRIDE_PCT_OF_BASE
        and config.qualityPaymentsOverridePct is not None
    ):
        return clinical_base * (config.qualityPaymentsOverridePct / 100.0)
    return resolve_from_file_amount(
        _num(provider.qualityPayments),
        QUALITY_COMPONENT_ID,
        get_clinical_fte(provider),
        config.componentOptions,
    )


def get_other_incentives_dollars(provider: ProviderRow, config: BaselineTCCConfig) -> float:
    if not config.includeOtherIncentives:
        return 0.0
    return resolve_from_file_amount(
        _num(provider.otherIncentives),
        OTHER_INCENTIVES_COMPONENT_ID,
        get_clinical_fte(provider),
        config.componentOptions,
    )


# =============================================================================
# Incentive and Normalization
# =============================================================================


def get_incentive_derived(clinical_base: float, wrvus: float, cf: float) -> float:
    """
    Work RVU incentive with a derived threshold.

    threshold = clinical_base / CF; incentive = max(0, wRVUs - threshold) * CF.
    Returns 0 when CF <= 0.
    """
    if cf <= 0:
        return 0.0
    threshold = safe_div(clinical_base, cf, 0.0)
    above = wrvus - threshold
    return above * cf if above > 0 else 0.0


def normalize_to_1p0_cfte(tcc_raw: float, wrvus: float, cfte: float) -> NormalizedPer1p0CFTE:
    if cfte <= 0:
        return NormalizedPer1p0CFTE(tcc_1p0=0.0, wRVU_1p0=0.0, cFTE=0.0)
    return NormalizedPer1p0CFTE(tcc_1p0=tcc_raw / cfte, wRVU_1p0=wrvus / cfte, cFTE=cfte)


# =============================================================================
# Baseline TCC
# =============================================================================


def get_baseline_tcc_breakdown(provider: ProviderRow, config: BaselineTCCConfig) -> BaselineTCCBreakdown:
    """
    Component build-up of baseline TCC.

    clinical base + PSQ + quality + incentive at current CF (optional)
    + other incentives (optional) + additional TCC.
    """
    clinical_base = get_clinical_base(provider)
    cfte = get_clinical_fte(provider)
    psq = get_psq_dollars(clinical_base, config.psqConfig) if config.psqConfig else 0.0
    quality = get_quality_dollars(provider, config)
    incentive = (
        get_incentive_derived(clinical_base, get_total_wrvus(provider), config.currentCF)
        if config.includeWorkRVUIncentive
        else 0.0
    )
    other = get_other_incentives_dollars(provider, config)
    additional = get_additional_tcc(config.additionalTCC, clinical_base, cfte)
    total = clinical_base + psq + quality + incentive + other + additional
    return BaselineTCCBreakdown(
        clinicalBase=clinical_base,
        psq=psq,
        quality=quality,
        workRVUIncentive=incentive,
        otherIncentives=other,
        additionalTCC=additional,
        total=total,
    )


def get_baseline_tcc(provider: ProviderRow, config: BaselineTCCConfig) -> float:
    return get_baseline_tcc_breakdown(provider, config).total


__all__ = [
    'safe_div',
    'get_base_salary',
    'get_clinical_base',
    'get_clinical_fte',
    'get_total_wrvus',
    'get_psq_dollars',
    'resolve_psq_on_total_pay',
    'get_additional_tcc',
    'resolve_from_file_amount',
    'get_quality_dollars',
    'get_other_incentives_dollars',
    'get_incentive_derived',
    'normalize_to_1p0_cfte',
    'get_baseline_tcc_breakdown',
    'get_baseline_tcc',
]
