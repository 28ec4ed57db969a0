"""
Conversion Factor Optimizer Service

Recommends a specialty-level conversion factor (CF) that brings modeled TCC
percentiles in line with productivity, subject to bounds, governance and
policy caps.

Pipeline per run:
1. build_provider_contexts: market match, baseline TCC, per 1.0 cFTE
   normalization, percentiles, effective rate and exclusion reasons
2. optimize_cf_for_specialty: bounded grid search minimizing the mean
   squared / absolute objective error over included providers
3. governance (services/governance.py): status, action and explanation
4. run_optimizer_all_specialties: grouping, summary and audit export

Baseline TCC = clinical base + PSQ + quality + work RVU incentive at current
CF + other incentives + additional TCC (each per OptimizerSettings).
Modeled TCC at CF = baseline without the incentive + incentive(CF), where
incentive(CF) = max(0, wRVUs - clinical base / CF) * CF on growth-adjusted
wRVUs.

Search grid:
    cfMin = max(absoluteMin, current * (1 - minChangePct/100))
    cfMax = min(absoluteMax, current * (1 + maxChangePct/100))
    step >= max(range / 40, current * gridStepPct); at most 101 points;
    the last point is exactly cfMax.
The baseline objective is the incumbent; only strictly better candidates
replace it.

Timestamps come from the caller; nothing here reads the clock.
"""

import logging
import math
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from tcc_engine.models.enums import (
    BenchmarkBasis,
    BudgetConstraintKind,
    CFPolicyEnforcementMode,
    ErrorMetric,
    ExclusionReason,
    ObjectiveKind,
    OptimizerFlag,
    OptimizerStatus,
    PolicyCheckStatus,
    RecommendedAction,
    RiskLevel,
)
from tcc_engine.models.schemas import (
    BaselineTCCConfig,
    BudgetConstraint,
    CFSweepAllResult,
    CFSweepRow,
    CFSweepSpecialtyResult,
    ExcludedProvider,
    ExclusionReasonCount,
    MarketCFBenchmarks,
    MarketRow,
    OptimizationObjective,
    OptimizerAuditExport,
    OptimizerProviderContext,
    OptimizerRunResult,
    OptimizerRunSummary,
    OptimizerSettings,
    OptimizerSpecialtyResult,
    ProviderRow,
    PSQConfig,
)
from tcc_engine.services.governance import (
    BUDGET_CAP_EXCEEDED,
    CHANGE_EPSILON,
    MAX_CHANGE_BOUND,
    build_explanation,
    determine_action,
    evaluate_status,
    normalize_specialty_metrics,
)
from tcc_engine.services.interpolation import infer_from_benchmarks, interp_from_benchmarks
from tcc_engine.services.normalization import (
    get_baseline_tcc_breakdown,
    get_clinical_fte,
    get_incentive_derived,
    get_total_wrvus,
    normalize_to_1p0_cfte,
)
from tcc_engine.services.outliers import detect_outliers
from tcc_engine.services.specialty_match import match_market_row, normalize_specialty_key


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

GRID_STEPS_DEFAULT: int = 41
GRID_STEPS_MAX: int = 101
LOW_SAMPLE_THRESHOLD: int = 3
TOP_EXCLUSION_REASONS: int = 10

HIGH_RISK_GAP: float = 15.0
MEDIUM_RISK_GAP: float = 5.0
EFFECTIVE_RATE_FMV_PERCENTILE: float = 90.0

RAW_BASIS_ASSUMPTION: str = "Not apples-to-apples to market benchmarks"

SpecialtyProgress = Callable[[int, int, str], None]


# =============================================================================
# Provider Contexts
# =============================================================================


def is_loa(provider: ProviderRow) -> bool:
    return provider.loa is True


def get_basis_fte(provider: ProviderRow, basis: BenchmarkBasis) -> float:
    """FTE used to normalize modeled TCC for the chosen benchmark basis."""
    total_fte = provider.totalFTE or 1.0
    clinical_fte = provider.clinicalFTE or 0.0
    if basis == BenchmarkBasis.PER_CFTE:
        return clinical_fte if clinical_fte > 0 else total_fte
    if basis == BenchmarkBasis.PER_TFTE:
        return total_fte
    return 1.0


def build_baseline_config(settings: OptimizerSettings, current_cf: float) -> BaselineTCCConfig:
    """Baseline TCC composition implied by the optimizer settings."""
    scenario = settings.baseScenarioInputs
    psq_config = None
    if settings.includePsqInBaselineAndModeled and scenario.psqPercent > 0:
        psq_config = PSQConfig(
            include=True,
            psqPercent=scenario.psqPercent,
            psqBasis=scenario.psqBasis,
            psqFixedDollars=settings.psqFixedDollars,
        )
    return BaselineTCCConfig(
        psqConfig=psq_config,
        includeQualityPayments=settings.includeQualityPaymentsInBaselineAndModeled,
        qualityPaymentsSource=settings.qualityPaymentsSource,
        qualityPaymentsOverridePct=settings.qualityPaymentsOverridePct,
        includeWorkRVUIncentive=settings.includeWorkRVUIncentiveInTCC,
        includeOtherIncentives=settings.includeOtherIncentivesInBaselineAndModeled,
        currentCF=current_cf,
        componentOptions=settings.componentOptions,
        additionalTCC=settings.additionalTCC,
    )


def modeled_tcc_at_cf(ctx: OptimizerProviderContext, cf: float) -> float:
    return ctx.nonIncentiveTCC + get_incentive_derived(ctx.clinicalBase, ctx.effectiveTotalWRVUs, cf)


def _normalize_by_basis(value: float, basis_fte: float) -> float:
    return value / basis_fte if basis_fte > 0 else 0.0


def _build_context(
    provider: ProviderRow,
    index: int,
    market_rows: Sequence[MarketRow],
    settings: OptimizerSettings,
    synonym_map: Dict[str, str],
) -> OptimizerProviderContext:
    rules = settings.defaultExclusionRules
    growth = 1 + settings.wRVUGrowthFactorPct / 100.0
    match = match_market_row(provider, market_rows, synonym_map)
    market = match.marketRow
    provider_id = provider.providerId or provider.providerName or f"provider-{index}"

    reasons: List[ExclusionReason] = []
    if market is None:
        reasons.append(ExclusionReason.MISSING_MARKET)

    current_cf = provider.currentCF or (market.CF_50 if market else 0.0)
    breakdown = get_baseline_tcc_breakdown(provider, build_baseline_config(settings, current_cf))
    cfte = get_clinical_fte(provider)
    total_wrvus = get_total_wrvus(provider)
    normalized = normalize_to_1p0_cfte(breakdown.total, total_wrvus, cfte)
    wrvu_1p0 = normalized.wRVU_1p0 * growth
    effective_wrvus = total_wrvus * growth
    basis_fte = get_basis_fte(provider, settings.benchmarkBasis)

    if cfte <= 0:
        reasons.append(ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS)
    elif cfte < rules.minBasisFTE:
        reasons.append(ExclusionReason.BASIS_FTE_BELOW_MIN)
    if 0 < wrvu_1p0 < rules.minWRVUPer1p0CFTE:
        reasons.append(ExclusionReason.LOW_WRVU_VOLUME)
    if rules.excludeLOA and is_loa(provider):
        reasons.append(ExclusionReason.LOA_FLAGGED)
    if provider_id in settings.manualExcludeProviderIds:
        reasons.append(ExclusionReason.MANUAL_EXCLUDE)

    non_incentive = breakdown.total - breakdown.workRVUIncentive
    modeled_current = non_incentive + get_incentive_derived(breakdown.clinicalBase, effective_wrvus, current_cf)
    normalized_wrvu = _normalize_by_basis(effective_wrvus, basis_fte)
    normalized_tcc = _normalize_by_basis(modeled_current, basis_fte)
    effective_rate = normalized_tcc / normalized_wrvu if normalized_wrvu > 0 else 0.0

    if market is not None:
        wrvu_res = infer_from_benchmarks(wrvu_1p0, market.wrvu())
        tcc_res = infer_from_benchmarks(normalized.tcc_1p0, market.tcc())
        eff_res = infer_from_benchmarks(effective_rate, market.cf())
        wrvu_pct, wrvu_off = wrvu_res.percentile, wrvu_res.off_scale
        tcc_pct, tcc_off = tcc_res.percentile, tcc_res.off_scale
        eff_pct, eff_off = eff_res.percentile, eff_res.off_scale
    else:
        wrvu_pct = tcc_pct = eff_pct = 0.0
        wrvu_off = tcc_off = eff_off = False

    include_anyway = provider_id in settings.manualIncludeProviderIds
    return OptimizerProviderContext(
        providerId=provider_id,
        providerName=provider.providerName,
        specialty=(provider.specialty or "").strip(),
        division=provider.division,
        matchStatus=match.status,
        marketSpecialty=market.specialty if market else None,
        cFTE=cfte,
        basisFTE=basis_fte,
        clinicalBase=breakdown.clinicalBase,
        currentCF=current_cf,
        totalWRVUs=total_wrvus,
        effectiveTotalWRVUs=effective_wrvus,
        nonIncentiveTCC=non_incentive,
        currentTCCBaseline=breakdown.total,
        currentTCC_1p0=normalized.tcc_1p0,
        currentTCC_pctile=tcc_pct,
        tccOffScale=tcc_off,
        wRVU_1p0=wrvu_1p0,
        wrvuPercentile=wrvu_pct,
        wrvuOffScale=wrvu_off,
        baselineGap=tcc_pct - wrvu_pct,
        normalizedWRVU=normalized_wrvu,
        normalizedTCC=normalized_tcc,
        effectiveRate=effective_rate,
        effectiveRatePercentile=eff_pct,
        effectiveRateOffScale=eff_off,
        modeledTCCRaw=modeled_current,
        included=not reasons or include_anyway,
        includeAnyway=include_anyway,
        exclusionReasons=reasons,
    )


def _apply_outlier_exclusions(
    contexts: List[OptimizerProviderContext],
    settings: OptimizerSettings,
) -> List[OptimizerProviderContext]:
    """Flag wRVU / TCC / effective-rate outliers within each market specialty."""
    params = settings.outlierParams
    groups: Dict[str, List[int]] = OrderedDict()
    for i, ctx in enumerate(contexts):
        if ctx.marketSpecialty and not ctx.exclusionReasons:
            groups.setdefault(ctx.marketSpecialty, []).append(i)

    added: Dict[int, List[ExclusionReason]] = {}
    for indices in groups.values():
        for attr, reason in (
            ('wRVU_1p0', ExclusionReason.OUTLIER_WRVU),
            ('currentTCC_1p0', ExclusionReason.OUTLIER_TCC),
            ('effectiveRate', ExclusionReason.OUTLIER_EFFECTIVE_RATE),
        ):
            values = [getattr(contexts[i], attr) for i in indices]
            flags = detect_outliers(values, params.method, params.iqrK, params.madZThreshold)
            for i, flagged in zip(indices, flags):
                if flagged:
                    added.setdefault(i, []).append(reason)

    result = list(contexts)
    for i, reasons in added.items():
        ctx = contexts[i]
        all_reasons = ctx.exclusionReasons + reasons
        result[i] = ctx.model_copy(update={
            'exclusionReasons': all_reasons,
            'included': ctx.includeAnyway,
        })
    if added:
        logger.debug(f"Outlier pass flagged {len(added)} provider(s)")
    return result


def build_provider_contexts(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: OptimizerSettings,
    synonym_map: Optional[Dict[str, str]] = None,
) -> List[OptimizerProviderContext]:
    """
    One context per provider, in input order.

    A manual include keeps a provider in the run regardless of exclusion
    reasons; the reasons are still recorded.
    """
    synonym_map = synonym_map or {}
    contexts = [
        _build_context(p, i, market_rows, settings, synonym_map)
        for i, p in enumerate(providers)
    ]
    if settings.outlierParams.excludeOutliers:
        contexts = _apply_outlier_exclusions(contexts, settings)
    return contexts


# =============================================================================
# Objective
# =============================================================================


def objective_error(objective: OptimizationObjective, modeled_pctile: float, wrvu_pctile: float) -> float:
    """Signed per-provider error for the objective kind."""
    if objective.kind == ObjectiveKind.ALIGN_PERCENTILE:
        return modeled_pctile - wrvu_pctile
    if objective.kind == ObjectiveKind.TARGET_FIXED_PERCENTILE:
        return modeled_pctile - objective.targetPercentile
    if objective.kind == ObjectiveKind.HYBRID:
        return (
            objective.alignWeight * (modeled_pctile - wrvu_pctile)
            + objective.targetWeight * (modeled_pctile - objective.targetPercentile)
        )
    raise ValueError(f"Unknown optimization objective: {objective.kind}")


def compute_objective(errors: Sequence[float], metric: ErrorMetric) -> float:
    if not errors:
        return 0.0
    arr = np.asarray(errors, dtype=float)
    if metric == ErrorMetric.SQUARED:
        return float(np.mean(arr ** 2))
    return float(np.mean(np.abs(arr)))


def _mean_abs(errors: Sequence[float]) -> float:
    return float(np.mean(np.abs(errors))) if len(errors) else 0.0


def _modeled_percentiles(
    included: Sequence[OptimizerProviderContext],
    market: MarketRow,
    cf: float,
) -> List[Tuple[float, float, float]]:
    """(modeled raw, modeled per basis FTE, modeled percentile) per context."""
    out = []
    for ctx in included:
        raw = modeled_tcc_at_cf(ctx, cf)
        per_basis = _normalize_by_basis(raw, ctx.basisFTE)
        out.append((raw, per_basis, infer_from_benchmarks(per_basis, market.tcc()).percentile))
    return out


def _objective_at_cf(
    included: Sequence[OptimizerProviderContext],
    market: MarketRow,
    cf: float,
    settings: OptimizerSettings,
) -> float:
    errors = [
        objective_error(settings.optimizationObjective, pct, ctx.wrvuPercentile)
        for ctx, (_raw, _per, pct) in zip(included, _modeled_percentiles(included, market, cf))
    ]
    return compute_objective(errors, settings.errorMetric)


def build_cf_grid(current_cf: float, settings: OptimizerSettings) -> Tuple[float, float, float, List[float]]:
    """
    Bounded CF search grid.

    Returns:
        (cf_min, cf_max, step, candidates)
    """
    bounds = settings.cfBounds
    abs_min = bounds.absoluteMin if bounds.absoluteMin is not None else 0.0
    abs_max = bounds.absoluteMax if bounds.absoluteMax is not None else 1e9
    cf_min = max(abs_min, current_cf * (1 - bounds.minChangePct / 100.0))
    cf_max = min(abs_max, current_cf * (1 + bounds.maxChangePct / 100.0))
    span = cf_max - cf_min
    if span <= 0:
        return cf_min, cf_min, 0.0, [cf_min]
    preferred = max(span / (GRID_STEPS_DEFAULT - 1), current_cf * settings.gridStepPct)
    steps = min(max(2, math.ceil(span / preferred)), GRID_STEPS_MAX)
    step = span / (steps - 1)
    candidates = [cf_min + step * i for i in range(steps - 1)] + [cf_max]
    return cf_min, cf_max, step, candidates


def provider_risk_level(ctx: OptimizerProviderContext) -> RiskLevel:
    if abs(ctx.baselineGap) > HIGH_RISK_GAP or ctx.wrvuOffScale or ctx.tccOffScale:
        return RiskLevel.HIGH
    if abs(ctx.baselineGap) > MEDIUM_RISK_GAP or ctx.wrvuPercentile < 25 or ctx.wrvuPercentile > 90:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _policy_check(cf_percentile: float, threshold: float) -> PolicyCheckStatus:
    if cf_percentile > 90:
        return PolicyCheckStatus.ABOVE_90
    if cf_percentile > 75:
        return PolicyCheckStatus.ABOVE_75
    if cf_percentile > threshold:
        return PolicyCheckStatus.ABOVE_50
    return PolicyCheckStatus.OK


def _over_budget(constraint: BudgetConstraint, spend_impact: float, baseline_spend: float) -> bool:
    if constraint.kind == BudgetConstraintKind.NEUTRAL:
        return spend_impact > 0
    if constraint.kind == BudgetConstraintKind.CAP_PCT:
        return spend_impact > baseline_spend * (constraint.capPct or 0.0) / 100.0
    if constraint.kind == BudgetConstraintKind.CAP_DOLLARS:
        return spend_impact > (constraint.capDollars or 0.0)
    return False


def _market_cf(market: MarketRow) -> MarketCFBenchmarks:
    return MarketCFBenchmarks(cf25=market.CF_25, cf50=market.CF_50, cf75=market.CF_75, cf90=market.CF_90)


def _contexts_for_market(
    contexts: Sequence[OptimizerProviderContext],
    market: MarketRow,
) -> List[OptimizerProviderContext]:
    key = normalize_specialty_key(market.specialty)
    return [c for c in contexts if c.marketSpecialty and normalize_specialty_key(c.marketSpecialty) == key]


def _exclusion_messages(excluded: Sequence[OptimizerProviderContext]) -> List[str]:
    messages = []
    low_cfte = sum(
        1 for c in excluded
        if ExclusionReason.BASIS_FTE_BELOW_MIN in c.exclusionReasons
        or ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS in c.exclusionReasons
    )
    missing = sum(1 for c in excluded if ExclusionReason.MISSING_MARKET in c.exclusionReasons)
    low_wrvu = sum(1 for c in excluded if ExclusionReason.LOW_WRVU_VOLUME in c.exclusionReasons)
    if low_cfte:
        messages.append(f"{low_cfte} provider(s) excluded due to low cFTE.")
    if missing:
        messages.append(f"Missing market match for {missing} provider(s).")
    if low_wrvu:
        messages.append(f"{low_wrvu} provider(s) excluded due to low wRVU volume (ratios may be unstable).")
    return messages


# =============================================================================
# Specialty Solver
# =============================================================================


def optimize_cf_for_specialty(
    market: MarketRow,
    provider_contexts: Sequence[OptimizerProviderContext],
    settings: OptimizerSettings,
) -> OptimizerSpecialtyResult:
    """
    Recommend a CF for one market specialty.

    Args:
        market: Market row of the specialty
        provider_contexts: Contexts from build_provider_contexts (any specialty;
            only those matched to this market are used)
        settings: Optimizer settings

    Returns:
        OptimizerSpecialtyResult
    """
    governance = settings.governanceConfig
    market_cf = _market_cf(market)
    spec_contexts = _contexts_for_market(provider_contexts, market)
    included = [c for c in spec_contexts if c.included]
    excluded = [c for c in spec_contexts if not c.included]

    notes: List[str] = []
    flags: List[OptimizerFlag] = []
    key_messages: List[str] = []

    if not included:
        key_messages.extend(_exclusion_messages(excluded))
        metrics = normalize_specialty_metrics([])
        return OptimizerSpecialtyResult(
            specialty=market.specialty,
            includedCount=0,
            excludedCount=len(excluded),
            currentCF=market.CF_50,
            recommendedCF=market.CF_50,
            cfChangePct=0.0,
            preGap=0.0,
            postGap=0.0,
            meanBaselineGap=0.0,
            meanModeledGap=0.0,
            maeBefore=0.0,
            maeAfter=0.0,
            spendImpactRaw=0.0,
            cfPolicyPercentile=50.0,
            flags=[OptimizerFlag.LOW_SAMPLE],
            notes=["No included providers for this specialty."],
            keyMessages=key_messages,
            providerContexts=spec_contexts,
            recommendedAction=RecommendedAction.NO_RECOMMENDATION,
            status=OptimizerStatus.YELLOW,
            explanation=build_explanation(
                RecommendedAction.NO_RECOMMENDATION,
                OptimizerStatus.YELLOW,
                metrics,
                [],
                market.CF_50,
                market.CF_50,
                0,
                governance,
            ),
            keyMetrics=metrics,
            marketCF=market_cf,
        )

    n = len(included)
    if n <= LOW_SAMPLE_THRESHOLD:
        flags.append(OptimizerFlag.LOW_SAMPLE)
        notes.append(f"Low sample size (n={n}); result is indicative only.")
        key_messages.append(f"Low sample (n={n}); result indicative only.")

    current_cf = float(np.median([c.currentCF for c in included])) or market.CF_50
    cf_min, cf_max, step, candidates = build_cf_grid(current_cf, settings)
    objective = settings.optimizationObjective

    baseline_errors = [objective_error(objective, c.currentTCC_pctile, c.wrvuPercentile) for c in included]
    mean_baseline_gap = float(np.mean([c.baselineGap for c in included]))
    mae_before = _mean_abs(baseline_errors)

    pre_metrics = normalize_specialty_metrics(included)
    increase_blocked = pre_metrics.compPercentile > governance.hardCapPercentile
    if increase_blocked:
        notes.append("Governance pre-check: comp percentile above hard cap; CF increase blocked.")

    best_cf = current_cf
    best_objective = compute_objective(baseline_errors, settings.errorMetric)
    for cf in candidates:
        if increase_blocked and cf > current_cf + CHANGE_EPSILON:
            continue
        obj = _objective_at_cf(included, market, cf, settings)
        if obj < best_objective:
            best_objective = obj
            best_cf = cf

    # Capping detail is kept only when the action moves the CF
    capped = False
    cap_notes: List[str] = []
    cap_messages: List[str] = []

    # Try one step past the bound the solution sits on
    bound_altered = False
    if step > 0 and abs(best_cf - current_cf) > CHANGE_EPSILON:
        beyond = None
        if best_cf >= cf_max - CHANGE_EPSILON and not increase_blocked:
            beyond = cf_max + step
        elif best_cf <= cf_min + CHANGE_EPSILON and cf_min - step > 0:
            beyond = cf_min - step
        if beyond is not None and _objective_at_cf(included, market, beyond, settings) < best_objective:
            bound_altered = True
            capped = True
            cap_messages.append("CF move capped at bound; alignment may be incomplete.")

    if pre_metrics.gap > 0 and best_cf > current_cf + CHANGE_EPSILON and best_cf > market.CF_50:
        best_cf = market.CF_50
        capped = True
        cap_notes.append(
            "Pay above productivity: recommended CF capped at market 50th percentile; "
            "increase fills gap with wRVU incentive without exceeding market median."
        )
        cap_messages.append("CF capped at market 50th (pay above productivity); increase adds incentive alignment.")

    max_pct = settings.maxRecommendedCFPercentile
    max_cf_value = interp_from_benchmarks(max_pct, market.cf())
    if best_cf > 0 and best_cf > max_cf_value:
        best_cf = max_cf_value
        capped = True
        cap_notes.append(f"Recommended CF capped at {max_pct:g}th market percentile ({max_cf_value:.2f}) per policy.")
        cap_messages.append(f"CF capped at {max_pct:g}th percentile for this specialty.")

    if settings.cfPolicy.enforcementMode == CFPolicyEnforcementMode.HARD_CAP:
        policy_cf = interp_from_benchmarks(settings.cfPolicy.thresholdPercentile, market.cf())
        if best_cf > policy_cf:
            best_cf = policy_cf
            capped = True
            cap_notes.append(
                f"Recommended CF held to the {settings.cfPolicy.thresholdPercentile:g}th percentile CF policy."
            )

    # --- Governance decision ---
    status, constraints = evaluate_status(pre_metrics, governance)
    action = determine_action(n, status, increase_blocked, current_cf, best_cf, governance)
    recommended_cf = current_cf if action == RecommendedAction.HOLD else best_cf
    if action in (RecommendedAction.INCREASE, RecommendedAction.DECREASE):
        if bound_altered:
            constraints.append(MAX_CHANGE_BOUND)
        if capped:
            flags.append(OptimizerFlag.CF_CAPPED)
        notes.extend(cap_notes)
        key_messages.extend(cap_messages)
    elif capped:
        logger.debug(f"{market.specialty}: capped candidate CF {best_cf:.2f} discarded on {action.value}")

    # --- Modeled state at the recommended CF ---
    modeled = _modeled_percentiles(included, market, recommended_cf)
    updated: Dict[str, OptimizerProviderContext] = {}
    modeled_errors = []
    modeled_gaps = []
    spend_modeled = 0.0
    total_incentive = 0.0
    for ctx, (raw, per_basis, pct) in zip(included, modeled):
        baseline_incentive = get_incentive_derived(ctx.clinicalBase, ctx.effectiveTotalWRVUs, ctx.currentCF)
        modeled_incentive = get_incentive_derived(ctx.clinicalBase, ctx.effectiveTotalWRVUs, recommended_cf)
        spend_modeled += raw
        total_incentive += modeled_incentive
        modeled_errors.append(objective_error(objective, pct, ctx.wrvuPercentile))
        modeled_gaps.append(pct - ctx.wrvuPercentile)
        updated[ctx.providerId] = ctx.model_copy(update={
            'modeledTCCRaw': raw,
            'modeledTCC_1p0': per_basis,
            'modeledTCC_pctile': pct,
            'baselineIncentiveDollars': baseline_incentive,
            'modeledIncentiveDollars': modeled_incentive,
            'riskLevel': provider_risk_level(ctx),
        })
    spend_baseline = sum(c.currentTCCBaseline for c in included)
    spend_impact = spend_modeled - spend_baseline
    mean_modeled_gap = float(np.mean(modeled_gaps))
    mae_after = _mean_abs(modeled_errors)

    if best_objective > 0 and mae_after >= mae_before:
        flags.append(OptimizerFlag.NOT_CONVERGED)

    over_budget = _over_budget(settings.budgetConstraint, spend_impact, spend_baseline)
    if over_budget:
        flags.append(OptimizerFlag.OVER_BUDGET)
        constraints.append(BUDGET_CAP_EXCEEDED)
        key_messages.append("Modeled spend impact exceeds the budget constraint.")

    cf_pct = infer_from_benchmarks(recommended_cf, market.cf()).percentile
    policy_check = _policy_check(cf_pct, settings.cfPolicy.thresholdPercentile)

    effective_rate_flag = any(
        c.effectiveRatePercentile > EFFECTIVE_RATE_FMV_PERCENTILE or c.effectiveRateOffScale
        for c in included
    )
    if effective_rate_flag:
        flags.append(OptimizerFlag.FMV_RISK)
    if any(c.wrvuOffScale or c.tccOffScale for c in included):
        flags.append(OptimizerFlag.OFF_SCALE)
    if excluded:
        flags.append(OptimizerFlag.OUTLIERS_EXCLUDED)
    key_messages.extend(_exclusion_messages(excluded))

    risk_levels = [provider_risk_level(c) for c in included]
    cf_change_pct = (recommended_cf - current_cf) / current_cf * 100 if current_cf > 0 else 0.0

    explanation = build_explanation(
        action,
        status,
        pre_metrics,
        constraints,
        current_cf,
        recommended_cf,
        n,
        governance,
        cf_pct,
        market_cf,
    )

    override = _manual_override_for(settings, market.specialty)
    logger.debug(
        f"{market.specialty}: n={n} current={current_cf:.2f} recommended={recommended_cf:.2f} "
        f"action={action.value} status={status.value}"
    )

    return OptimizerSpecialtyResult(
        specialty=market.specialty,
        includedCount=n,
        excludedCount=len(excluded),
        currentCF=current_cf,
        recommendedCF=recommended_cf,
        cfChangePct=cf_change_pct,
        preGap=mean_baseline_gap,
        postGap=mean_modeled_gap,
        meanBaselineGap=mean_baseline_gap,
        meanModeledGap=mean_modeled_gap,
        maeBefore=mae_before,
        maeAfter=mae_after,
        spendImpactRaw=spend_impact,
        baselineSpendRaw=spend_baseline,
        totalModeledIncentive=total_incentive,
        overBudget=over_budget,
        policyCheck=policy_check,
        cfPolicyPercentile=cf_pct,
        effectiveRateFlag=effective_rate_flag,
        highRiskCount=sum(1 for r in risk_levels if r == RiskLevel.HIGH),
        mediumRiskCount=sum(1 for r in risk_levels if r == RiskLevel.MEDIUM),
        flags=flags,
        notes=notes,
        keyMessages=key_messages,
        providerContexts=[updated.get(c.providerId, c) if c.included else c for c in spec_contexts],
        recommendedAction=action,
        status=status,
        constraintsHit=constraints,
        explanation=explanation,
        keyMetrics=pre_metrics,
        marketCF=market_cf,
        manualCFOverride=override.recommendedCF if override else None,
        manualOverrideComment=override.comment if override else None,
        manualOverrideUser=override.user if override else None,
        manualOverrideTimestamp=override.timestamp if override else None,
    )


def _manual_override_for(settings: OptimizerSettings, specialty: str):
    key = normalize_specialty_key(specialty)
    for override in settings.manualCFOverrides:
        if normalize_specialty_key(override.specialty) == key:
            return override
    return None


# =============================================================================
# Run All Specialties
# =============================================================================


def group_markets(
    contexts: Sequence[OptimizerProviderContext],
    market_rows: Sequence[MarketRow],
    specialty_filter: Optional[str] = None,
) -> List[MarketRow]:
    """Market rows that have at least one matched provider, in first-seen order."""
    by_name: Dict[str, MarketRow] = {}
    for m in market_rows:
        if m.is_valid():
            by_name.setdefault(m.specialty, m)

    ordered: Dict[str, MarketRow] = OrderedDict()
    for ctx in contexts:
        if ctx.marketSpecialty and ctx.marketSpecialty in by_name:
            ordered.setdefault(ctx.marketSpecialty, by_name[ctx.marketSpecialty])

    markets = list(ordered.values())
    if specialty_filter and specialty_filter.strip():
        wanted = specialty_filter.strip()
        wanted_key = normalize_specialty_key(wanted)
        markets = [
            m for m in markets
            if m.specialty == wanted or normalize_specialty_key(m.specialty) == wanted_key
        ]
    return markets


def run_optimizer_all_specialties(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: OptimizerSettings,
    scenario_id: str,
    scenario_name: str,
    timestamp: datetime,
    synonym_map: Optional[Dict[str, str]] = None,
    market_dataset_version: Optional[str] = None,
    mapping_version: Optional[str] = None,
    on_progress: Optional[SpecialtyProgress] = None,
    specialty_filter: Optional[str] = None,
) -> OptimizerRunResult:
    """
    Run the optimizer for every market specialty with matched providers.

    Args:
        providers: Provider rows
        market_rows: Market rows
        settings: Optimizer settings
        scenario_id / scenario_name: Identify the run in summary and audit
        timestamp: Run timestamp
        synonym_map: Provider specialty -> market specialty
        on_progress: Called as (index, total, specialty) before each specialty
        specialty_filter: Run a single specialty (display or normalized name)

    Returns:
        OptimizerRunResult with summary, per-specialty results and audit
    """
    contexts = build_provider_contexts(providers, market_rows, settings, synonym_map)
    markets = group_markets(contexts, market_rows, specialty_filter)

    results: List[OptimizerSpecialtyResult] = []
    for i, market in enumerate(markets):
        if on_progress:
            on_progress(i, len(markets), market.specialty)
        results.append(optimize_cf_for_specialty(market, contexts, settings))

    excluded_list = [
        ExcludedProvider(
            providerId=c.providerId,
            providerName=c.providerName or c.providerId,
            specialty=c.specialty,
            reasons=c.exclusionReasons,
        )
        for c in contexts
        if not c.included and c.exclusionReasons
    ]
    reason_counts = Counter(r for item in excluded_list for r in item.reasons)
    top_reasons = [
        ExclusionReasonCount(reason=reason, count=count)
        for reason, count in sorted(reason_counts.items(), key=lambda kv: -kv[1])[:TOP_EXCLUSION_REASONS]
    ]

    key_messages: List[str] = []
    for r in results:
        for msg in r.keyMessages:
            if msg not in key_messages:
                key_messages.append(msg)

    included_total = sum(1 for c in contexts if c.included)
    summary = OptimizerRunSummary(
        scenarioId=scenario_id,
        scenarioName=scenario_name,
        timestamp=timestamp,
        specialtiesAnalyzed=len(results),
        providersIncluded=included_total,
        providersExcluded=len(excluded_list),
        topExclusionReasons=top_reasons,
        totalSpendImpactRaw=sum(r.spendImpactRaw for r in results),
        countMeetingAlignmentTarget=sum(1 for r in results if OptimizerFlag.NOT_CONVERGED not in r.flags),
        countCFAbovePolicy=sum(1 for r in results if r.policyCheck != PolicyCheckStatus.OK),
        countEffectiveRateAbove90=sum(1 for r in results if r.effectiveRateFlag),
        keyMessages=key_messages,
        marketDatasetVersion=market_dataset_version,
        mappingVersion=mapping_version,
    )

    analyzed = {normalize_specialty_key(r.specialty) for r in results}
    audit = OptimizerAuditExport(
        scenarioId=scenario_id,
        scenarioName=scenario_name,
        timestamp=timestamp,
        benchmarkBasis=settings.benchmarkBasis,
        marketBasisAssumption=RAW_BASIS_ASSUMPTION if settings.benchmarkBasis == BenchmarkBasis.RAW else None,
        optimizationObjective=settings.optimizationObjective,
        errorMetric=settings.errorMetric,
        exclusionRules=settings.defaultExclusionRules,
        outlierParams=settings.outlierParams,
        governanceConfig=settings.governanceConfig,
        budgetConstraint=settings.budgetConstraint,
        cfPolicyThreshold=settings.cfPolicy.thresholdPercentile,
        cfPolicyEnforcementMode=settings.cfPolicy.enforcementMode,
        results=results,
        excludedProviders=excluded_list,
        manualOverrides=[
            o for o in settings.manualCFOverrides
            if normalize_specialty_key(o.specialty) in analyzed
        ],
        summary=summary,
    )

    logger.info(
        f"Optimizer run '{scenario_name}': {len(results)} specialties, "
        f"{included_total} included, {len(excluded_list)} excluded"
    )
    return OptimizerRunResult(summary=summary, bySpecialty=results, audit=audit)


# =============================================================================
# CF Sweep
# =============================================================================


def run_modeled_tcc_sweep_for_specialty(
    market: MarketRow,
    provider_contexts: Sequence[OptimizerProviderContext],
    cf_percentiles: Sequence[float],
) -> CFSweepSpecialtyResult:
    """Modeled TCC at fixed market CF percentiles; no recommendation is made."""
    included = [c for c in _contexts_for_market(provider_contexts, market) if c.included]
    rows = []
    for pct in cf_percentiles:
        cf = interp_from_benchmarks(pct, market.cf())
        modeled = _modeled_percentiles(included, market, cf)
        n = len(included)
        mean_tcc_pct = sum(m[2] for m in modeled) / n if n else 0.0
        mean_wrvu_pct = sum(c.wrvuPercentile for c in included) / n if n else 0.0
        rows.append(CFSweepRow(
            cfPercentile=pct,
            cfDollars=cf,
            meanModeledTCCPctile=mean_tcc_pct,
            meanWrvuPctile=mean_wrvu_pct,
            gap=mean_tcc_pct - mean_wrvu_pct,
            totalIncentiveDollars=sum(
                get_incentive_derived(c.clinicalBase, c.effectiveTotalWRVUs, cf) for c in included
            ),
            spendImpactRaw=sum(m[0] for m in modeled) - sum(c.currentTCCBaseline for c in included),
        ))
    return CFSweepSpecialtyResult(specialty=market.specialty, rows=rows)


def run_modeled_tcc_sweep_all_specialties(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: OptimizerSettings,
    cf_percentiles: Sequence[float],
    synonym_map: Optional[Dict[str, str]] = None,
    specialty_filter: Optional[str] = None,
) -> CFSweepAllResult:
    contexts = build_provider_contexts(providers, market_rows, settings, synonym_map)
    out: Dict[str, List[CFSweepRow]] = {}
    for market in group_markets(contexts, market_rows, specialty_filter):
        result = run_modeled_tcc_sweep_for_specialty(market, contexts, cf_percentiles)
        out[result.specialty] = result.rows
    return CFSweepAllResult(bySpecialty=out)


__all__ = [
    'GRID_STEPS_DEFAULT',
    'GRID_STEPS_MAX',
    'get_basis_fte',
    'build_baseline_config',
    'modeled_tcc_at_cf',
    'build_provider_contexts',
    'objective_error',
    'compute_objective',
    'build_cf_grid',
    'provider_risk_level',
    'optimize_cf_for_specialty',
    'group_markets',
    'run_optimizer_all_specialties',
    'run_modeled_tcc_sweep_for_specialty',
    'run_modeled_tcc_sweep_all_specialties',
]
