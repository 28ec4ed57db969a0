"""
Enumeration definitions for the TCC Engine.

All enums inherit from both `str` and `Enum` so that Pydantic models serialize
them as their plain string values and accept the same strings on input.

Groups:
- Scenario levers: ThresholdMethod, CFSource, PSQBasis, QualityPaymentsSource
- Batch: MatchStatus, RiskLevel
- Outliers: OutlierMethod
- Optimizer: ObjectiveKind, ErrorMetric, BudgetConstraintKind, BenchmarkBasis,
  CFPolicyEnforcementMode, ExclusionReason, OptimizerFlag, PolicyCheckStatus,
  RecommendedAction, OptimizerStatus, Presence
- Productivity targets: TargetApproach, PlanningCFSource, ProviderTargetStatus
"""

from enum import Enum


# =============================================================================
# Scenario Levers
# =============================================================================


class ThresholdMethod(str, Enum):
    """
    How the annual wRVU threshold is determined.

    - derived: clinical base / CF (the break-even volume)
    - annual: user supplied number (falls back to provider current threshold)
    - wrvu_percentile: market wRVU at a chosen percentile, scaled by cFTE
    """
    DERIVED = "derived"
    ANNUAL = "annual"
    WRVU_PERCENTILE = "wrvu_percentile"


class CFSource(str, Enum):
    """Where the modeled CF comes from."""
    TARGET_PERCENTILE = "target_percentile"
    OVERRIDE = "override"


class PSQBasis(str, Enum):
    """
    Pay basis that the PSQ (value-based) percentage applies to.

    total_pay is circular (total pay contains PSQ) and is resolved by the
    caller, never inside get_psq_dollars.
    """
    BASE_SALARY = "base_salary"
    TOTAL_GUARANTEED = "total_guaranteed"
    TOTAL_PAY = "total_pay"
    FIXED = "fixed"


class QualityPaymentsSource(str, Enum):
    """Quality payments come from the file or as a percent of clinical base."""
    FROM_FILE = "from_file"
    OVERRIDE_PCT_OF_BASE = "override_pct_of_base"


# =============================================================================
# Batch
# =============================================================================


class MatchStatus(str, Enum):
    """
    Outcome of resolving a provider specialty to a market row.

    Resolution order is Exact -> Normalized -> Synonym; Missing otherwise.
    """
    EXACT = "Exact"
    NORMALIZED = "Normalized"
    SYNONYM = "Synonym"
    MISSING = "Missing"


class RiskLevel(str, Enum):
    """Row-level risk rollup used by batch results and optimizer drilldowns."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# Outlier Detection
# =============================================================================


class OutlierMethod(str, Enum):
    """Robust outlier detection methods."""
    IQR = "iqr"
    MAD_Z = "mad_z"


# =============================================================================
# CF Optimizer
# =============================================================================


class ObjectiveKind(str, Enum):
    """
    Discriminator for the optimization objective union.

    - align_percentile: drive TCC percentile toward each provider's wRVU percentile
    - target_fixed_percentile: drive TCC percentile toward one fixed percentile
    - hybrid: weighted blend of the two errors
    """
    ALIGN_PERCENTILE = "align_percentile"
    TARGET_FIXED_PERCENTILE = "target_fixed_percentile"
    HYBRID = "hybrid"


class ErrorMetric(str, Enum):
    """Loss applied to per-provider percentile errors."""
    SQUARED = "squared"
    ABSOLUTE = "absolute"


class BudgetConstraintKind(str, Enum):
    """Spend constraint checked against modeled spend impact."""
    NONE = "none"
    NEUTRAL = "neutral"
    CAP_PCT = "cap_pct"
    CAP_DOLLARS = "cap_dollars"


class BenchmarkBasis(str, Enum):
    """FTE basis used to normalize modeled TCC before benchmarking."""
    PER_CFTE = "per_cfte"
    PER_TFTE = "per_tfte"
    RAW = "raw"


class CFPolicyEnforcementMode(str, Enum):
    """Whether a CF above the policy percentile is only flagged or hard capped."""
    FLAG_ONLY = "flag_only"
    HARD_CAP = "hard_cap"


class ExclusionReason(str, Enum):
    """Audit reason codes attached to providers excluded from optimization."""
    NO_BENCHMARKABLE_FTE_BASIS = "no_benchmarkable_fte_basis"
    BASIS_FTE_BELOW_MIN = "basis_fte_below_min"
    LOA_FLAGGED = "loa_flagged"
    NEW_HIRE_BELOW_THRESHOLD = "new_hire_below_threshold"
    OUTLIER_WRVU = "outlier_wrvu"
    OUTLIER_TCC = "outlier_tcc"
    OUTLIER_EFFECTIVE_RATE = "outlier_effective_rate"
    MANUAL_EXCLUDE = "manual_exclude"
    MISSING_MARKET = "missing_market"
    LOW_WRVU_VOLUME = "low_wrvu_volume"


class OptimizerFlag(str, Enum):
    """Diagnostic flags attached to a specialty result."""
    LOW_SAMPLE = "low_sample"
    CF_CAPPED = "cf_capped"
    NOT_CONVERGED = "not_converged"
    FMV_RISK = "fmv_risk"
    OFF_SCALE = "off_scale"
    OUTLIERS_EXCLUDED = "outliers_excluded"
    OVER_BUDGET = "over_budget"


class PolicyCheckStatus(str, Enum):
    """Where the recommended CF lands against the CF policy percentile."""
    OK = "ok"
    ABOVE_50 = "above_50"
    ABOVE_75 = "above_75"
    ABOVE_90 = "above_90"


class RecommendedAction(str, Enum):
    """Optimizer recommendation for a specialty."""
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    HOLD = "HOLD"
    NO_RECOMMENDATION = "NO_RECOMMENDATION"


class OptimizerStatus(str, Enum):
    """Traffic-light governance status."""
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class Presence(str, Enum):
    """Which compared runs contain a specialty."""
    BOTH = "both"
    A_ONLY = "a_only"
    B_ONLY = "b_only"


# =============================================================================
# Productivity Targets
# =============================================================================


class TargetApproach(str, Enum):
    """
    How the group wRVU target at 1.0 cFTE is set.

    - wrvu_percentile: market wRVU at the target percentile
    - pay_per_wrvu: market TCC at target percentile / market CF at CF percentile
    """
    WRVU_PERCENTILE = "wrvu_percentile"
    PAY_PER_WRVU = "pay_per_wrvu"


class PlanningCFSource(str, Enum):
    """Planning CF is interpolated from market or entered manually."""
    MARKET_PERCENTILE = "market_percentile"
    MANUAL = "manual"


class ProviderTargetStatus(str, Enum):
    """
    Percent-to-target status bands.

    Both <80% and 80-99% map to BELOW_TARGET; the summary keeps separate
    counters for them.
    """
    ABOVE_TARGET = "Above Target"
    AT_TARGET = "At Target"
    BELOW_TARGET = "Below Target"
