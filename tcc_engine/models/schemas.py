"""
Pydantic models for the TCC Engine.

This module provides the validated value objects consumed and produced by the
engine services: market benchmark rows, provider rows, scenario levers and
results, batch rows, optimizer settings and results, productivity targets,
persisted snapshots and optimizer comparisons.

Model groups:
- Market / Provider: MarketRow, BasePayComponent, ProviderRow
- Percentiles: PercentileResult
- TCC composition: PSQConfig, AdditionalTCCConfig, TCCComponentOptions,
  BaselineTCCConfig, BaselineTCCBreakdown, NormalizedPer1p0CFTE
- Scenario: ScenarioInputs, RiskAssessment, GovernanceFlags, ScenarioResults
- Batch: BatchScenario, BatchOverrides, MarketMatch, BatchRow, BatchResults
- Optimizer: objectives, CFBounds, BudgetConstraint, GovernanceConfig,
  OptimizerSettings, OptimizerProviderContext, OptimizerSpecialtyResult,
  OptimizerRunResult, CF sweep models
- Comparison: SavedOptimizerConfig, OptimizerScenarioComparison and parts
- Productivity targets: ProductivityTargetSettings and results
- Persistence: SavedScenario, SavedBatchRun, ScenarioLoadOutcome

Field names are camelCase so that payloads round-trip unchanged with the
upload and export collaborators. Percentiles are plain floats that may fall
outside [25, 90]; the below/above range booleans travel next to them.

All models use Pydantic v2 syntax.
"""

import math
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from tcc_engine.models.enums import (
    BenchmarkBasis,
    BudgetConstraintKind,
    CFPolicyEnforcementMode,
    CFSource,
    ErrorMetric,
    ExclusionReason,
    MatchStatus,
    OptimizerFlag,
    OptimizerStatus,
    OutlierMethod,
    PlanningCFSource,
    PolicyCheckStatus,
    Presence,
    ProviderTargetStatus,
    PSQBasis,
    QualityPaymentsSource,
    RecommendedAction,
    RiskLevel,
    TargetApproach,
    ThresholdMethod,
)


def _coerce_optional_number(value: Any) -> Any:
    """
    Turn spreadsheet-style cells into Optional[float] input.

    Blank strings, None and unparseable text become None. Strings holding
    numbers (including thousands separators and a leading $) are parsed.
    NaN and infinities, parsed or raw, become None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.strip().replace(',', '').replace('$', '')
        if cleaned == '':
            return None
        try:
            parsed = float(cleaned)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return value


def _as_utc(value: datetime) -> datetime:
    """Read naive timestamps as UTC so saved items always compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Timezone-aware (UTC) timestamp for persisted items
UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


# =============================================================================
# Market / Provider Models
# =============================================================================


class MarketRow(BaseModel):
    """
    Market survey row for one specialty (optionally provider type / region).

    Holds three benchmark quadruples (TCC, WRVU, CF) at the 25th, 50th, 75th
    and 90th percentiles. Points are assumed non-decreasing; the engine does
    not validate ordering but relies on it for interpolation monotonicity.
    """
    model_config = ConfigDict(
        extra='ignore',
        json_schema_extra={
            "example": {
                "specialty": "Cardiology",
                "TCC_25": 400000, "TCC_50": 500000, "TCC_75": 600000, "TCC_90": 700000,
                "WRVU_25": 4000, "WRVU_50": 5000, "WRVU_75": 6000, "WRVU_90": 7000,
                "CF_25": 55, "CF_50": 60, "CF_75": 65, "CF_90": 70,
            }
        }
    )

    specialty: str = Field(..., description="Market specialty label")
    providerType: Optional[str] = Field(default=None, description="Provider type (e.g. Physician, APP)")
    region: Optional[str] = Field(default=None, description="Survey region")

    TCC_25: float
    TCC_50: float
    TCC_75: float
    TCC_90: float
    WRVU_25: float
    WRVU_50: float
    WRVU_75: float
    WRVU_90: float
    CF_25: float
    CF_50: float
    CF_75: float
    CF_90: float

    def tcc(self) -> Tuple[float, float, float, float]:
        return (self.TCC_25, self.TCC_50, self.TCC_75, self.TCC_90)

    def wrvu(self) -> Tuple[float, float, float, float]:
        return (self.WRVU_25, self.WRVU_50, self.WRVU_75, self.WRVU_90)

    def cf(self) -> Tuple[float, float, float, float]:
        return (self.CF_25, self.CF_50, self.CF_75, self.CF_90)

    def benchmarks(self, metric: str) -> Tuple[float, float, float, float]:
        """Return the (p25, p50, p75, p90) quadruple for 'TCC', 'WRVU' or 'CF'."""
        key = metric.upper()
        if key == 'TCC':
            return self.tcc()
        if key == 'WRVU':
            return self.wrvu()
        if key == 'CF':
            return self.cf()
        raise ValueError(f"Unknown benchmark metric: {metric}")

    def is_valid(self) -> bool:
        """True when all twelve benchmark values are finite numbers."""
        return all(math.isfinite(v) for v in self.tcc() + self.wrvu() + self.cf())


class BasePayComponent(BaseModel):
    """Single line item that rolls up into total base pay."""
    id: str
    label: str = ""
    amount: Optional[float] = None
    fte: Optional[float] = None

    @field_validator('amount', 'fte', mode='before')
    @classmethod
    def _coerce_numbers(cls, value: Any) -> Any:
        return _coerce_optional_number(value)


class ProviderRow(BaseModel):
    """
    One provider from the provider-level dataset.

    Every field is optional at parse time. The before-validator coerces blank
    or non-numeric cells to None once, so the normalizer helpers only ever see
    Optional[float]. providerId defaults to providerName when absent.
    """
    model_config = ConfigDict(
        extra='ignore',
        json_schema_extra={
            "example": {
                "providerId": "P-001",
                "providerName": "Dr. Example",
                "specialty": "Cardiology",
                "totalFTE": 1.0,
                "clinicalFTE": 1.0,
                "baseSalary": 450000,
                "workRVUs": 6200,
                "currentCF": 58.5,
            }
        }
    )

    providerId: Optional[str] = Field(default=None, description="Stable id; defaults to providerName")
    providerName: Optional[str] = None
    specialty: Optional[str] = None
    division: Optional[str] = None

    totalFTE: Optional[float] = None
    clinicalFTE: Optional[float] = None
    adminFTE: Optional[float] = None
    researchFTE: Optional[float] = None
    teachingFTE: Optional[float] = None

    baseSalary: Optional[float] = None
    basePayComponents: Optional[List[BasePayComponent]] = Field(
        default=None,
        description="When any amount > 0, the sum replaces baseSalary"
    )
    clinicalFTESalary: Optional[float] = Field(
        default=None,
        description="Explicit clinical salary; overrides the prorated base"
    )
    currentTCC: Optional[float] = Field(
        default=None,
        description="Current TCC from file; used verbatim when > 0"
    )
    qualityPayments: Optional[float] = None
    otherIncentives: Optional[float] = None
    nonClinicalPay: Optional[float] = None

    workRVUs: Optional[float] = None
    pchWRVUs: Optional[float] = None
    outsideWRVUs: Optional[float] = None
    totalWRVUs: Optional[float] = None

    currentCF: Optional[float] = None
    currentThreshold: Optional[float] = None
    productivityModel: Optional[str] = None
    loa: Optional[bool] = Field(default=None, description="Leave of absence flag")

    @model_validator(mode='before')
    @classmethod
    def _fill_identity(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get('providerId') in (None, '') and data.get('providerName'):
                data['providerId'] = str(data['providerName'])
            for key in ('providerId', 'providerName'):
                if data.get(key) is not None and not isinstance(data[key], str):
                    data[key] = str(data[key])
            for loa_key in ('leaveOfAbsence', 'LOA'):
                if loa_key in data and 'loa' not in data:
                    data['loa'] = data[loa_key]
        return data

    @field_validator(
        'totalFTE', 'clinicalFTE', 'adminFTE', 'researchFTE', 'teachingFTE',
        'baseSalary', 'clinicalFTESalary', 'currentTCC', 'qualityPayments',
        'otherIncentives', 'nonClinicalPay', 'workRVUs', 'pchWRVUs',
        'outsideWRVUs', 'totalWRVUs', 'currentCF', 'currentThreshold',
        mode='before',
    )
    @classmethod
    def _coerce_numbers(cls, value: Any) -> Any:
        return _coerce_optional_number(value)

    @field_validator('loa', mode='before')
    @classmethod
    def _coerce_loa(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() in ('yes', 'y', 'true', '1')
        return value

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ProviderRow":
        """Build a validated row from a mapped upload record."""
        return cls.model_validate(record)


# =============================================================================
# Percentiles
# =============================================================================


class PercentileResult(BaseModel):
    """Percentile of a value against a benchmark quadruple, never clamped to 25/90."""
    model_config = ConfigDict(frozen=True)

    percentile: float
    belowRange: bool = False
    aboveRange: bool = False

    @property
    def off_scale(self) -> bool:
        return self.belowRange or self.aboveRange


# =============================================================================
# TCC Composition
# =============================================================================


class PSQConfig(BaseModel):
    """PSQ settings for baseline/modeled TCC."""
    include: bool = False
    psqPercent: float = 0.0
    psqBasis: PSQBasis = PSQBasis.BASE_SALARY
    psqFixedDollars: Optional[float] = None


class AdditionalTCCConfig(BaseModel):
    """Layered TCC on top of components: percent of base, dollars per 1.0 cFTE, flat."""
    percentOfBase: Optional[float] = None
    dollarPer1p0FTE: Optional[float] = None
    flatDollar: Optional[float] = None


class TCCComponentOptions(BaseModel):
    normalizeForFTE: bool = False


class BaselineTCCConfig(BaseModel):
    """
    Which components make up baseline TCC for benchmarking.

    Work RVU incentive uses a derived threshold: clinical base / currentCF.
    componentOptions keys are component ids ("quality", "otherIncentives").
    """
    psqConfig: Optional[PSQConfig] = None
    includeQualityPayments: bool = False
    qualityPaymentsSource: QualityPaymentsSource = QualityPaymentsSource.FROM_FILE
    qualityPaymentsOverridePct: Optional[float] = None
    includeWorkRVUIncentive: bool = False
    includeOtherIncentives: bool = False
    currentCF: float = 0.0
    componentOptions: Dict[str, TCCComponentOptions] = Field(default_factory=dict)
    additionalTCC: Optional[AdditionalTCCConfig] = None


class BaselineTCCBreakdown(BaseModel):
    """Component build-up of baseline TCC."""
    clinicalBase: float = 0.0
    psq: float = 0.0
    quality: float = 0.0
    workRVUIncentive: float = 0.0
    otherIncentives: float = 0.0
    additionalTCC: float = 0.0
    total: float = 0.0


class NormalizedPer1p0CFTE(BaseModel):
    """TCC and wRVUs at 1.0 clinical FTE; all zero when cFTE <= 0."""
    tcc_1p0: float = 0.0
    wRVU_1p0: float = 0.0
    cFTE: float = 0.0


# =============================================================================
# Scenario Models
# =============================================================================


class ScenarioInputs(BaseModel):
    """
    User-chosen levers for one scenario computation.

    Immutable per computation call; a new ScenarioResults is produced for
    each input set.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "proposedCFPercentile": 40,
                "cfAdjustmentFactor": 0.95,
                "psqPercent": 0,
                "thresholdMethod": "derived",
            }
        }
    )

    proposedCFPercentile: float = Field(default=40.0, description="Market CF percentile to model")
    cfAdjustmentFactor: float = Field(default=0.95, description="Haircut multiplier on interpolated CF")
    cfSource: CFSource = CFSource.TARGET_PERCENTILE
    overrideCF: Optional[float] = Field(default=None, description="Used when cfSource is override")

    psqPercent: float = Field(default=0.0, description="Modeled PSQ percent of basis")
    currentPsqPercent: float = Field(default=0.0, description="PSQ percent in current pay")
    psqBasis: PSQBasis = PSQBasis.BASE_SALARY
    psqFixedDollars: Optional[float] = None

    thresholdMethod: ThresholdMethod = ThresholdMethod.DERIVED
    annualThreshold: Optional[float] = None
    wrvuPercentile: float = 50.0

    modeledBasePay: Optional[float] = Field(default=None, description="Override base pay for modeled TCC")
    modeledWRVUs: Optional[float] = Field(default=None, description="Override wRVU volume for modeled TCC")


class RiskAssessment(BaseModel):
    highRisk: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class GovernanceFlags(BaseModel):
    """
    Policy flags for a single scenario.

    - modeledInPolicyBand: modeled TCC percentile within 25th-75th
    - fmvCheckSuggested: modeled TCC percentile above the FMV high threshold
    - underpayRisk / cfBelow25: current CF percentile below 25th
    """
    modeledInPolicyBand: bool = False
    fmvCheckSuggested: bool = False
    underpayRisk: bool = False
    cfBelow25: bool = False


class ScenarioResults(BaseModel):
    """All computed outputs for a single provider under one scenario."""
    totalWRVUs: float
    clinicalFTE: float
    clinicalBase: float
    annualThreshold: float
    wRVUsAboveThreshold: float
    currentCF: float
    modeledCF: float
    imputedTCCPerWRVURatioCurrent: float
    imputedTCCPerWRVURatioModeled: float
    currentIncentive: float
    annualIncentive: float
    currentPsqDollars: float
    psqDollars: float
    currentTCC: float
    modeledTCC: float
    changeInTCC: float

    wrvuPercentile: float
    wrvuPercentileBelowRange: bool = False
    wrvuPercentileAboveRange: bool = False
    tccPercentile: float
    tccPercentileBelowRange: bool = False
    tccPercentileAboveRange: bool = False
    modeledTCCPercentile: float
    modeledTCCPercentileBelowRange: bool = False
    modeledTCCPercentileAboveRange: bool = False
    cfPercentileCurrent: float
    cfPercentileCurrentBelowRange: bool = False
    cfPercentileCurrentAboveRange: bool = False
    cfPercentileModeled: float

    alignmentGapBaseline: float = Field(..., description="TCC percentile - wRVU percentile (current)")
    alignmentGapModeled: float = Field(..., description="Modeled TCC percentile - wRVU percentile")

    governanceFlags: GovernanceFlags
    risk: RiskAssessment
    warnings: List[str] = Field(default_factory=list)


# =============================================================================
# Batch Models
# =============================================================================


class BatchScenario(BaseModel):
    id: str
    name: str
    scenarioInputs: ScenarioInputs = Field(default_factory=ScenarioInputs)


class BatchOverrides(BaseModel):
    """
    Partial ScenarioInputs overrides.

    Precedence when merging: byProviderId > bySpecialty > base inputs.
    """
    bySpecialty: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    byProviderId: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class MarketMatch(BaseModel):
    status: MatchStatus
    marketRow: Optional[MarketRow] = None


class BatchRow(BaseModel):
    """One provider x scenario outcome; results is None when the market is missing."""
    providerId: str
    providerName: Optional[str] = None
    specialty: Optional[str] = None
    division: Optional[str] = None
    scenarioId: str
    scenarioName: str
    matchStatus: MatchStatus
    matchedMarketSpecialty: Optional[str] = None
    results: Optional[ScenarioResults] = None
    riskLevel: RiskLevel
    warnings: List[str] = Field(default_factory=list)


class BatchResults(BaseModel):
    rows: List[BatchRow] = Field(default_factory=list)
    runAt: datetime
    scenarioCount: int
    providerCount: int
    cancelled: bool = False


class SpecialtySuggestion(BaseModel):
    specialty: str
    score: float


class SpecialtySuggestionResult(BaseModel):
    providerSpecialty: str
    suggestions: List[SpecialtySuggestion] = Field(default_factory=list)


# =============================================================================
# Optimizer Settings
# =============================================================================


class AlignPercentileObjective(BaseModel):
    kind: Literal["align_percentile"] = "align_percentile"


class TargetFixedPercentileObjective(BaseModel):
    kind: Literal["target_fixed_percentile"] = "target_fixed_percentile"
    targetPercentile: float = 40.0


class HybridObjective(BaseModel):
    kind: Literal["hybrid"] = "hybrid"
    alignWeight: float = 0.7
    targetWeight: float = 0.3
    targetPercentile: float = 40.0


OptimizationObjective = Annotated[
    Union[AlignPercentileObjective, TargetFixedPercentileObjective, HybridObjective],
    Field(discriminator='kind'),
]


class CFBounds(BaseModel):
    """Allowed CF movement as percent of current CF, plus optional absolute limits."""
    minChangePct: float = 30.0
    maxChangePct: float = 30.0
    absoluteMin: Optional[float] = None
    absoluteMax: Optional[float] = None


class BudgetConstraint(BaseModel):
    kind: BudgetConstraintKind = BudgetConstraintKind.NONE
    capPct: Optional[float] = Field(default=None, description="Max spend increase as % of baseline spend")
    capDollars: Optional[float] = Field(default=None, description="Max spend increase in dollars")


class DefaultExclusionRules(BaseModel):
    minBasisFTE: float = 0.5
    minWRVUPer1p0CFTE: float = 1000.0
    excludeLOA: bool = True


class OutlierParams(BaseModel):
    method: OutlierMethod = OutlierMethod.IQR
    iqrK: float = 1.5
    madZThreshold: float = 3.5
    excludeOutliers: bool = False


class GovernanceConfig(BaseModel):
    """
    Governance thresholds for status evaluation.

    Status priority: FMV red flag -> red gap -> hard/soft cap -> yellow gap.
    """
    hardCapPercentile: float = 50.0
    softCapPercentile: float = 60.0
    fmvRedFlagPercentile: float = 75.0
    alignmentTolerancePctile: float = 3.0
    minMeaningfulChangePct: float = Field(default=0.01, description="Fraction of current CF")
    redGapPercentile: float = 10.0
    yellowGapPercentile: float = 5.0


class CFPolicySettings(BaseModel):
    thresholdPercentile: float = 50.0
    enforcementMode: CFPolicyEnforcementMode = CFPolicyEnforcementMode.FLAG_ONLY


class ManualCFOverride(BaseModel):
    specialty: str
    recommendedCF: float
    comment: str
    user: Optional[str] = None
    timestamp: datetime


class OptimizerSettings(BaseModel):
    """
    Full configuration for a CF optimizer run.

    Baseline TCC is clinical base + optional PSQ, quality, current-CF work RVU
    incentive, other incentives and layered additional TCC. Modeled TCC keeps
    every non-incentive component and recomputes the incentive at the
    candidate CF.
    """
    optimizationObjective: OptimizationObjective = Field(default_factory=AlignPercentileObjective)
    errorMetric: ErrorMetric = ErrorMetric.SQUARED
    cfBounds: CFBounds = Field(default_factory=CFBounds)
    budgetConstraint: BudgetConstraint = Field(default_factory=BudgetConstraint)
    defaultExclusionRules: DefaultExclusionRules = Field(default_factory=DefaultExclusionRules)
    outlierParams: OutlierParams = Field(default_factory=OutlierParams)
    governanceConfig: GovernanceConfig = Field(default_factory=GovernanceConfig)
    cfPolicy: CFPolicySettings = Field(default_factory=CFPolicySettings)
    benchmarkBasis: BenchmarkBasis = BenchmarkBasis.PER_CFTE

    wRVUGrowthFactorPct: float = 0.0
    gridStepPct: float = 0.005
    maxRecommendedCFPercentile: float = 50.0

    manualExcludeProviderIds: List[str] = Field(default_factory=list)
    manualIncludeProviderIds: List[str] = Field(default_factory=list)
    manualCFOverrides: List[ManualCFOverride] = Field(default_factory=list)

    baseScenarioInputs: ScenarioInputs = Field(default_factory=ScenarioInputs)
    includePsqInBaselineAndModeled: bool = False
    psqFixedDollars: Optional[float] = None
    includeQualityPaymentsInBaselineAndModeled: bool = True
    qualityPaymentsSource: QualityPaymentsSource = QualityPaymentsSource.FROM_FILE
    qualityPaymentsOverridePct: Optional[float] = None
    includeWorkRVUIncentiveInTCC: bool = True
    includeOtherIncentivesInBaselineAndModeled: bool = False
    componentOptions: Dict[str, TCCComponentOptions] = Field(default_factory=dict)
    additionalTCC: Optional[AdditionalTCCConfig] = None


# =============================================================================
# Optimizer Results
# =============================================================================


class OptimizerProviderContext(BaseModel):
    """
    Per-provider working state for the optimizer, kept in results for audit.

    nonIncentiveTCC is baseline TCC without the work RVU incentive; modeled
    TCC at any CF is nonIncentiveTCC + incentive(CF).
    """
    providerId: str
    providerName: Optional[str] = None
    specialty: str
    division: Optional[str] = None
    matchStatus: MatchStatus
    marketSpecialty: Optional[str] = None

    cFTE: float
    basisFTE: float
    clinicalBase: float
    currentCF: float
    totalWRVUs: float
    effectiveTotalWRVUs: float
    nonIncentiveTCC: float

    currentTCCBaseline: float
    currentTCC_1p0: float
    currentTCC_pctile: float
    tccOffScale: bool = False
    wRVU_1p0: float
    wrvuPercentile: float
    wrvuOffScale: bool = False
    baselineGap: float

    normalizedWRVU: float = 0.0
    normalizedTCC: float = 0.0
    effectiveRate: float = 0.0
    effectiveRatePercentile: float = 0.0
    effectiveRateOffScale: bool = False

    modeledTCCRaw: float = 0.0
    modeledTCC_1p0: float = 0.0
    modeledTCC_pctile: float = 0.0
    baselineIncentiveDollars: Optional[float] = None
    modeledIncentiveDollars: Optional[float] = None

    included: bool
    includeAnyway: bool = False
    exclusionReasons: List[ExclusionReason] = Field(default_factory=list)
    riskLevel: Optional[RiskLevel] = None


class OptimizerKeyMetrics(BaseModel):
    prodPercentile: float = 0.0
    compPercentile: float = 0.0
    gap: float = 0.0
    tcc_1p0: float = 0.0
    workRVU_1p0: float = 0.0


class OptimizerExplanation(BaseModel):
    headline: str
    why: List[str] = Field(default_factory=list)
    whatToDoNext: List[str] = Field(default_factory=list)


class MarketCFBenchmarks(BaseModel):
    cf25: float
    cf50: float
    cf75: float
    cf90: float


class OptimizerSpecialtyResult(BaseModel):
    """Per-specialty optimizer output: raw metrics, decision and explanation."""
    specialty: str
    includedCount: int
    excludedCount: int
    currentCF: float
    recommendedCF: float
    cfChangePct: float
    preGap: float
    postGap: float
    meanBaselineGap: float
    meanModeledGap: float
    maeBefore: float
    maeAfter: float
    spendImpactRaw: float
    baselineSpendRaw: float = 0.0
    totalModeledIncentive: float = 0.0
    overBudget: bool = False
    policyCheck: PolicyCheckStatus = PolicyCheckStatus.OK
    cfPolicyPercentile: float = 0.0
    effectiveRateFlag: bool = False
    highRiskCount: int = 0
    mediumRiskCount: int = 0
    flags: List[OptimizerFlag] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    keyMessages: List[str] = Field(default_factory=list)
    providerContexts: List[OptimizerProviderContext] = Field(default_factory=list)
    recommendedAction: RecommendedAction
    status: OptimizerStatus
    constraintsHit: List[str] = Field(default_factory=list)
    explanation: OptimizerExplanation
    keyMetrics: OptimizerKeyMetrics
    marketCF: MarketCFBenchmarks

    manualCFOverride: Optional[float] = None
    manualOverrideComment: Optional[str] = None
    manualOverrideUser: Optional[str] = None
    manualOverrideTimestamp: Optional[datetime] = None


class ExcludedProvider(BaseModel):
    providerId: str
    providerName: str
    specialty: str
    reasons: List[ExclusionReason]


class ExclusionReasonCount(BaseModel):
    reason: ExclusionReason
    count: int


class OptimizerRunSummary(BaseModel):
    scenarioId: str
    scenarioName: str
    timestamp: datetime
    specialtiesAnalyzed: int
    providersIncluded: int
    providersExcluded: int
    topExclusionReasons: List[ExclusionReasonCount] = Field(default_factory=list)
    totalSpendImpactRaw: float
    countMeetingAlignmentTarget: int
    countCFAbovePolicy: int
    countEffectiveRateAbove90: int
    keyMessages: List[str] = Field(default_factory=list)
    marketDatasetVersion: Optional[str] = None
    mappingVersion: Optional[str] = None


class OptimizerAuditExport(BaseModel):
    """Everything needed to reproduce and review a run."""
    scenarioId: str
    scenarioName: str
    timestamp: datetime
    benchmarkBasis: BenchmarkBasis
    marketBasisAssumption: Optional[str] = None
    optimizationObjective: OptimizationObjective
    errorMetric: ErrorMetric
    exclusionRules: DefaultExclusionRules
    outlierParams: OutlierParams
    governanceConfig: GovernanceConfig
    budgetConstraint: BudgetConstraint
    cfPolicyThreshold: float
    cfPolicyEnforcementMode: CFPolicyEnforcementMode
    results: List[OptimizerSpecialtyResult] = Field(default_factory=list)
    excludedProviders: List[ExcludedProvider] = Field(default_factory=list)
    manualOverrides: List[ManualCFOverride] = Field(default_factory=list)
    summary: OptimizerRunSummary


class OptimizerRunResult(BaseModel):
    summary: OptimizerRunSummary
    bySpecialty: List[OptimizerSpecialtyResult] = Field(default_factory=list)
    audit: OptimizerAuditExport


class CFSweepRow(BaseModel):
    cfPercentile: float
    cfDollars: float
    meanModeledTCCPctile: float
    meanWrvuPctile: float
    gap: float
    totalIncentiveDollars: float
    spendImpactRaw: float


class CFSweepSpecialtyResult(BaseModel):
    specialty: str
    rows: List[CFSweepRow] = Field(default_factory=list)


class CFSweepAllResult(BaseModel):
    bySpecialty: Dict[str, List[CFSweepRow]] = Field(default_factory=dict)


# =============================================================================
# Saved Optimizer Configs and Comparison
# =============================================================================


class OptimizerConfigSnapshot(BaseModel):
    settings: OptimizerSettings = Field(default_factory=OptimizerSettings)
    selectedSpecialties: List[str] = Field(default_factory=list)
    selectedDivisions: List[str] = Field(default_factory=list)
    lastRunResult: Optional[OptimizerRunResult] = None


class SavedOptimizerConfig(BaseModel):
    id: str
    name: str
    createdAt: UTCDateTime
    snapshot: OptimizerConfigSnapshot


class ScenarioInfo(BaseModel):
    id: str
    name: str


class OptimizerAssumptions(BaseModel):
    """Assumptions of one compared scenario."""
    scenarioId: str
    scenarioName: str
    wRVUGrowthFactorPct: float
    optimizationObjective: OptimizationObjective
    governanceConfig: GovernanceConfig
    budgetConstraint: BudgetConstraint
    providersIncluded: int
    providersExcluded: int
    manualExcludeCount: int
    manualIncludeCount: int
    selectedSpecialties: List[str] = Field(default_factory=list)


class OptimizerComparisonRollup(BaseModel):
    """Roll-up metrics keyed by scenario id."""
    totalSpendImpactByScenario: Dict[str, float] = Field(default_factory=dict)
    totalIncentiveByScenario: Dict[str, float] = Field(default_factory=dict)
    meanTCCPercentileByScenario: Dict[str, float] = Field(default_factory=dict)
    meanWRVUPercentileByScenario: Dict[str, float] = Field(default_factory=dict)
    countMeetingAlignmentTargetByScenario: Dict[str, int] = Field(default_factory=dict)
    countCFAbovePolicyByScenario: Dict[str, int] = Field(default_factory=dict)
    countEffectiveRateAbove90ByScenario: Dict[str, int] = Field(default_factory=dict)


class OptimizerComparisonSpecialtyRow(BaseModel):
    specialty: str
    scenarioIds: List[str] = Field(default_factory=list)
    presence: Optional[Presence] = Field(default=None, description="Set for two-way comparisons")
    recommendedCFByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    spendImpactByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanModeledTCCPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanTCCPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)
    meanWRVUPercentileByScenario: Dict[str, Optional[float]] = Field(default_factory=dict)


class OptimizerScenarioComparison(BaseModel):
    scenarios: List[ScenarioInfo]
    assumptionsPerScenario: List[OptimizerAssumptions]
    rollup: OptimizerComparisonRollup
    bySpecialty: List[OptimizerComparisonSpecialtyRow] = Field(default_factory=list)
    narrativeSummary: List[str] = Field(default_factory=list)


# =============================================================================
# Productivity Target Models
# =============================================================================


class SpecialtyTargetRule(BaseModel):
    targetApproach: TargetApproach = TargetApproach.WRVU_PERCENTILE
    targetPercentile: Optional[float] = None
    cfPercentile: Optional[float] = None


class ProductivityTargetSettings(BaseModel):
    """Settings for group wRVU targets per specialty."""
    targetPercentile: float = 50.0
    cfPercentile: float = 50.0
    targetApproach: TargetApproach = TargetApproach.WRVU_PERCENTILE
    alignmentTolerance: float = 10.0
    rampFactorByProviderId: Dict[str, float] = Field(
        default_factory=dict,
        description="Per provider ramp (e.g. 0.8 for a new hire); default 1.0"
    )
    planningCFSource: PlanningCFSource = PlanningCFSource.MARKET_PERCENTILE
    planningCFPercentile: float = 50.0
    planningCFManual: Optional[float] = None
    specialtyTargetOverrides: Dict[str, SpecialtyTargetRule] = Field(default_factory=dict)


class ProductivityTargetProviderInput(BaseModel):
    providerId: str
    providerName: Optional[str] = None
    specialty: str
    cFTE: float
    actualWRVUs: float
    rampFactor: float = 1.0


class ProductivityTargetProviderResult(ProductivityTargetProviderInput):
    targetWRVU: float
    rampedTargetWRVU: float
    varianceWRVU: float
    percentToTarget: float
    status: ProviderTargetStatus
    planningIncentiveDollars: Optional[float] = None


class StatusBandCounts(BaseModel):
    below80: int = 0
    eightyTo99: int = 0
    hundredTo119: int = 0
    atOrAbove120: int = 0


class ProductivityTargetSpecialtySummary(BaseModel):
    meanPercentToTarget: float = 0.0
    medianPercentToTarget: float = 0.0
    bandCounts: StatusBandCounts = Field(default_factory=StatusBandCounts)


class ProductivityTargetSpecialtyResult(BaseModel):
    specialty: str
    groupTargetWRVU_1cFTE: Optional[float] = None
    targetPercentile: float
    targetApproach: TargetApproach
    providers: List[ProductivityTargetProviderResult] = Field(default_factory=list)
    summary: ProductivityTargetSpecialtySummary
    totalPlanningIncentiveDollars: float = 0.0
    warning: Optional[str] = None


class ProductivityTargetRunResult(BaseModel):
    bySpecialty: List[ProductivityTargetSpecialtyResult] = Field(default_factory=list)


# =============================================================================
# Persistence Models
# =============================================================================


class SavedScenario(BaseModel):
    """A named scenario with the provider/specialty it was built against."""
    id: str
    name: str
    createdAt: UTCDateTime
    scenarioInputs: ScenarioInputs
    selectedProviderId: Optional[str] = None
    selectedSpecialty: Optional[str] = None
    providerSnapshot: Optional[ProviderRow] = None


class ScenarioLoadOutcome(BaseModel):
    """Result of reloading a saved scenario against current data."""
    scenarioId: str
    scenarioInputs: ScenarioInputs
    selectedProviderId: Optional[str] = None
    selectedSpecialty: Optional[str] = None
    warning: Optional[str] = None


class SavedBatchRun(BaseModel):
    id: str
    name: str
    createdAt: UTCDateTime
    results: BatchResults
    scenarios: List[BatchScenario] = Field(default_factory=list)
