"""
Package initialization file for TCC Engine models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from tcc_engine.models directly.

Usage:
    from tcc_engine.models import (
        ProviderRow,
        MarketRow,
        ScenarioInputs,
        OptimizerSettings,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from tcc_engine.models.enums import (
    ThresholdMethod,
    CFSource,
    PSQBasis,
    QualityPaymentsSource,
    MatchStatus,
    RiskLevel,
    OutlierMethod,
    ObjectiveKind,
    ErrorMetric,
    BudgetConstraintKind,
    BenchmarkBasis,
    CFPolicyEnforcementMode,
    ExclusionReason,
    OptimizerFlag,
    PolicyCheckStatus,
    RecommendedAction,
    OptimizerStatus,
    Presence,
    TargetApproach,
    PlanningCFSource,
    ProviderTargetStatus,
)


# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from tcc_engine.models.schemas import (
    OptimizationObjective,
    MarketRow,
    BasePayComponent,
    ProviderRow,
    PercentileResult,
    PSQConfig,
    AdditionalTCCConfig,
    TCCComponentOptions,
    BaselineTCCConfig,
    BaselineTCCBreakdown,
    NormalizedPer1p0CFTE,
    ScenarioInputs,
    RiskAssessment,
    GovernanceFlags,
    ScenarioResults,
    BatchScenario,
    BatchOverrides,
    MarketMatch,
    BatchRow,
    BatchResults,
    SpecialtySuggestion,
    SpecialtySuggestionResult,
    AlignPercentileObjective,
    TargetFixedPercentileObjective,
    HybridObjective,
    CFBounds,
    BudgetConstraint,
    DefaultExclusionRules,
    OutlierParams,
    GovernanceConfig,
    CFPolicySettings,
    ManualCFOverride,
    OptimizerSettings,
    OptimizerProviderContext,
    OptimizerKeyMetrics,
    OptimizerExplanation,
    MarketCFBenchmarks,
    OptimizerSpecialtyResult,
    ExcludedProvider,
    ExclusionReasonCount,
    OptimizerRunSummary,
    OptimizerAuditExport,
    OptimizerRunResult,
    CFSweepRow,
    CFSweepSpecialtyResult,
    CFSweepAllResult,
    OptimizerConfigSnapshot,
    SavedOptimizerConfig,
    ScenarioInfo,
    OptimizerAssumptions,
    OptimizerComparisonRollup,
    OptimizerComparisonSpecialtyRow,
    OptimizerScenarioComparison,
    SpecialtyTargetRule,
    ProductivityTargetSettings,
    ProductivityTargetProviderInput,
    ProductivityTargetProviderResult,
    StatusBandCounts,
    ProductivityTargetSpecialtySummary,
    ProductivityTargetSpecialtyResult,
    ProductivityTargetRunResult,
    SavedScenario,
    ScenarioLoadOutcome,
    SavedBatchRun,
)


__all__ = [
    # Enums
    'ThresholdMethod',
    'CFSource',
    'PSQBasis',
    'QualityPaymentsSource',
    'MatchStatus',
    'RiskLevel',
    'OutlierMethod',
    'ObjectiveKind',
    'ErrorMetric',
    'BudgetConstraintKind',
    'BenchmarkBasis',
    'CFPolicyEnforcementMode',
    'ExclusionReason',
    'OptimizerFlag',
    'PolicyCheckStatus',
    'RecommendedAction',
    'OptimizerStatus',
    'Presence',
    'TargetApproach',
    'PlanningCFSource',
    'ProviderTargetStatus',
    # Schemas
    'OptimizationObjective',
    'MarketRow',
    'BasePayComponent',
    'ProviderRow',
    'PercentileResult',
    'PSQConfig',
    'AdditionalTCCConfig',
    'TCCComponentOptions',
    'BaselineTCCConfig',
    'BaselineTCCBreakdown',
    'NormalizedPer1p0CFTE',
    'ScenarioInputs',
    'RiskAssessment',
    'GovernanceFlags',
    'ScenarioResults',
    'BatchScenario',
    'BatchOverrides',
    'MarketMatch',
    'BatchRow',
    'BatchResults',
    'SpecialtySuggestion',
    'SpecialtySuggestionResult',
    'AlignPercentileObjective',
    'TargetFixedPercentileObjective',
    'HybridObjective',
    'CFBounds',
    'BudgetConstraint',
    'DefaultExclusionRules',
    'OutlierParams',
    'GovernanceConfig',
    'CFPolicySettings',
    'ManualCFOverride',
    'OptimizerSettings',
    'OptimizerProviderContext',
    'OptimizerKeyMetrics',
    'OptimizerExplanation',
    'MarketCFBenchmarks',
    'OptimizerSpecialtyResult',
    'ExcludedProvider',
    'ExclusionReasonCount',
    'OptimizerRunSummary',
    'OptimizerAuditExport',
    'OptimizerRunResult',
    'CFSweepRow',
    'CFSweepSpecialtyResult',
    'CFSweepAllResult',
    'OptimizerConfigSnapshot',
    'SavedOptimizerConfig',
    'ScenarioInfo',
    'OptimizerAssumptions',
    'OptimizerComparisonRollup',
    'OptimizerComparisonSpecialtyRow',
    'OptimizerScenarioComparison',
    'SpecialtyTargetRule',
    'ProductivityTargetSettings',
    'ProductivityTargetProviderInput',
    'ProductivityTargetProviderResult',
    'StatusBandCounts',
    'ProductivityTargetSpecialtySummary',
    'ProductivityTargetSpecialtyResult',
    'ProductivityTargetRunResult',
    'SavedScenario',
    'ScenarioLoadOutcome',
    'SavedBatchRun',
]
