"""
TCC Engine Services Module

This module contains the business logic services for the TCC Engine. Every
service is a set of pure, synchronous functions over pydantic models; none of
them reads the clock or touches storage on its own.

Services:
- interpolation: Percentile <-> value interpolation on 25/50/75/90 benchmarks
- normalization: Clinical base, FTE, wRVU, PSQ, quality and baseline TCC
- scenario_compute: Single provider scenario modeling
- outliers: IQR and MAD modified z-score outlier detection
- specialty_match: Market matching and specialty mapping suggestions
- batch: Provider x scenario batch orchestration
- governance: Status, action and explanation for CF recommendations
- optimizer: Specialty CF optimizer, run summary, audit and CF sweep
- productivity_target: Group wRVU targets and percent-to-target
- comparison: Side by side comparison of saved optimizer runs
- persistence: Repository protocol, in-memory store and scenario reload
- export: Report rows, DataFrames and display formatting

All services are designed to be consumed by the API layer (tcc_engine/api/).
"""

# =============================================================================
# Interpolation Service Exports
# Market percentile inference and inverse interpolation
# =============================================================================

from tcc_engine.services.interpolation import (
    infer_percentile,
    interp_percentile,
    infer_from_benchmarks,
    interp_from_benchmarks,
)

# =============================================================================
# Normalization Service Exports
# Compensation components and 1.0 cFTE normalization
# =============================================================================

from tcc_engine.services.normalization import (
    safe_div,
    get_base_salary,
    get_clinical_base,
    get_clinical_fte,
    get_total_wrvus,
    get_psq_dollars,
    resolve_psq_on_total_pay,
    get_additional_tcc,
    get_quality_dollars,
    get_other_incentives_dollars,
    get_incentive_derived,
    normalize_to_1p0_cfte,
    get_baseline_tcc_breakdown,
    get_baseline_tcc,
)

# =============================================================================
# Scenario, Outlier and Matching Exports
# =============================================================================

from tcc_engine.services.scenario_compute import (
    compute_modeled_cf,
    compute_annual_threshold,
    compute_scenario,
)

from tcc_engine.services.outliers import detect_outliers

from tcc_engine.services.specialty_match import (
    normalize_specialty_key,
    match_market_row,
    specialty_similarity,
    suggest_market_specialties,
    suggest_specialty_mappings,
)

# =============================================================================
# Batch Service Exports
# =============================================================================

from tcc_engine.services.batch import (
    derive_risk_level,
    resolve_scenario_inputs,
    iter_batch,
    run_batch,
)

# =============================================================================
# Optimizer and Governance Exports
# Bounded CF search, governance decision, explanation and CF sweep
# =============================================================================

from tcc_engine.services.governance import (
    evaluate_status,
    determine_action,
    build_explanation,
)

from tcc_engine.services.optimizer import (
    build_provider_contexts,
    objective_error,
    optimize_cf_for_specialty,
    run_optimizer_all_specialties,
    run_modeled_tcc_sweep_for_specialty,
    run_modeled_tcc_sweep_all_specialties,
)

# =============================================================================
# Productivity Target Exports
# =============================================================================

from tcc_engine.services.productivity_target import (
    get_provider_target_status,
    compute_group_target_wrvu,
    run_productivity_targets,
)

# =============================================================================
# Comparison, Persistence and Export
# =============================================================================

from tcc_engine.services.comparison import compare_optimizer_scenarios

from tcc_engine.services.persistence import (
    serialized_size_bytes,
    ScenarioRepository,
    InMemoryScenarioRepository,
    load_saved_scenario,
)

from tcc_engine.services.export import (
    format_currency,
    format_percentile,
    format_objective,
    format_budget_constraint,
    comparison_report_rows,
    comparison_to_dataframes,
)


__all__ = [
    # Interpolation
    'infer_percentile',
    'interp_percentile',
    'infer_from_benchmarks',
    'interp_from_benchmarks',
    # Normalization
    'safe_div',
    'get_base_salary',
    'get_clinical_base',
    'get_clinical_fte',
    'get_total_wrvus',
    'get_psq_dollars',
    'resolve_psq_on_total_pay',
    'get_additional_tcc',
    'get_quality_dollars',
    'get_other_incentives_dollars',
    'get_incentive_derived',
    'normalize_to_1p0_cfte',
    'get_baseline_tcc_breakdown',
    'get_baseline_tcc',
    # Scenario / outliers / matching
    'compute_modeled_cf',
    'compute_annual_threshold',
    'compute_scenario',
    'detect_outliers',
    'normalize_specialty_key',
    'match_market_row',
    'specialty_similarity',
    'suggest_market_specialties',
    'suggest_specialty_mappings',
    # Batch
    'derive_risk_level',
    'resolve_scenario_inputs',
    'iter_batch',
    'run_batch',
    # Optimizer
    'evaluate_status',
    'determine_action',
    'build_explanation',
    'build_provider_contexts',
    'objective_error',
    'optimize_cf_for_specialty',
    'run_optimizer_all_specialties',
    'run_modeled_tcc_sweep_for_specialty',
    'run_modeled_tcc_sweep_all_specialties',
    # Productivity targets
    'get_provider_target_status',
    'compute_group_target_wrvu',
    'run_productivity_targets',
    # Comparison / persistence / export
    'compare_optimizer_scenarios',
    'serialized_size_bytes',
    'ScenarioRepository',
    'InMemoryScenarioRepository',
    'load_saved_scenario',
    'format_currency',
    'format_percentile',
    'format_objective',
    'format_budget_constraint',
    'comparison_report_rows',
    'comparison_to_dataframes',
]
