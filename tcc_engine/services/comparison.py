"""
Optimizer Comparison Service

Compares two to four saved optimizer configurations that carry a last run
result: assumptions, roll-up metrics, a by-specialty matrix and a narrative
summary in provider-compensation terms.

All maps are keyed by saved config id. The first config is the reference
for narrative statements.
"""

import logging
from typing import Dict, List, Optional, Sequence

from tcc_engine.models.enums import Presence
from tcc_engine.models.schemas import (
    OptimizerAssumptions,
    OptimizerComparisonRollup,
    OptimizerComparisonSpecialtyRow,
    OptimizerRunResult,
    OptimizerScenarioComparison,
    OptimizerSpecialtyResult,
    SavedOptimizerConfig,
    ScenarioInfo,
)


logger = logging.getLogger(__name__)


MIN_COMPARED: int = 2
MAX_COMPARED: int = 4
PERCENTILE_NOTE_THRESHOLD: float = 0.5

SAME_SCENARIOS_MESSAGE: str = "Both scenarios have the same roll-up metrics and scope."


def can_compare_optimizer_config(config: SavedOptimizerConfig) -> bool:
    return config.snapshot.lastRunResult is not None


def _run(config: SavedOptimizerConfig) -> OptimizerRunResult:
    result = config.snapshot.lastRunResult
    if result is None:
        raise ValueError(f"Saved optimizer config '{config.name}' has no run result to compare")
    return result


def build_assumptions(config: SavedOptimizerConfig) -> OptimizerAssumptions:
    settings = config.snapshot.settings
    summary = _run(config).summary
    return OptimizerAssumptions(
        scenarioId=config.id,
        scenarioName=config.name,
        wRVUGrowthFactorPct=settings.wRVUGrowthFactorPct,
        optimizationObjective=settings.optimizationObjective,
        governanceConfig=settings.governanceConfig,
        budgetConstraint=settings.budgetConstraint,
        providersIncluded=summary.providersIncluded,
        providersExcluded=summary.providersExcluded,
        manualExcludeCount=len(settings.manualExcludeProviderIds),
        manualIncludeCount=len(settings.manualIncludeProviderIds),
        selectedSpecialties=list(config.snapshot.selectedSpecialties),
    )


def total_modeled_incentive(result: OptimizerRunResult) -> float:
    """Modeled work RVU incentive summed over included providers."""
    return sum(
        ctx.modeledIncentiveDollars
        for row in result.bySpecialty
        for ctx in row.providerContexts
        if ctx.included and ctx.modeledIncentiveDollars is not None
    )


def _mean_key_metric(result: OptimizerRunResult, attr: str) -> float:
    rows = result.bySpecialty
    if not rows:
        return 0.0
    return sum(getattr(r.keyMetrics, attr) for r in rows) / len(rows)


def _mean_modeled_percentile(row: OptimizerSpecialtyResult) -> Optional[float]:
    included = [c for c in row.providerContexts if c.included]
    if not included:
        return None
    return sum(c.modeledTCC_pctile for c in included) / len(included)


def build_rollup(configs: Sequence[SavedOptimizerConfig]) -> OptimizerComparisonRollup:
    rollup = OptimizerComparisonRollup()
    for config in configs:
        result = _run(config)
        summary = result.summary
        rollup.totalSpendImpactByScenario[config.id] = summary.totalSpendImpactRaw
        rollup.totalIncentiveByScenario[config.id] = total_modeled_incentive(result)
        rollup.meanTCCPercentileByScenario[config.id] = _mean_key_metric(result, 'compPercentile')
        rollup.meanWRVUPercentileByScenario[config.id] = _mean_key_metric(result, 'prodPercentile')
        rollup.countMeetingAlignmentTargetByScenario[config.id] = summary.countMeetingAlignmentTarget
        rollup.countCFAbovePolicyByScenario[config.id] = summary.countCFAbovePolicy
        rollup.countEffectiveRateAbove90ByScenario[config.id] = summary.countEffectiveRateAbove90
    return rollup


def build_by_specialty_rows(configs: Sequence[SavedOptimizerConfig]) -> List[OptimizerComparisonSpecialtyRow]:
    """One row per specialty present in any run, sorted case-insensitively."""
    by_config: Dict[str, Dict[str, OptimizerSpecialtyResult]] = {
        c.id: {r.specialty: r for r in _run(c).bySpecialty} for c in configs
    }
    specialties = sorted(
        {s for rows in by_config.values() for s in rows},
        key=lambda s: s.lower(),
    )

    out = []
    for specialty in specialties:
        row = OptimizerComparisonSpecialtyRow(specialty=specialty)
        for config in configs:
            result = by_config[config.id].get(specialty)
            if result is not None:
                row.scenarioIds.append(config.id)
            row.recommendedCFByScenario[config.id] = result.recommendedCF if result else None
            row.spendImpactByScenario[config.id] = result.spendImpactRaw if result else None
            row.meanModeledTCCPercentileByScenario[config.id] = _mean_modeled_percentile(result) if result else None
            row.meanTCCPercentileByScenario[config.id] = result.keyMetrics.compPercentile if result else None
            row.meanWRVUPercentileByScenario[config.id] = result.keyMetrics.prodPercentile if result else None
        if len(configs) == 2:
            a_id, b_id = configs[0].id, configs[1].id
            if a_id in row.scenarioIds and b_id in row.scenarioIds:
                row.presence = Presence.BOTH
            elif a_id in row.scenarioIds:
                row.presence = Presence.A_ONLY
            else:
                row.presence = Presence.B_ONLY
        out.append(row)
    return out


def _spend_sentence(name_ref: str, name: str, impact_ref: float, impact: float) -> Optional[str]:
    delta = impact - impact_ref
    if delta == 0:
        return None
    direction = "increases" if delta > 0 else "reduces"
    pct = ""
    if impact_ref != 0:
        delta_pct = delta / abs(impact_ref) * 100
        pct = f" ({'+' if delta_pct > 0 else ''}{delta_pct:.1f}% vs {name_ref})"
    return (
        f"{name} {direction} total modeled incentive spend by ${abs(delta):,.0f} compared to "
        f"{name_ref}{pct}. This is the budget impact of the recommended conversion factor changes."
    )


def build_narrative_summary(
    configs: Sequence[SavedOptimizerConfig],
    assumptions: Sequence[OptimizerAssumptions],
    rollup: OptimizerComparisonRollup,
) -> List[str]:
    """
    Narrative bullets comparing each scenario to the first one.

    Falls back to a single 'same metrics' sentence when nothing differs.
    """
    ref = configs[0]
    ref_assumptions = assumptions[0]
    parts: List[str] = []

    for config, assumption in zip(configs[1:], assumptions[1:]):
        a, b = ref.id, config.id
        sentence = _spend_sentence(
            ref.name,
            config.name,
            rollup.totalSpendImpactByScenario[a],
            rollup.totalSpendImpactByScenario[b],
        )
        if sentence:
            parts.append(sentence)

        wrvu_a, wrvu_b = rollup.meanWRVUPercentileByScenario[a], rollup.meanWRVUPercentileByScenario[b]
        tcc_a, tcc_b = rollup.meanTCCPercentileByScenario[a], rollup.meanTCCPercentileByScenario[b]
        wrvu_differs = abs(wrvu_b - wrvu_a) > PERCENTILE_NOTE_THRESHOLD
        tcc_differs = abs(tcc_b - tcc_a) > PERCENTILE_NOTE_THRESHOLD
        if wrvu_differs or tcc_differs:
            text = "Pay vs productivity positioning differs between scenarios."
            if wrvu_differs:
                text += (
                    f" Mean wRVU percentile is {wrvu_b:.1f} in {config.name} vs {wrvu_a:.1f} in {ref.name}"
                    " (e.g. due to different productivity gain or scope)."
                )
            if tcc_differs:
                text += f" Mean TCC percentile is {tcc_b:.1f} in {config.name} vs {tcc_a:.1f} in {ref.name}."
            parts.append(text)

        align_a = rollup.countMeetingAlignmentTargetByScenario[a]
        align_b = rollup.countMeetingAlignmentTargetByScenario[b]
        if align_a != align_b:
            parts.append(
                f"Specialties meeting the alignment target: {ref.name} {align_a}, {config.name} {align_b}."
            )

        policy_a = rollup.countCFAbovePolicyByScenario[a]
        policy_b = rollup.countCFAbovePolicyByScenario[b]
        eff_a = rollup.countEffectiveRateAbove90ByScenario[a]
        eff_b = rollup.countEffectiveRateAbove90ByScenario[b]
        if policy_a != policy_b or eff_a != eff_b:
            parts.append(
                f"Governance: CF above policy threshold: {ref.name} {policy_a}, {config.name} {policy_b}. "
                f"Effective rate above 90th: {ref.name} {eff_a}, {config.name} {eff_b}."
            )

        if (
            ref_assumptions.providersIncluded != assumption.providersIncluded
            or ref_assumptions.providersExcluded != assumption.providersExcluded
        ):
            parts.append(
                f"Scope differs: {ref.name} included {ref_assumptions.providersIncluded} providers "
                f"({ref_assumptions.providersExcluded} excluded); {config.name} included "
                f"{assumption.providersIncluded} ({assumption.providersExcluded} excluded)."
            )

    return parts or [SAME_SCENARIOS_MESSAGE]


def compare_optimizer_scenarios(configs: Sequence[SavedOptimizerConfig]) -> OptimizerScenarioComparison:
    """
    Compare saved optimizer configs.

    Args:
        configs: Two to four saved configs, each with a lastRunResult

    Returns:
        OptimizerScenarioComparison

    Raises:
        ValueError: Wrong number of configs, duplicate ids or a config without run results
    """
    if not MIN_COMPARED <= len(configs) <= MAX_COMPARED:
        raise ValueError(f"Compare between {MIN_COMPARED} and {MAX_COMPARED} scenarios, got {len(configs)}")
    ids = [c.id for c in configs]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Saved optimizer config ids must be unique, repeated: {', '.join(duplicates)}")
    missing = [c.name for c in configs if not can_compare_optimizer_config(c)]
    if missing:
        raise ValueError(f"Saved optimizer configs without run results: {', '.join(missing)}")

    assumptions = [build_assumptions(c) for c in configs]
    rollup = build_rollup(configs)
    comparison = OptimizerScenarioComparison(
        scenarios=[ScenarioInfo(id=c.id, name=c.name) for c in configs],
        assumptionsPerScenario=assumptions,
        rollup=rollup,
        bySpecialty=build_by_specialty_rows(configs),
        narrativeSummary=build_narrative_summary(configs, assumptions, rollup),
    )
    logger.info(f"Compared {len(configs)} optimizer scenarios across {len(comparison.bySpecialty)} specialties")
    return comparison


__all__ = [
    'SAME_SCENARIOS_MESSAGE',
    'can_compare_optimizer_config',
    'build_assumptions',
    'total_modeled_incentive',
    'build_rollup',
    'build_by_specialty_rows',
    'build_narrative_summary',
    'compare_optimizer_scenarios',
]
