"""
Comparison Export Service

Flattens an OptimizerScenarioComparison into tabular form.

- comparison_report_rows: label/value rows of display strings for a
  single-sheet report (header, scenarios, summary, roll-up, assumptions,
  by-specialty matrix)
- comparison_to_dataframes: pandas DataFrames of raw numbers, for callers
  that apply their own formatting or write spreadsheets

Display formatting lives only in the format_* helpers below; the comparison
models carry raw numbers.
"""

from typing import Dict, List, Optional, Union

import pandas as pd

from tcc_engine.models.enums import BudgetConstraintKind, ObjectiveKind
from tcc_engine.models.schemas import (
    BudgetConstraint,
    OptimizationObjective,
    OptimizerScenarioComparison,
)


Cell = Union[str, float, int]

EMPTY_CELL: str = "—"
REPORT_TITLE: str = "Scenario Comparison Report"


# =============================================================================
# Formatting
# =============================================================================


def format_currency(value: float, decimals: int = 0) -> str:
    """US dollar string, negative values with a leading minus (e.g. -$1,250)."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def format_percentile(p: float) -> str:
    if p < 25:
        return f"Below 25th ({p:.1f}th)"
    if p > 90:
        return f"Above 90th ({p:.1f}th)"
    return f"{p:.1f}th"


def format_objective(objective: OptimizationObjective) -> str:
    if objective.kind == ObjectiveKind.ALIGN_PERCENTILE:
        return "Align TCC to wRVU percentile"
    if objective.kind == ObjectiveKind.TARGET_FIXED_PERCENTILE:
        return f"Target fixed {objective.targetPercentile:g}th percentile"
    if objective.kind == ObjectiveKind.HYBRID:
        return (
            f"Hybrid (align {objective.alignWeight * 100:.0f}% / "
            f"target {objective.targetWeight * 100:.0f}% @ {objective.targetPercentile:g}th)"
        )
    raise ValueError(f"Unknown optimization objective: {objective.kind}")


def format_budget_constraint(constraint: BudgetConstraint) -> str:
    """e.g. "None", "Neutral", "Cap 5%", "Cap $1,000,000"."""
    if constraint.kind == BudgetConstraintKind.NONE:
        return "None"
    if constraint.kind == BudgetConstraintKind.NEUTRAL:
        return "Neutral"
    if constraint.kind == BudgetConstraintKind.CAP_PCT and constraint.capPct is not None:
        return f"Cap {constraint.capPct:g}%"
    if constraint.kind == BudgetConstraintKind.CAP_DOLLARS and constraint.capDollars is not None:
        return f"Cap {format_currency(constraint.capDollars)}"
    return constraint.kind.value


def _or_empty(value: Optional[float], formatter) -> str:
    return EMPTY_CELL if value is None else formatter(value)


# =============================================================================
# Report Rows
# =============================================================================


def _incentive_vs_budget(incentive: float, constraint: BudgetConstraint) -> str:
    if constraint.kind != BudgetConstraintKind.CAP_DOLLARS or constraint.capDollars is None:
        return EMPTY_CELL
    over = incentive - constraint.capDollars
    if over > 0:
        return f"Over by {format_currency(over)}"
    if over < 0:
        return f"Under by {format_currency(-over)}"
    return "Within budget"


def comparison_report_rows(comparison: OptimizerScenarioComparison, generated: str) -> List[List[Cell]]:
    """
    Single-sheet report rows for a 2-4 scenario comparison.

    Args:
        comparison: Comparison from compare_optimizer_scenarios
        generated: Display date written in the header

    Returns:
        List of rows, each a list of cells
    """
    scenarios = comparison.scenarios
    rollup = comparison.rollup
    assumptions = comparison.assumptionsPerScenario
    names = [s.name for s in scenarios]
    ids = [s.id for s in scenarios]
    two_way = len(scenarios) == 2

    rows: List[List[Cell]] = [
        [REPORT_TITLE, ""],
        ["Generated", generated],
        [""],
        ["Scenarios", ""],
    ]
    rows.extend([f"Scenario {i + 1}", s.name] for i, s in enumerate(scenarios))
    rows.append([""])

    rows.append(["Summary", ""])
    rows.extend([line, ""] for line in comparison.narrativeSummary)
    rows.append([""])

    header: List[Cell] = ["Metric", *names] + (["Change"] if two_way else [])
    rows.append(["Roll-up metrics"] + [""] * (len(header) - 1))
    rows.append(header)

    def add(label: str, values: List[str], change: Optional[str] = None) -> None:
        row: List[Cell] = [label, *values]
        if two_way and change is not None:
            row.append(change)
        rows.append(row)

    spend = [rollup.totalSpendImpactByScenario.get(i, 0.0) for i in ids]
    incentive = [rollup.totalIncentiveByScenario.get(i, 0.0) for i in ids]
    spend_change = incentive_change = None
    if two_way:
        delta = spend[1] - spend[0]
        spend_change = EMPTY_CELL
        if delta != 0:
            spend_change = format_currency(delta)
            if spend[0] != 0:
                pct = delta / abs(spend[0]) * 100
                spend_change += f" ({'+' if pct > 0 else ''}{pct:.1f}%)"
        delta_incentive = incentive[1] - incentive[0]
        incentive_change = format_currency(delta_incentive) if delta_incentive != 0 else EMPTY_CELL

    add("Total spend impact", [format_currency(v) for v in spend], spend_change)
    add("Work RVU incentive (modeled)", [format_currency(v) for v in incentive], incentive_change)
    add("Budget (cap)", [format_budget_constraint(a.budgetConstraint) for a in assumptions])
    add(
        "Incentive vs budget",
        [_incentive_vs_budget(inc, a.budgetConstraint) for inc, a in zip(incentive, assumptions)],
    )
    add("Mean TCC percentile", [format_percentile(rollup.meanTCCPercentileByScenario.get(i, 0.0)) for i in ids])
    add("Mean wRVU percentile", [format_percentile(rollup.meanWRVUPercentileByScenario.get(i, 0.0)) for i in ids])
    add("Specialties aligned", [str(rollup.countMeetingAlignmentTargetByScenario.get(i, 0)) for i in ids])
    add("CF above policy", [str(rollup.countCFAbovePolicyByScenario.get(i, 0)) for i in ids])
    add("Effective rate >90th", [str(rollup.countEffectiveRateAbove90ByScenario.get(i, 0)) for i in ids])
    rows.append([""])

    rows.append(["Assumptions"] + [""] * max(0, len(names) - 1))
    rows.append(["Setting", *names])
    rows.append(["Productivity gain (wRVU growth %)", *[f"{a.wRVUGrowthFactorPct:g}%" for a in assumptions]])
    rows.append(["Objective", *[format_objective(a.optimizationObjective) for a in assumptions]])
    rows.append(["Budget constraint", *[format_budget_constraint(a.budgetConstraint) for a in assumptions]])
    rows.append(["Providers included", *[str(a.providersIncluded) for a in assumptions]])
    rows.append(["Providers excluded", *[str(a.providersExcluded) for a in assumptions]])
    rows.append(["Hard cap (TCC %ile)", *[f"{a.governanceConfig.hardCapPercentile:g}" for a in assumptions]])
    rows.append([""])

    spec_header: List[Cell] = ["Specialty", "Presence"]
    spec_header += [f"CF ({n})" for n in names]
    spec_header += [f"Spend ({n})" for n in names]
    spec_header += [f"TCC %ile ({n})" for n in names]
    rows.append(["By specialty"] + [""] * (len(spec_header) - 1))
    rows.append(spec_header)
    for row in comparison.bySpecialty:
        if len(row.scenarioIds) == len(ids):
            presence = "All"
        else:
            presence = ", ".join(s.name for s in scenarios if s.id in row.scenarioIds)
        rows.append([
            row.specialty,
            presence,
            *[_or_empty(row.recommendedCFByScenario.get(i), lambda v: f"{v:.2f}") for i in ids],
            *[_or_empty(row.spendImpactByScenario.get(i), format_currency) for i in ids],
            *[_or_empty(row.meanModeledTCCPercentileByScenario.get(i), format_percentile) for i in ids],
        ])
    return rows


# =============================================================================
# DataFrames
# =============================================================================


def comparison_to_dataframes(comparison: OptimizerScenarioComparison) -> Dict[str, pd.DataFrame]:
    """
    Raw-number tables for a comparison.

    Returns:
        {'rollup': metric x scenario name, 'by_specialty': one row per
        specialty with '<metric> (<scenario name>)' columns}
    """
    rollup = comparison.rollup
    metrics = {
        'totalSpendImpact': rollup.totalSpendImpactByScenario,
        'totalIncentive': rollup.totalIncentiveByScenario,
        'meanTCCPercentile': rollup.meanTCCPercentileByScenario,
        'meanWRVUPercentile': rollup.meanWRVUPercentileByScenario,
        'countMeetingAlignmentTarget': rollup.countMeetingAlignmentTargetByScenario,
        'countCFAbovePolicy': rollup.countCFAbovePolicyByScenario,
        'countEffectiveRateAbove90': rollup.countEffectiveRateAbove90ByScenario,
    }
    rollup_df = pd.DataFrame(
        {s.name: [metrics[m].get(s.id) for m in metrics] for s in comparison.scenarios},
        index=pd.Index(list(metrics), name='metric'),
    )

    records = []
    for row in comparison.bySpecialty:
        record = {
            'specialty': row.specialty,
            'presence': row.presence.value if row.presence else None,
        }
        for s in comparison.scenarios:
            record[f"recommendedCF ({s.name})"] = row.recommendedCFByScenario.get(s.id)
            record[f"spendImpact ({s.name})"] = row.spendImpactByScenario.get(s.id)
            record[f"meanModeledTCCPercentile ({s.name})"] = row.meanModeledTCCPercentileByScenario.get(s.id)
            record[f"meanTCCPercentile ({s.name})"] = row.meanTCCPercentileByScenario.get(s.id)
            record[f"meanWRVUPercentile ({s.name})"] = row.meanWRVUPercentileByScenario.get(s.id)
        records.append(record)
    by_specialty_df = pd.DataFrame.from_records(records)
    if not by_specialty_df.empty:
        by_specialty_df = by_specialty_df.set_index('specialty')

    return {'rollup': rollup_df, 'by_specialty': by_specialty_df}


__all__ = [
    'format_currency',
    'format_percentile',
    'format_objective',
    'format_budget_constraint',
    'comparison_report_rows',
    'comparison_to_dataframes',
]
