"""
Optimizer Governance Service

Pure, deterministic helpers that turn optimizer numbers into a decision:

- normalize_specialty_metrics: mean productivity / compensation percentile
  and gap (comp - prod) across included providers
- evaluate_status: traffic-light status plus every constraint that fired
- determine_action: INCREASE / DECREASE / HOLD / NO_RECOMMENDATION
- build_explanation: headline, "why" bullets and next steps

Status priority (first match wins, every triggered rule is recorded):
    1. comp >= fmvRedFlagPercentile          -> RED     FMV_OVER_<fmv>
    2. gap  >= redGapPercentile              -> RED     GAP_OVER_<red>
    3. comp >  hardCapPercentile             -> YELLOW  HARD_CAP_<hard>
       (and comp <= softCapPercentile adds            SOFT_CAP_<soft>)
    4. gap  >= yellowGapPercentile           -> YELLOW  GAP_<yellow>_TO_<red>
    5. otherwise                             -> GREEN

Action order:
    no included providers                    -> NO_RECOMMENDATION
    status RED                               -> HOLD
    increase blocked and no decrease found   -> HOLD
    |change| / current < minMeaningfulChange -> HOLD
    recommended > current                    -> INCREASE
    otherwise                                -> DECREASE

Display strings ($x.xx, ordinals) live only in the explanation; the numeric
fields on results stay raw.
"""

from typing import List, Optional, Sequence, Tuple

from tcc_engine.models.enums import OptimizerStatus, RecommendedAction
from tcc_engine.models.schemas import (
    GovernanceConfig,
    MarketCFBenchmarks,
    OptimizerExplanation,
    OptimizerKeyMetrics,
    OptimizerProviderContext,
)


CHANGE_EPSILON: float = 1e-6

MAX_CHANGE_BOUND: str = "MAX_CHANGE_BOUND"
BUDGET_CAP_EXCEEDED: str = "BUDGET_CAP_EXCEEDED"


# =============================================================================
# Formatting
# =============================================================================


def format_cf(value: float) -> str:
    return f"${value:.2f}"


def ordinal(value: float) -> str:
    """Rounded percentile with its English ordinal suffix (1st, 22nd, 13th)."""
    r = int(round(value))
    if 10 <= r % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(r % 10, "th")
    return f"{r}{suffix}"


def _pctile_code(value: float) -> str:
    return f"{value:g}"


def _signed_pctile(value: float) -> str:
    r = int(round(value))
    return f"+{r}" if value > 0 else f"{r}"


def constraint_codes(governance: GovernanceConfig) -> dict:
    """Constraint codes named after the configured thresholds."""
    return {
        'fmv': f"FMV_OVER_{_pctile_code(governance.fmvRedFlagPercentile)}",
        'red_gap': f"GAP_OVER_{_pctile_code(governance.redGapPercentile)}",
        'hard_cap': f"HARD_CAP_{_pctile_code(governance.hardCapPercentile)}",
        'soft_cap': f"SOFT_CAP_{_pctile_code(governance.softCapPercentile)}",
        'yellow_gap': (
            f"GAP_{_pctile_code(governance.yellowGapPercentile)}"
            f"_TO_{_pctile_code(governance.redGapPercentile)}"
        ),
    }


# =============================================================================
# Metrics and Status
# =============================================================================


def normalize_specialty_metrics(included: Sequence[OptimizerProviderContext]) -> OptimizerKeyMetrics:
    """Mean percentiles and gap across included provider contexts."""
    if not included:
        return OptimizerKeyMetrics()
    n = len(included)
    prod = sum(c.wrvuPercentile for c in included) / n
    comp = sum(c.currentTCC_pctile for c in included) / n
    return OptimizerKeyMetrics(
        prodPercentile=prod,
        compPercentile=comp,
        gap=comp - prod,
        tcc_1p0=sum(c.currentTCC_1p0 for c in included) / n,
        workRVU_1p0=sum(c.wRVU_1p0 for c in included) / n,
    )


def evaluate_status(
    key_metrics: OptimizerKeyMetrics,
    governance: GovernanceConfig,
) -> Tuple[OptimizerStatus, List[str]]:
    """
    Traffic-light status and the constraints that fired.

    Returns:
        (status, constraintsHit)
    """
    codes = constraint_codes(governance)
    comp = key_metrics.compPercentile
    gap = key_metrics.gap
    constraints: List[str] = []
    status: Optional[OptimizerStatus] = None

    if comp >= governance.fmvRedFlagPercentile:
        constraints.append(codes['fmv'])
        status = status or OptimizerStatus.RED
    if gap >= governance.redGapPercentile:
        constraints.append(codes['red_gap'])
        status = status or OptimizerStatus.RED
    if comp > governance.hardCapPercentile:
        constraints.append(codes['hard_cap'])
        if comp <= governance.softCapPercentile:
            constraints.append(codes['soft_cap'])
        status = status or OptimizerStatus.YELLOW
    if governance.yellowGapPercentile <= gap < governance.redGapPercentile:
        constraints.append(codes['yellow_gap'])
        status = status or OptimizerStatus.YELLOW

    return status or OptimizerStatus.GREEN, constraints


def determine_action(
    included_count: int,
    status: OptimizerStatus,
    increase_blocked: bool,
    current_cf: float,
    recommended_cf: float,
    governance: GovernanceConfig,
) -> RecommendedAction:
    if included_count == 0:
        return RecommendedAction.NO_RECOMMENDATION
    if status == OptimizerStatus.RED:
        return RecommendedAction.HOLD
    if increase_blocked and recommended_cf >= current_cf - CHANGE_EPSILON:
        return RecommendedAction.HOLD
    change_frac = abs(recommended_cf - current_cf) / current_cf if current_cf > 0 else 0.0
    if change_frac < governance.minMeaningfulChangePct:
        return RecommendedAction.HOLD
    if recommended_cf > current_cf:
        return RecommendedAction.INCREASE
    return RecommendedAction.DECREASE


# =============================================================================
# Explanation
# =============================================================================


def _market_position(recommended_cf: float, market_cf: MarketCFBenchmarks) -> str:
    if recommended_cf <= market_cf.cf25:
        return f"below the 25th percentile ({format_cf(market_cf.cf25)})"
    if recommended_cf <= market_cf.cf50:
        return f"between the 25th ({format_cf(market_cf.cf25)}) and median ({format_cf(market_cf.cf50)})"
    if recommended_cf <= market_cf.cf75:
        return f"between the median ({format_cf(market_cf.cf50)}) and 75th ({format_cf(market_cf.cf75)})"
    if recommended_cf <= market_cf.cf90:
        return f"between the 75th ({format_cf(market_cf.cf75)}) and 90th ({format_cf(market_cf.cf90)})"
    return f"above the 90th percentile ({format_cf(market_cf.cf90)})"


def build_explanation(
    action: RecommendedAction,
    status: OptimizerStatus,
    key_metrics: OptimizerKeyMetrics,
    constraints_hit: Sequence[str],
    current_cf: float,
    recommended_cf: float,
    included_count: int,
    governance: GovernanceConfig,
    cf_market_percentile: Optional[float] = None,
    market_cf: Optional[MarketCFBenchmarks] = None,
) -> OptimizerExplanation:
    """
    Plain-English explanation of an optimizer decision.

    Deterministic: identical inputs always produce identical text.
    """
    why: List[str] = []
    next_steps: List[str] = []
    prod = key_metrics.prodPercentile
    comp = key_metrics.compPercentile
    gap = key_metrics.gap
    cf_delta = recommended_cf - current_cf
    cf_pct_change = cf_delta / current_cf * 100 if current_cf > 0 else 0.0
    hard_cap_hit = any(c.startswith("HARD_CAP") for c in constraints_hit)
    aligned = abs(gap) <= governance.alignmentTolerancePctile

    if action == RecommendedAction.NO_RECOMMENDATION:
        why.append(f"Only {included_count} provider(s) had enough data to analyze.")
        why.append("Ensure providers have valid clinical FTE, work RVUs, and matching market data.")
        next_steps.append("Review excluded providers and fix missing data if possible.")
        return OptimizerExplanation(
            headline="No recommendation -- insufficient data for reliable analysis.",
            why=why,
            whatToDoNext=next_steps,
        )

    if (
        action == RecommendedAction.HOLD
        and status == OptimizerStatus.RED
        and comp >= governance.fmvRedFlagPercentile
    ):
        fmv = ordinal(governance.fmvRedFlagPercentile)
        why.append(f"Compensation is at the {ordinal(comp)} percentile, above the {fmv} FMV threshold.")
        why.append(
            f"Productivity is at the {ordinal(prod)} percentile. The {_signed_pctile(gap)} "
            f"percentile gap indicates pay exceeds output."
        )
        why.append("Raising CF would further increase overmarket pay without creating meaningful incentive leverage.")
        next_steps.append("Investigate structural compensation issues (base salary, guaranteed payments).")
        next_steps.append("Consider holding or reducing base pay before adjusting CF.")
        return OptimizerExplanation(
            headline=f"Hold CF at {format_cf(current_cf)} -- compensation exceeds the {fmv} percentile, flagging FMV risk.",
            why=why,
            whatToDoNext=next_steps,
        )

    if action == RecommendedAction.HOLD and hard_cap_hit:
        cap = ordinal(governance.hardCapPercentile)
        why.append(f"Compensation is at the {ordinal(comp)} percentile, above the {cap} policy cap.")
        why.append(f"Productivity is at the {ordinal(prod)} percentile (gap: {_signed_pctile(gap)}).")
        if aligned:
            why.append("Pay and productivity are well-aligned, but compensation is already above the target range.")
        else:
            why.append("Raising CF would increase overmarket pay and will not create meaningful incentive leverage.")
        next_steps.append("Review whether the policy cap should be adjusted for this specialty.")
        return OptimizerExplanation(
            headline=f"Hold CF at {format_cf(current_cf)} -- provider group already above the {cap} percentile policy cap.",
            why=why,
            whatToDoNext=next_steps,
        )

    if action == RecommendedAction.HOLD:
        if aligned:
            why.append(f"Productivity ({ordinal(prod)}) and compensation ({ordinal(comp)}) percentiles are well-aligned.")
            why.append("No CF adjustment would meaningfully improve alignment.")
        else:
            why.append(f"Productivity is at the {ordinal(prod)} percentile; compensation is at the {ordinal(comp)} percentile.")
            why.append("The optimal CF change is too small to materially impact incentives or alignment.")
            if gap > 0:
                why.append(
                    "Raising the conversion factor would add work RVU incentive dollars and push the TCC "
                    "percentile higher, further increasing pay above productivity."
                )
        if constraints_hit:
            why.append(f"Constraints: {', '.join(constraints_hit)}.")
        return OptimizerExplanation(
            headline=f"Hold CF at {format_cf(current_cf)} -- no material change needed.",
            why=why,
            whatToDoNext=next_steps,
        )

    def add_market_context() -> None:
        if cf_market_percentile is not None and market_cf is not None:
            why.append(
                f"Recommended CF of {format_cf(recommended_cf)} sits at the {ordinal(cf_market_percentile)} "
                f"market percentile -- {_market_position(recommended_cf, market_cf)}."
            )

    if action == RecommendedAction.INCREASE:
        if gap > 0:
            why.append(
                f"Total compensation is at the {ordinal(comp)} percentile while productivity is at the "
                f"{ordinal(prod)} percentile -- pay is above productivity on total comp."
            )
            why.append(
                "The conversion factor is below market median, so the incentive piece is underpowered. "
                "Increasing CF (up to the 50th percentile) fills the gap with wRVU incentive dollars."
            )
            if market_cf is not None and recommended_cf >= market_cf.cf50 - 0.01:
                why.append(
                    f"Recommended CF is capped at the market 50th percentile ({format_cf(market_cf.cf50)}) "
                    f"for this group (pay above productivity)."
                )
        else:
            why.append(
                f"Productivity is at the {ordinal(prod)} percentile but compensation is only at the "
                f"{ordinal(comp)} percentile -- this group is underpaid relative to output."
            )
            why.append(
                f"A {format_cf(abs(cf_delta))} CF increase narrows the {int(round(abs(gap)))} point gap "
                f"toward closer alignment."
            )
        add_market_context()
        if not hard_cap_hit:
            why.append(
                f"Recommended CF stays within the {ordinal(governance.hardCapPercentile)} percentile policy cap."
            )
        if MAX_CHANGE_BOUND in constraints_hit:
            why.append("CF change was capped by the maximum allowed adjustment bounds.")
            next_steps.append("Consider phased implementation over 2 cycles if a larger increase is warranted.")
        next_steps.append("Review individual provider drilldown for outliers before finalizing.")
        return OptimizerExplanation(
            headline=(
                f"Increase CF from {format_cf(current_cf)} to {format_cf(recommended_cf)} "
                f"(+{cf_pct_change:.1f}%) to better align pay with productivity."
            ),
            why=why,
            whatToDoNext=next_steps,
        )

    why.append(
        f"Compensation is at the {ordinal(comp)} percentile while productivity is at the "
        f"{ordinal(prod)} percentile -- pay is above productivity relative to output."
    )
    why.append(f"A {format_cf(abs(cf_delta))} CF decrease brings compensation closer to the productivity level.")
    add_market_context()
    if MAX_CHANGE_BOUND in constraints_hit:
        why.append(
            "CF change was capped by the maximum allowed adjustment bounds; "
            "full alignment may require further adjustment."
        )
        next_steps.append("Consider phased implementation across multiple review cycles.")
    next_steps.append("Review individual provider drilldown and consult with division leadership.")
    return OptimizerExplanation(
        headline=(
            f"Decrease CF from {format_cf(current_cf)} to {format_cf(recommended_cf)} "
            f"({cf_pct_change:.1f}%) to bring pay closer to productivity alignment."
        ),
        why=why,
        whatToDoNext=next_steps,
    )


__all__ = [
    'MAX_CHANGE_BOUND',
    'BUDGET_CAP_EXCEEDED',
    'format_cf',
    'ordinal',
    'constraint_codes',
    'normalize_specialty_metrics',
    'evaluate_status',
    'determine_action',
    'build_explanation',
]
