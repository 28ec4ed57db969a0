"""
Optimizer Governance Test Module

Tests for tcc_engine/services/governance.py.

Test Coverage:
- Constraint codes derived from configured thresholds
- Status priority (first match wins) with every fired constraint recorded
- Action selection order
- Ordinal and CF display formatting
- Deterministic explanations for each action branch
"""

import pytest

from tcc_engine.models.enums import OptimizerStatus, RecommendedAction
from tcc_engine.models.schemas import (
    GovernanceConfig,
    MarketCFBenchmarks,
    OptimizerKeyMetrics,
)
from tcc_engine.services.governance import (
    MAX_CHANGE_BOUND,
    build_explanation,
    constraint_codes,
    determine_action,
    evaluate_status,
    format_cf,
    ordinal,
)


GOVERNANCE = GovernanceConfig()
IM_CF = MarketCFBenchmarks(cf25=40, cf50=45, cf75=50, cf90=55)


def metrics(prod: float, comp: float) -> OptimizerKeyMetrics:
    return OptimizerKeyMetrics(prodPercentile=prod, compPercentile=comp, gap=comp - prod)


# =============================================================================
# Formatting
# =============================================================================

class TestFormatting:
    """Tests for display helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (1, "1st"), (2, "2nd"), (3, "3rd"), (4, "4th"),
            (11, "11th"), (12, "12th"), (13, "13th"),
            (21, "21st"), (22, "22nd"), (49.6, "50th"),
            (101, "101st"), (111, "111th"),
        ],
    )
    def test_ordinal(self, value, expected):
        assert ordinal(value) == expected

    def test_format_cf(self):
        assert format_cf(45) == "$45.00"
        assert format_cf(52.346) == "$52.35"

    def test_constraint_codes_follow_thresholds(self):
        codes = constraint_codes(GovernanceConfig(fmvRedFlagPercentile=90, yellowGapPercentile=7.5))
        assert codes['fmv'] == "FMV_OVER_90"
        assert codes['yellow_gap'] == "GAP_7.5_TO_10"
        assert constraint_codes(GOVERNANCE) == {
            'fmv': "FMV_OVER_75",
            'red_gap': "GAP_OVER_10",
            'hard_cap': "HARD_CAP_50",
            'soft_cap': "SOFT_CAP_60",
            'yellow_gap': "GAP_5_TO_10",
        }


# =============================================================================
# Status
# =============================================================================

class TestEvaluateStatus:
    """Tests for traffic-light status and constraints."""

    def test_green(self):
        assert evaluate_status(metrics(50, 50), GOVERNANCE) == (OptimizerStatus.GREEN, [])

    def test_fmv_red_records_all_constraints(self):
        status, constraints = evaluate_status(metrics(75, 80), GOVERNANCE)
        assert status == OptimizerStatus.RED
        assert constraints == ["FMV_OVER_75", "HARD_CAP_50", "GAP_5_TO_10"]

    def test_red_gap(self):
        status, constraints = evaluate_status(metrics(28, 40), GOVERNANCE)
        assert status == OptimizerStatus.RED
        assert constraints == ["GAP_OVER_10"]

    def test_between_hard_and_soft_cap(self):
        status, constraints = evaluate_status(metrics(53, 55), GOVERNANCE)
        assert status == OptimizerStatus.YELLOW
        assert constraints == ["HARD_CAP_50", "SOFT_CAP_60"]

    def test_above_soft_cap_without_fmv(self):
        status, constraints = evaluate_status(metrics(68, 70), GOVERNANCE)
        assert status == OptimizerStatus.YELLOW
        assert constraints == ["HARD_CAP_50"]

    def test_yellow_gap(self):
        status, constraints = evaluate_status(metrics(33, 40), GOVERNANCE)
        assert status == OptimizerStatus.YELLOW
        assert constraints == ["GAP_5_TO_10"]

    def test_negative_gap_is_not_flagged(self):
        assert evaluate_status(metrics(80, 40), GOVERNANCE) == (OptimizerStatus.GREEN, [])


# =============================================================================
# Action
# =============================================================================

class TestDetermineAction:
    """Tests for recommended action selection."""

    def test_no_providers(self):
        action = determine_action(0, OptimizerStatus.GREEN, False, 40, 44, GOVERNANCE)
        assert action == RecommendedAction.NO_RECOMMENDATION

    def test_red_holds(self):
        assert determine_action(5, OptimizerStatus.RED, False, 40, 44, GOVERNANCE) == RecommendedAction.HOLD

    def test_blocked_increase_holds(self):
        assert determine_action(5, OptimizerStatus.YELLOW, True, 40, 40, GOVERNANCE) == RecommendedAction.HOLD

    def test_blocked_but_decrease_allowed(self):
        assert determine_action(5, OptimizerStatus.YELLOW, True, 40, 36, GOVERNANCE) == RecommendedAction.DECREASE

    def test_small_change_holds(self):
        assert determine_action(5, OptimizerStatus.GREEN, False, 40, 40.2, GOVERNANCE) == RecommendedAction.HOLD

    def test_increase_and_decrease(self):
        assert determine_action(5, OptimizerStatus.GREEN, False, 40, 44, GOVERNANCE) == RecommendedAction.INCREASE
        assert determine_action(5, OptimizerStatus.GREEN, False, 40, 36, GOVERNANCE) == RecommendedAction.DECREASE


# =============================================================================
# Explanation
# =============================================================================

class TestBuildExplanation:
    """Tests for the plain-English explanation."""

    def test_no_recommendation(self):
        explanation = build_explanation(
            RecommendedAction.NO_RECOMMENDATION, OptimizerStatus.YELLOW, metrics(0, 0), [], 45, 45, 0, GOVERNANCE
        )
        assert explanation.headline == "No recommendation -- insufficient data for reliable analysis."
        assert explanation.why[0] == "Only 0 provider(s) had enough data to analyze."

    def test_fmv_hold(self):
        explanation = build_explanation(
            RecommendedAction.HOLD,
            OptimizerStatus.RED,
            metrics(25, 85),
            ["FMV_OVER_75", "GAP_OVER_10", "HARD_CAP_50"],
            45, 45, 4, GOVERNANCE,
        )
        assert explanation.headline == (
            "Hold CF at $45.00 -- compensation exceeds the 75th percentile, flagging FMV risk."
        )
        assert explanation.why[0] == "Compensation is at the 85th percentile, above the 75th FMV threshold."
        assert explanation.why[1] == (
            "Productivity is at the 25th percentile. The +60 percentile gap indicates pay exceeds output."
        )

    def test_aligned_hold(self):
        explanation = build_explanation(
            RecommendedAction.HOLD, OptimizerStatus.GREEN, metrics(50, 51), [], 45, 45, 4, GOVERNANCE
        )
        assert explanation.headline == "Hold CF at $45.00 -- no material change needed."
        assert explanation.why == [
            "Productivity (50th) and compensation (51st) percentiles are well-aligned.",
            "No CF adjustment would meaningfully improve alignment.",
        ]

    def test_increase_when_underpaid(self):
        explanation = build_explanation(
            RecommendedAction.INCREASE,
            OptimizerStatus.GREEN,
            metrics(75, 25),
            [MAX_CHANGE_BOUND],
            40, 52, 4, GOVERNANCE,
            cf_market_percentile=81,
            market_cf=IM_CF,
        )
        assert explanation.headline == (
            "Increase CF from $40.00 to $52.00 (+30.0%) to better align pay with productivity."
        )
        assert explanation.why == [
            "Productivity is at the 75th percentile but compensation is only at the 25th percentile "
            "-- this group is underpaid relative to output.",
            "A $12.00 CF increase narrows the 50 point gap toward closer alignment.",
            "Recommended CF of $52.00 sits at the 81st market percentile "
            "-- between the 75th ($50.00) and 90th ($55.00).",
            "Recommended CF stays within the 50th percentile policy cap.",
            "CF change was capped by the maximum allowed adjustment bounds.",
        ]
        assert explanation.whatToDoNext == [
            "Consider phased implementation over 2 cycles if a larger increase is warranted.",
            "Review individual provider drilldown for outliers before finalizing.",
        ]

    def test_decrease(self):
        explanation = build_explanation(
            RecommendedAction.DECREASE,
            OptimizerStatus.YELLOW,
            metrics(50, 58),
            ["GAP_5_TO_10"],
            50, 45, 6, GOVERNANCE,
            cf_market_percentile=50,
            market_cf=IM_CF,
        )
        assert explanation.headline == (
            "Decrease CF from $50.00 to $45.00 (-10.0%) to bring pay closer to productivity alignment."
        )
        assert explanation.why[1] == "A $5.00 CF decrease brings compensation closer to the productivity level."
        assert explanation.why[2] == (
            "Recommended CF of $45.00 sits at the 50th market percentile "
            "-- between the 25th ($40.00) and median ($45.00)."
        )

    def test_deterministic(self):
        args = (
            RecommendedAction.INCREASE, OptimizerStatus.GREEN, metrics(60, 40), [], 40, 44, 5, GOVERNANCE,
        )
        assert build_explanation(*args) == build_explanation(*args)
