"""
Percentile Interpolation Test Module

Tests for tcc_engine/services/interpolation.py.

Test Coverage:
- infer_percentile inside each segment and exactly on benchmark points
- Extrapolation below the 25th and above the 90th with range flags
- Floor at 0 and ceiling at 100 for far off-scale values
- Flat (zero-width) curves never divide by zero
- interp_percentile including the synthetic 0th point and the tail above 90
- Inference and interpolation agree on the 25th-90th range

Reference curve (Internal Medicine TCC): 250k / 300k / 360k / 420k.
"""

import pytest

from tcc_engine.services.interpolation import (
    infer_from_benchmarks,
    infer_percentile,
    interp_from_benchmarks,
    interp_percentile,
)


TCC = (250000.0, 300000.0, 360000.0, 420000.0)
CF = (40.0, 45.0, 50.0, 55.0)


# =============================================================================
# infer_percentile
# =============================================================================

class TestInferPercentile:
    """Tests for mapping a value onto the market curve."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (250000, 25.0),
            (300000, 50.0),
            (360000, 75.0),
            (420000, 90.0),
        ],
    )
    def test_benchmark_points(self, value, expected):
        """Benchmark values map to their own percentile without range flags."""
        result = infer_percentile(value, *TCC)
        assert result.percentile == pytest.approx(expected)
        assert result.belowRange is False
        assert result.aboveRange is False

    def test_linear_within_segments(self):
        assert infer_percentile(275000, *TCC).percentile == pytest.approx(37.5)
        assert infer_percentile(330000, *TCC).percentile == pytest.approx(62.5)
        assert infer_percentile(390000, *TCC).percentile == pytest.approx(82.5)

    def test_extrapolates_below_25th(self):
        """The 25->50 slope (2,000 per point) continues below the 25th."""
        result = infer_percentile(225000, *TCC)
        assert result.percentile == pytest.approx(12.5)
        assert result.belowRange is True
        assert result.off_scale is True

    def test_extrapolates_above_90th(self):
        """The 75->90 slope (4,000 per point) continues above the 90th."""
        result = infer_percentile(450000, *TCC)
        assert result.percentile == pytest.approx(97.5)
        assert result.aboveRange is True

    def test_floor_at_zero(self):
        result = infer_percentile(100000, *TCC)
        assert result.percentile == 0.0
        assert result.belowRange is True

    def test_ceiling_at_hundred(self):
        result = infer_percentile(1000000, *TCC)
        assert result.percentile == 100.0
        assert result.aboveRange is True

    def test_flat_curve_below_and_above(self):
        """A curve with all-equal points returns 25 / 90 rather than dividing by zero."""
        below = infer_percentile(5, 10, 10, 10, 10)
        above = infer_percentile(15, 10, 10, 10, 10)
        assert below.percentile == 25.0 and below.belowRange
        assert above.percentile == 90.0 and above.aboveRange

    def test_flat_segment_is_a_vertical_step(self):
        """Equal 50th and 75th points: a value on the step resolves within range."""
        result = infer_percentile(100, 50, 100, 100, 200)
        assert result.percentile == pytest.approx(50.0)
        assert not result.off_scale

    def test_sequence_wrapper(self):
        assert infer_from_benchmarks(47.5, CF).percentile == pytest.approx(62.5)


# =============================================================================
# interp_percentile
# =============================================================================

class TestInterpPercentile:
    """Tests for the value on the market curve at a percentile."""

    def test_benchmark_percentiles(self):
        assert interp_percentile(25, *CF) == pytest.approx(40.0)
        assert interp_percentile(50, *CF) == pytest.approx(45.0)
        assert interp_percentile(75, *CF) == pytest.approx(50.0)
        assert interp_percentile(90, *CF) == pytest.approx(55.0)

    def test_between_points(self):
        assert interp_percentile(40, *CF) == pytest.approx(43.0)
        assert interp_percentile(82.5, *CF) == pytest.approx(52.5)

    def test_below_25th_uses_synthetic_zero_point(self):
        """The 0th point is 2 * p25 - p50 = 35."""
        assert interp_percentile(0, *CF) == pytest.approx(35.0)
        assert interp_percentile(10, *CF) == pytest.approx(37.0)

    def test_above_90th_continues_75_to_90_step(self):
        assert interp_percentile(100, *CF) == pytest.approx(60.0)

    @pytest.mark.parametrize("pct", [25.0, 33.0, 50.0, 61.0, 75.0, 88.0, 90.0])
    def test_agrees_with_inference_in_range(self, pct):
        value = interp_from_benchmarks(pct, TCC)
        assert infer_from_benchmarks(value, TCC).percentile == pytest.approx(pct)
