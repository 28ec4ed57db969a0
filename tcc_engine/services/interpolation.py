"""
Percentile Interpolation Service

Maps a value onto a four-point market curve (25th, 50th, 75th, 90th) and back.

Rules:
- Inside [p25, p90] the percentile is linear within each adjacent pair.
- Below p25 the 25->50 slope is extrapolated; above p90 the 75->90 slope.
- Results are never clamped to 25/90. belowRange / aboveRange mark
  extrapolated values, and the percentile itself stays within [0, 100].
- A segment whose two endpoints are equal returns its lower percentile
  (vertical step) instead of dividing by zero.

Usage:
    from tcc_engine.services.interpolation import infer_percentile, interp_percentile

    result = infer_percentile(550000, *market.tcc())
    cf_40 = interp_percentile(40, *market.cf())
"""

from typing import Sequence, Tuple

from tcc_engine.models.schemas import PercentileResult


# =============================================================================
# Constants
# =============================================================================

BENCHMARK_PERCENTILES: Tuple[float, float, float, float] = (25.0, 50.0, 75.0, 90.0)

MIN_PERCENTILE: float = 0.0
MAX_PERCENTILE: float = 100.0


def _segment(value: float, lo_v: float, hi_v: float, lo_p: float, hi_p: float) -> float:
    span = hi_v - lo_v
    if span == 0:
        return lo_p
    return lo_p + (value - lo_v) / span * (hi_p - lo_p)


def infer_percentile(
    value: float,
    p25: float,
    p50: float,
    p75: float,
    p90: float,
) -> PercentileResult:
    """
    Infer where a value falls on the market curve.

    Args:
        value: Observed value (per 1.0 cFTE where relevant)
        p25, p50, p75, p90: Market benchmark values

    Returns:
        PercentileResult with the raw percentile and range flags
    """
    if value == p25:
        return PercentileResult(percentile=25.0)

    if value < p25:
        slope = (p50 - p25) / 25.0
        if slope == 0:
            return PercentileResult(percentile=25.0, belowRange=True)
        pct = 25.0 + (value - p25) / slope
        return PercentileResult(percentile=max(MIN_PERCENTILE, pct), belowRange=True)

    if value > p90:
        slope = (p90 - p75) / 15.0
        if slope == 0:
            return PercentileResult(percentile=90.0, aboveRange=True)
        pct = 90.0 + (value - p90) / slope
        return PercentileResult(percentile=min(MAX_PERCENTILE, pct), aboveRange=True)

    if value <= p50:
        return PercentileResult(percentile=_segment(value, p25, p50, 25.0, 50.0))
    if value <= p75:
        return PercentileResult(percentile=_segment(value, p50, p75, 50.0, 75.0))
    return PercentileResult(percentile=_segment(value, p75, p90, 75.0, 90.0))


def interp_percentile(
    pct: float,
    p25: float,
    p50: float,
    p75: float,
    p90: float,
) -> float:
    """
    Value on the market curve at a given percentile.

    Below the 25th the curve runs from a synthetic 0th point (2*p25 - p50);
    above the 90th it continues at the 75->90 step per 10 points.
    """
    if pct <= 25:
        v0 = 2 * p25 - p50
        return v0 + (pct / 25.0) * (p25 - v0)
    if pct <= 50:
        return p25 + (pct - 25) / 25.0 * (p50 - p25)
    if pct <= 75:
        return p50 + (pct - 50) / 25.0 * (p75 - p50)
    if pct <= 90:
        return p75 + (pct - 75) / 15.0 * (p90 - p75)
    return p90 + (pct - 90) / 10.0 * (p90 - p75)


def infer_from_benchmarks(value: float, benchmarks: Sequence[float]) -> PercentileResult:
    """Convenience wrapper taking a (p25, p50, p75, p90) sequence."""
    p25, p50, p75, p90 = benchmarks
    return infer_percentile(value, p25, p50, p75, p90)


def interp_from_benchmarks(pct: float, benchmarks: Sequence[float]) -> float:
    p25, p50, p75, p90 = benchmarks
    return interp_percentile(pct, p25, p50, p75, p90)


__all__ = [
    'BENCHMARK_PERCENTILES',
    'infer_percentile',
    'interp_percentile',
    'infer_from_benchmarks',
    'interp_from_benchmarks',
]
