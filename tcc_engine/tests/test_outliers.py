"""
Outlier Detection Test Module

Tests for tcc_engine/services/outliers.py.

Test Coverage:
- IQR fences with Tukey hinges (middle value left out for odd n)
- Custom fence multiplier
- MAD modified z-scores, including the zero-MAD case
- Samples smaller than four values are never flagged
- Flags are returned in input order
"""

import pytest

from tcc_engine.models.enums import OutlierMethod
from tcc_engine.services.outliers import detect_outliers


SAMPLE = [10, 12, 11, 13, 14, 15, 16, 17, 18, 100]


class TestIqrMethod:
    """Tukey fence outliers."""

    def test_flags_only_extreme_value(self, settings):
        """Q1 = 12, Q3 = 17, fences 4.5 / 24.5."""
        flags = detect_outliers(SAMPLE, OutlierMethod.IQR)
        assert flags == [False] * 9 + [True]

    def test_input_order_preserved(self, settings):
        flags = detect_outliers([100] + SAMPLE[:-1], OutlierMethod.IQR)
        assert flags[0] is True
        assert not any(flags[1:])

    def test_odd_sample_hinges(self, settings):
        """n=7: Q1 = median(1, 2, 3) = 2, Q3 = median(5, 6, 100) = 6; upper fence 12."""
        assert detect_outliers([1, 2, 3, 4, 5, 6, 100]) == [False] * 6 + [True]

    def test_wide_fence_multiplier(self, settings):
        assert detect_outliers(SAMPLE, OutlierMethod.IQR, iqr_k=20) == [False] * 10

    def test_small_sample_never_flagged(self, settings):
        assert detect_outliers([1, 2, 1000], OutlierMethod.IQR) == [False, False, False]
        assert detect_outliers([], OutlierMethod.MAD_Z) == []


class TestMadZMethod:
    """Modified z-score outliers."""

    def test_flags_extreme_value(self, settings):
        """median 3, MAD 1; z(100) = 0.6745 * 97 = 65.4."""
        assert detect_outliers([1, 2, 3, 4, 100], OutlierMethod.MAD_Z) == [False, False, False, False, True]

    def test_zero_mad_flags_nothing(self, settings):
        assert detect_outliers([10, 10, 10, 10, 50], OutlierMethod.MAD_Z) == [False] * 5

    def test_threshold_override(self, settings):
        """z(1) = 0.6745 * 2 = 1.349; a threshold of 1.0 flags it too."""
        flags = detect_outliers([1, 2, 3, 4, 100], OutlierMethod.MAD_Z, mad_z_threshold=1.0)
        assert flags == [True, False, False, False, True]

    def test_returns_plain_bools(self, settings):
        flags = detect_outliers([1, 2, 3, 4, 100], OutlierMethod.MAD_Z)
        assert all(type(f) is bool for f in flags)
