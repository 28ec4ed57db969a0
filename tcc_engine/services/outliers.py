"""
Outlier Detection Service

Robust outlier flags for small provider cohorts.

Methods:
- iqr: Tukey fences. Q1 / Q3 are the medians of the lower / upper halves of
  the sorted sample (the middle value is left out of both halves when n is
  odd). Values outside [Q1 - k*IQR, Q3 + k*IQR] are flagged.
- mad_z: modified z-score z = 0.6745 * (x - median) / MAD; |z| above the
  threshold is flagged. A zero MAD flags nothing.

Both methods need at least MIN_SAMPLE_SIZE values; smaller samples return
all-False.

Usage:
    from tcc_engine.services.outliers import detect_outliers

    flags = detect_outliers([10, 12, 11, 13, 14, 15, 16, 17, 18, 100], OutlierMethod.IQR)
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from tcc_engine.core.config import get_settings
from tcc_engine.models.enums import OutlierMethod


logger = logging.getLogger(__name__)


MIN_SAMPLE_SIZE: int = 4

# Scales MAD to the standard deviation of a normal distribution
MAD_Z_SCALE: float = 0.6745


def _tukey_hinges(sorted_values: np.ndarray) -> tuple:
    n = sorted_values.size
    lower = sorted_values[: n // 2]
    upper = sorted_values[(n + 1) // 2:]
    return float(np.median(lower)), float(np.median(upper))


def detect_outliers(
    values: Sequence[float],
    method: OutlierMethod = OutlierMethod.IQR,
    iqr_k: Optional[float] = None,
    mad_z_threshold: Optional[float] = None,
) -> List[bool]:
    """
    Flag outliers in a sample.

    Args:
        values: Sample values in caller order
        method: OutlierMethod.IQR or OutlierMethod.MAD_Z
        iqr_k: Fence multiplier (default from settings, 1.5)
        mad_z_threshold: Modified z-score cut-off (default from settings, 3.5)

    Returns:
        One boolean per input value, in input order
    """
    n = len(values)
    if n < MIN_SAMPLE_SIZE:
        return [False] * n

    settings = get_settings()
    arr = np.asarray(values, dtype=float)

    if method == OutlierMethod.IQR:
        k = settings.outlier_iqr_k if iqr_k is None else iqr_k
        q1, q3 = _tukey_hinges(np.sort(arr))
        iqr = max(0.0, q3 - q1)
        low = q1 - k * iqr
        high = q3 + k * iqr
        flags = (arr < low) | (arr > high)
        return [bool(f) for f in flags]

    if method == OutlierMethod.MAD_Z:
        threshold = settings.outlier_mad_z_threshold if mad_z_threshold is None else mad_z_threshold
        med = float(np.median(arr))
        mad = float(np.median(np.abs(arr - med)))
        if mad <= 0:
            logger.debug("MAD is zero; no outliers flagged")
            return [False] * n
        z = np.abs(MAD_Z_SCALE * (arr - med) / mad)
        return [bool(f) for f in (z > threshold)]

    raise ValueError(f"Unknown outlier method: {method}")


__all__ = [
    'MIN_SAMPLE_SIZE',
    'detect_outliers',
]
