"""
Ensemble and time-averaged statistics of unwrapped walks.

For ``n_steps`` positions per walk every statistic is indexed by the lag
``s = 1 .. n_steps - 1``:

- eaMSD: squared displacement from the walk origin after ``s`` steps,
  averaged over the ensemble.
- TAMSD: squared displacement over a window of ``s`` steps, averaged over
  every window start of one trajectory.
- eataMSD: one-step TAMSD of the first ``s`` positions, averaged over the
  ensemble.
- ergodicity breaking: ``(E[TAMSD^2] - E[TAMSD]^2) / E[TAMSD]^2 / s``.

The per-walk kernel releases the GIL, so the reduction over walks runs on
a thread pool. Non-finite values are zeroed before they reach any mean.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np
from numba import njit
from scipy.stats import linregress

from . import utils

logger = logging.getLogger(__name__)


@dataclass
class WalkAnalysis:
    ea_msd: np.ndarray  # (n_steps - 1,)
    eata_msd: np.ndarray  # (n_steps - 1,)
    ergodicity: np.ndarray  # (n_steps - 1,)
    ta_msd: np.ndarray  # (n_steps - 1, n_walks)

    @property
    def lags(self) -> np.ndarray:
        return np.arange(1, self.ea_msd.shape[0] + 1, dtype=np.float64)

    def to_matrix(self) -> np.ndarray:
        """Columns ``[eaMSD, eataMSD, ergodicity, TAMSD_0, ..., TAMSD_{n-1}]``."""
        return np.column_stack(
            (self.ea_msd, self.eata_msd, self.ergodicity, self.ta_msd)
        )


###############################################################################
# Kernels
###############################################################################


@njit(cache=True, nogil=True)
def tamsd(walk: np.ndarray, t: int, delta: int) -> float:
    """
    Time-averaged squared displacement at lag ``delta`` over the first
    ``t`` positions of ``walk``. NaN when no window fits.
    """
    count = t - delta
    if count <= 0:
        return np.nan
    total = 0.0
    for k in range(count):
        dx = walk[k + delta, 0] - walk[k, 0]
        dy = walk[k + delta, 1] - walk[k, 1]
        total += dx * dx + dy * dy
    return total / count


@njit(cache=True, nogil=True)
def _analyse_walk(
    walk: np.ndarray, ea_row: np.ndarray, ta_row: np.ndarray, eata_row: np.ndarray
) -> None:
    n_steps = walk.shape[0]
    x0 = walk[0, 0]
    y0 = walk[0, 1]
    for j in range(1, n_steps):
        dx = walk[j, 0] - x0
        dy = walk[j, 1] - y0
        ea_row[j - 1] = dx * dx + dy * dy
        ta_row[j - 1] = tamsd(walk, n_steps, j)
        eata_row[j - 1] = tamsd(walk, j, 1)


def _zero_nonfinite(values: np.ndarray) -> np.ndarray:
    values[~np.isfinite(values)] = 0.0
    return values


###############################################################################
# Public API
###############################################################################


def analyse_walks(coords: np.ndarray, n_jobs: int = -1) -> WalkAnalysis:
    """
    Compute every statistic for ``coords`` of shape ``(n_walks, n_steps, 2)``.

    Each worker writes only the rows of its own walks, so the result does
    not depend on how walks are scheduled.
    """
    t0 = time.perf_counter()
    n_walks, n_steps, _ = coords.shape
    n_lags = n_steps - 1

    ea_all = np.zeros((n_walks, n_lags), dtype=np.float64)
    ta_all = np.zeros((n_walks, n_lags), dtype=np.float64)
    eata_all = np.zeros((n_walks, n_lags), dtype=np.float64)

    def analyse_one(i: int) -> None:
        _analyse_walk(coords[i], ea_all[i], ta_all[i], eata_all[i])

    utils.parallel_for(analyse_one, 0, n_walks, n_jobs)

    _zero_nonfinite(ea_all)
    _zero_nonfinite(ta_all)
    _zero_nonfinite(eata_all)

    ea_msd = _zero_nonfinite(ea_all.mean(axis=0))
    eata_msd = _zero_nonfinite(eata_all.mean(axis=0))

    mean_sq = ta_all.mean(axis=0) ** 2
    mean_of_sq = (ta_all**2).mean(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        ergodicity = _zero_nonfinite((mean_of_sq - mean_sq) / mean_sq)
        ergodicity = _zero_nonfinite(ergodicity / np.arange(1, n_steps))

    logger.debug("Analysing random walks...   %.6f s", time.perf_counter() - t0)
    return WalkAnalysis(
        ea_msd=ea_msd,
        eata_msd=eata_msd,
        ergodicity=ergodicity,
        ta_msd=np.ascontiguousarray(ta_all.T),
    )


def anomalous_exponent(lags: np.ndarray, msd: np.ndarray) -> tuple[float, float]:
    """
    Fit ``msd ~ lags**alpha`` on a log-log scale.

    Only strictly positive, finite points enter the fit.

    Returns:
        Tuple of (alpha, r_squared)

    Raises:
        ValueError: If fewer than two usable points remain
    """
    lags = np.asarray(lags, dtype=np.float64)
    msd = np.asarray(msd, dtype=np.float64)
    mask = np.isfinite(lags) & np.isfinite(msd) & (lags > 0) & (msd > 0)
    if np.count_nonzero(mask) < 2:
        raise ValueError("Need at least two positive MSD points to fit an exponent")

    slope, intercept, r_value, p_value, std_err = linregress(
        np.log(lags[mask]), np.log(msd[mask])
    )
    return float(slope), float(r_value**2)


__all__ = ["WalkAnalysis", "analyse_walks", "anomalous_exponent", "tamsd"]
