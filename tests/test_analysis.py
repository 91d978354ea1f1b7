"""
Unit tests for MSD / ergodicity analysis.
"""

import numpy as np
import pytest

from ctrw_sim import utils
from ctrw_sim.analysis import analyse_walks, anomalous_exponent, tamsd


def _ballistic(n_walks, n_steps):
    """Walks moving one unit in +x per step."""
    coords = np.zeros((n_walks, n_steps, 2))
    coords[:, :, 0] = np.arange(n_steps)
    return coords


def test_tamsd_values():
    walk = np.column_stack((np.arange(5, dtype=float), np.zeros(5)))
    assert tamsd(walk, 5, 1) == pytest.approx(1.0)
    assert tamsd(walk, 5, 2) == pytest.approx(4.0)
    assert tamsd(walk, 3, 1) == pytest.approx(1.0)
    assert np.isnan(tamsd(walk, 1, 1))


def test_ballistic_walks():
    n_steps = 20
    result = analyse_walks(_ballistic(3, n_steps), n_jobs=1)
    lags = np.arange(1, n_steps)

    assert np.allclose(result.ea_msd, lags**2)
    assert np.allclose(result.ta_msd, (lags**2)[:, None])
    # Identical trajectories: no spread between TAMSDs
    assert np.allclose(result.ergodicity, 0.0)
    # eataMSD at s=1 has an empty window and is zeroed
    assert result.eata_msd[0] == 0.0
    assert np.allclose(result.eata_msd[1:], 1.0)


def test_matrix_layout():
    n_walks, n_steps = 4, 15
    result = analyse_walks(_ballistic(n_walks, n_steps), n_jobs=1)
    matrix = result.to_matrix()
    assert matrix.shape == (n_steps - 1, n_walks + 3)
    assert np.array_equal(matrix[:, 0], result.ea_msd)
    assert np.array_equal(matrix[:, 1], result.eata_msd)
    assert np.array_equal(matrix[:, 2], result.ergodicity)
    assert np.array_equal(matrix[:, 3:], result.ta_msd)


def test_pinned_walks_have_no_nans():
    """Zero-mobility walks give 0/0 in the ergodicity ratio."""
    coords = np.ones((3, 12, 2))
    result = analyse_walks(coords, n_jobs=1)
    for values in (result.ea_msd, result.eata_msd, result.ergodicity, result.ta_msd):
        assert np.isfinite(values).all()
        assert (values == 0).all()


def test_ergodicity_breaking_positive_for_spread_tamsd():
    coords = _ballistic(2, 10)
    coords[1, :, 0] *= 3.0  # second walk three times as fast
    result = analyse_walks(coords, n_jobs=1)
    # TAMSD = s^2 and 9 s^2 -> (E[x^2] - E[x]^2) / E[x]^2 = 16/25
    lags = np.arange(1, 10)
    assert np.allclose(result.ergodicity, (16.0 / 25.0) / lags)


def test_parallel_matches_serial():
    rng = utils.make_rng(5)
    coords = np.cumsum(rng.normal(size=(9, 60, 2)), axis=1)
    serial = analyse_walks(coords, n_jobs=1)
    threaded = analyse_walks(coords, n_jobs=4)
    assert np.array_equal(serial.to_matrix(), threaded.to_matrix())


def test_anomalous_exponent():
    lags = np.arange(1, 50, dtype=float)
    alpha, r_squared = anomalous_exponent(lags, 2.0 * lags**0.6)
    assert alpha == pytest.approx(0.6)
    assert r_squared == pytest.approx(1.0)


def test_anomalous_exponent_skips_zeros():
    lags = np.arange(1, 10, dtype=float)
    msd = lags.copy()
    msd[:3] = 0.0
    alpha, _ = anomalous_exponent(lags, msd)
    assert alpha == pytest.approx(1.0)


def test_anomalous_exponent_needs_two_points():
    with pytest.raises(ValueError):
        anomalous_exponent(np.array([1.0, 2.0]), np.array([0.0, 1.0]))
