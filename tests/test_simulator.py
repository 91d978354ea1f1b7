"""
End-to-end tests for the CTRW simulator.
"""

import numpy as np
import pytest

from ctrw_sim import (
    ANY_CLUSTER,
    HONEYCOMB,
    LARGEST_CLUSTER,
    SQUARE,
    CTRWConfig,
    CTRWSimulator,
    run_model,
)


def _reference_config(**overrides):
    params = dict(
        grid_size=10,
        lattice_type=SQUARE,
        threshold=0.6,
        walk_type=ANY_CLUSTER,
        n_walks=5,
        n_steps=100,
        beta=0.0,
        tau0=1.0,
        noise=0.0,
        seed=42,
        n_jobs=1,
    )
    params.update(overrides)
    return CTRWConfig(**params)


def test_reference_run_is_deterministic():
    a = run_model(_reference_config())
    b = run_model(_reference_config())
    assert np.array_equal(a.clusters, b.clusters)
    assert np.array_equal(a.analysis, b.analysis)
    assert np.array_equal(a.walks, b.walks)


def test_reference_run_shapes():
    result = run_model(_reference_config())
    assert result.clusters.shape == (100,)
    assert result.lattice_coords.shape == (100, 2)
    assert result.analysis.shape == (99, 8)
    assert result.walks.shape == (5, 100, 2)
    assert np.isfinite(result.analysis).all()
    assert result.meta["occupied"] == 59


def test_different_seeds_differ():
    a = run_model(_reference_config(seed=1))
    b = run_model(_reference_config(seed=2))
    assert not np.array_equal(a.clusters, b.clusters)


def test_thread_count_does_not_change_results():
    serial = run_model(_reference_config(n_jobs=1, n_walks=12))
    threaded = run_model(_reference_config(n_jobs=4, n_walks=12))
    assert np.array_equal(serial.analysis, threaded.analysis)


def test_no_walks_requested():
    sim = CTRWSimulator(_reference_config(n_walks=0))
    sim.run()
    assert not sim.include_walks
    assert sim.get_analysis() is None
    assert sim.get_walks() is None
    assert sim.get_clusters().shape == (100,)


def test_zero_threshold_pins_walks():
    sim = CTRWSimulator(_reference_config(threshold=0.0, n_walks=3, n_steps=20))
    sim.run()
    assert (sim.percolation.lattice == sim.geometry.empty).all()
    assert sim.ensemble.pinned.all()
    walks = sim.get_walks()
    assert (walks == walks[:, :1, :]).all()
    assert (sim.get_analysis() == 0).all()


def test_largest_cluster_walks():
    sim = CTRWSimulator(
        _reference_config(grid_size=16, lattice_type=HONEYCOMB, threshold=0.75,
                          walk_type=LARGEST_CLUSTER, n_walks=6, n_steps=60)
    )
    sim.run()
    root = sim.percolation.largest_root()
    assert (sim.clusters[sim.ensemble.starts] == root).all()


def test_ctrw_run_with_noise():
    sim = CTRWSimulator(
        _reference_config(beta=0.6, tau0=0.5, noise=0.1, n_walks=4, n_steps=80)
    )
    sim.run()
    analysis = sim.get_analysis()
    assert analysis.shape == (79, 7)
    assert np.isfinite(analysis).all()
    # Noise breaks the lattice positions
    walks = sim.get_walks()
    assert not np.allclose(walks, np.round(walks))


def test_snapshot_and_meta():
    sim = CTRWSimulator(_reference_config(n_walks=20, n_steps=200))
    sim.run()
    snap = sim.snapshot()
    assert snap["n_sites"] == 100
    assert snap["occupied_fraction"] == pytest.approx(0.59)
    assert snap["largest_cluster_size"] >= 1
    assert "alpha" in snap

    meta = sim.result().meta
    assert meta["grid_size"] == 10
    assert meta["seed"] == 42


def test_stage_order_is_enforced():
    sim = CTRWSimulator(_reference_config())
    with pytest.raises(RuntimeError):
        sim.percolate()
    sim.find_neighbours()
    sim.permute()
    sim.percolate()
    with pytest.raises(RuntimeError):
        sim.random_walks()
    with pytest.raises(RuntimeError):
        sim.analyse_walks()


@pytest.mark.parametrize(
    "overrides",
    [
        {"grid_size": 0},
        {"threshold": 1.5},
        {"threshold": -0.1},
        {"lattice_type": 2},
        {"walk_type": 3},
        {"beta": -1.0},
        {"tau0": 0.0},
        {"noise": -0.5},
        {"n_steps": 1},
        {"n_walks": -1},
    ],
)
def test_invalid_config_rejected(overrides):
    with pytest.raises(ValueError):
        CTRWSimulator(_reference_config(**overrides))


def test_config_from_dict_accepts_names():
    config = CTRWConfig.from_dict(
        {"grid_size": 8, "lattice_type": "Honeycomb", "walk_type": "largest"}
    )
    assert config.lattice_type == HONEYCOMB
    assert config.walk_type == LARGEST_CLUSTER

    with pytest.raises(ValueError):
        CTRWConfig.from_dict({"lattice_type": "triangular"})
    with pytest.raises(ValueError):
        CTRWConfig.from_dict({"grid": 8})


def test_run_model_accepts_mapping():
    result = run_model({"grid_size": 6, "threshold": 0.7, "seed": 3})
    assert result.walks is None
    assert result.analysis is None
    assert result.clusters.shape == (36,)
